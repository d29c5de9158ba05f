"""Steady linear flow that the Taylor-Hood projection scheme reproduces exactly.

    u = (x, -y),  p = x + y,  f = (u . grad) u + grad p = (x + 1, y + 1)

u lies in the velocity space and p in the pressure space for any degrees
(Qk+1/Qk) and u is divergence free, so every stage of the scheme
reproduces them at the support points up to the solver tolerance.
"""

import numpy as np

from ..entities import ScalarField, VectorField
from ..meshing import BOUNDARY_IDS
from ..navier_stokes_projection import NavierStokesProjection
from .base import Problem


def exact_velocity(x, y, t):
    return x, -y


def exact_pressure(x, y, t):
    return x + y


def body_force(x, y, t):
    return x + 1.0, y + 1.0


class PolynomialStokesProblem(Problem):
    def build(self):
        self.velocity = VectorField(self.mesh, "velocity", self.params.fe_degree_velocity)
        self.pressure = ScalarField(self.mesh, "pressure", self.params.fe_degree_pressure)
        for boundary_id in BOUNDARY_IDS:
            self.velocity.boundary_conditions.set_dirichlet_bcs(boundary_id, exact_velocity)
        self.navier_stokes = NavierStokesProjection(
            self.params.navier_stokes,
            self.time_stepping,
            self.velocity,
            self.pressure,
            body_force=body_force,
            n_quadrature_points=self.params.n_quadrature_points,
            communicator=self.session.communicator,
        )

    def set_initial_conditions(self):
        t0 = self.time_stepping.start_time
        self.velocity.set_initial_condition(exact_velocity, t0)
        self.pressure.set_initial_condition(exact_pressure, t0)

    def nodal_errors(self):
        t = self.time_stepping.current_time
        u_error = self.velocity.old_solution - self.velocity.interpolate(exact_velocity, t)
        p_error = self.pressure.old_solution - self.pressure.interpolate(exact_pressure, t)
        return float(np.max(np.abs(u_error))), float(np.max(np.abs(p_error)))
