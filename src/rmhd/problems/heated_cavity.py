"""Differentially heated cavity (Boussinesq natural convection).

No-slip walls, hot left wall (T = +0.5), cold right wall (T = -0.5) and
adiabatic top/bottom. Buoyancy acts along -gravity, so the fluid rises at
the hot wall and sinks at the cold wall.
"""

import logging

from ..entities import ScalarField, VectorField
from ..heat_equation import HeatEquation
from ..meshing import BOUNDARY_IDS
from ..navier_stokes_projection import NavierStokesProjection
from ..transport import CoupledTransport
from .base import Problem

log = logging.getLogger(__name__)

HOT_WALL = 0
COLD_WALL = 1


def hot_wall_temperature(x, y, t):
    return 0.5


def cold_wall_temperature(x, y, t):
    return -0.5


def at_rest(x, y, t):
    return 0.0, 0.0


class DifferentiallyHeatedCavityProblem(Problem):
    def __init__(self, params=None, name=None, **kwargs):
        if params is None:
            kwargs.setdefault("problem_type", "boussinesq")
        super().__init__(params, name, **kwargs)

    def build(self):
        if self.params.problem_type not in ("boussinesq", "rotating_boussinesq"):
            log.warning(
                f"Heated cavity run as '{self.params.problem_type}': buoyancy constant C3="
                f"{self.params.navier_stokes.C3}"
            )
        self.velocity = VectorField(self.mesh, "velocity", self.params.fe_degree_velocity)
        self.pressure = ScalarField(self.mesh, "pressure", self.params.fe_degree_pressure)
        self.temperature = ScalarField(self.mesh, "temperature", self.params.fe_degree_temperature)

        for boundary_id in BOUNDARY_IDS:
            self.velocity.boundary_conditions.set_dirichlet_bcs(boundary_id)
        self.temperature.boundary_conditions.set_dirichlet_bcs(HOT_WALL, hot_wall_temperature)
        self.temperature.boundary_conditions.set_dirichlet_bcs(COLD_WALL, cold_wall_temperature)

        communicator = self.session.communicator
        self.heat_equation = HeatEquation(
            self.params.heat_equation,
            self.time_stepping,
            self.temperature,
            transport=CoupledTransport(self.velocity),
            n_quadrature_points=self.params.n_quadrature_points,
            communicator=communicator,
        )
        self.navier_stokes = NavierStokesProjection(
            self.params.navier_stokes,
            self.time_stepping,
            self.velocity,
            self.pressure,
            temperature=self.temperature,
            n_quadrature_points=self.params.n_quadrature_points,
            communicator=communicator,
        )

    def set_initial_conditions(self):
        t0 = self.time_stepping.start_time
        self.velocity.set_initial_condition(at_rest, t0)
        self.pressure.set_initial_condition(lambda x, y, t: 0.0, t0)
        self.temperature.set_initial_condition(self.conduction_profile, t0)

    def conduction_profile(self, x, y, t):
        """Linear temperature between the hot and the cold wall."""
        return 0.5 - x / self.params.Lx
