"""Guermond's manufactured solution for the projection scheme convergence test.

On the unit square:

    u = (sin(x + t) sin(y + t), cos(x + t) cos(y + t))
    p = sin(x - y + t)

u is divergence free and the body force is f = du/dt + (u . grad) u - C2 lap u + C6 grad p.
"""

import logging

import numpy as np

from ..convergence import ConvergenceTable, ConvergenceTestParameters
from ..driver import SimulationSession
from ..entities import ScalarField, VectorField
from ..meshing import BOUNDARY_IDS
from ..metrics import field_errors
from ..navier_stokes_projection import NavierStokesProjection
from .base import Problem

log = logging.getLogger(__name__)


def exact_velocity(x, y, t):
    return np.sin(x + t) * np.sin(y + t), np.cos(x + t) * np.cos(y + t)


def exact_pressure(x, y, t):
    return np.sin(x - y + t)


class BodyForce:
    def __init__(self, C2, C6=1.0):
        self.C2 = C2
        self.C6 = C6

    def __call__(self, x, y, t):
        ux, uy = exact_velocity(x, y, t)
        time_derivative = np.sin(x + y + 2.0 * t)
        pressure_gradient = self.C6 * np.cos(x - y + t)
        fx = time_derivative + 0.5 * np.sin(2.0 * (x + t)) + 2.0 * self.C2 * ux + pressure_gradient
        fy = -time_derivative - 0.5 * np.sin(2.0 * (y + t)) + 2.0 * self.C2 * uy - pressure_gradient
        return fx, fy


class GuermondProblem(Problem):
    """Convergence study with the Guermond manufactured solution.

    Parameters
    ----------
    params : ProblemParameters or dict
    convergence : dict or ConvergenceTestParameters, optional
        test_type ("spatial", "temporal", "spatio_temporal"), n_cycles,
        n_spatial_refinements, step_size_reduction_factor.
    """

    def __init__(self, params=None, convergence=None, name=None, **kwargs):
        if convergence is None:
            convergence = ConvergenceTestParameters()
        elif not isinstance(convergence, ConvergenceTestParameters):
            convergence = ConvergenceTestParameters(**convergence)
        self.convergence = convergence
        super().__init__(params, name, **kwargs)

    def build(self):
        self.velocity = VectorField(self.mesh, "velocity", self.params.fe_degree_velocity)
        self.pressure = ScalarField(self.mesh, "pressure", self.params.fe_degree_pressure)
        for boundary_id in BOUNDARY_IDS:
            self.velocity.boundary_conditions.set_dirichlet_bcs(boundary_id, exact_velocity)

        ns_params = self.params.navier_stokes
        self.navier_stokes = NavierStokesProjection(
            ns_params,
            self.time_stepping,
            self.velocity,
            self.pressure,
            body_force=BodyForce(ns_params.C2, ns_params.C6),
            n_quadrature_points=self.params.n_quadrature_points,
            communicator=self.session.communicator,
        )

    def set_initial_conditions(self):
        t0 = self.time_stepping.start_time
        self.velocity.set_initial_condition(exact_velocity, t0)
        self.pressure.set_initial_condition(exact_pressure, t0)

    def compute_errors(self):
        """Velocity and (mean-free) pressure errors at the current time."""
        ns = self.navier_stokes
        t = self.time_stepping.current_time
        u_exact = self.velocity.interpolate(exact_velocity, t)
        errors = field_errors(
            "u", ns.velocity_mass_matrix, ns.velocity_laplace_matrix, u_exact, self.velocity.old_solution
        )

        lumped = ns.lumped_pressure_mass
        p_exact = self.pressure.interpolate(exact_pressure, t)
        p_exact -= ns._mean_value(p_exact, lumped)
        p_num = self.pressure.old_solution - ns._mean_value(self.pressure.old_solution, lumped)
        errors.update(field_errors("p", ns.pressure_mass_matrix, ns.pressure_laplace_matrix, p_exact, p_num))
        return errors

    def run(self):
        """Run all convergence cycles; returns the ConvergenceTable."""
        conv = self.convergence
        table = ConvergenceTable(test_type=conv.test_type)
        step_size = self.params.time_discretization.initial_time_step

        for cycle in range(conv.n_cycles):
            if cycle > 0:
                if conv.refines_space:
                    self.mesh.refine_globally(conv.n_spatial_refinements)
                if conv.refines_time:
                    step_size *= conv.step_size_reduction_factor

            self.time_stepping.initial_step_size = step_size
            self.time_stepping.restart()
            self.navier_stokes.setup()
            self.session = SimulationSession(
                communicator=self.session.communicator, output_directory=self.params.output_directory
            )

            log.info(f"Convergence cycle {cycle}: {self.mesh}, dt={step_size:.3e}")
            super().run()
            table.add_row(cycle, self.mesh.dx, step_size, self.compute_errors())

        df = table.to_dataframe()
        log.info(f"Convergence table ({conv.test_type}):\n{df.to_string(index=False)}")
        if self.params.output_directory is not None:
            table.save(f"{self.params.output_directory}/convergence_table.csv")
        return table
