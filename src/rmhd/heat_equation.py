"""Convection-diffusion solver for the temperature.

    alpha_0 M T + gamma_0 C4 K T [+ A(w*) T]
        = -(alpha_1 M T^n + alpha_2 M T^{n-1}) - C4 K (gamma_1 T^n + gamma_2 T^{n-1})
          + gamma_0 F(t^{n+1}) + gamma_1 F(t^n) + gamma_2 F(t^{n-1})
          [- beta_0 A(w^n) T^n - beta_1 A(w^{n-1}) T^{n-1}]

The transport velocity w comes from a TransportVelocity variant; with a
coupled velocity field it lags the temperature by one step.
"""

import logging

from .assembly import (
    CachedOperator,
    apply_boundary_values,
    assemble_advection_matrix,
    assemble_load_vector,
    assemble_mass_matrix,
    assemble_stiffness_matrix,
)
from .base import TimeDependentSolver
from .datastructures import HeatEquationParameters
from .linear_solvers import PreconditionerUpdatePolicy
from .transport import NoTransport

log = logging.getLogger(__name__)

HEAT_EQUATION = "heat equation"


class HeatEquation(TimeDependentSolver):
    """Temperature solver.

    Parameters
    ----------
    parameters : HeatEquationParameters
        C4, convection options and solver settings.
    time_stepping : VSIMEXMethod
        Shared time controller.
    temperature : ScalarField
        Temperature entity (boundary conditions set on it).
    transport : TransportVelocity, optional
        CoupledTransport, AnalyticTransport or NoTransport (default).
    source_term : callable, optional
        Scalar f(x, y, t).
    """

    def __init__(
        self,
        parameters: HeatEquationParameters,
        time_stepping,
        temperature,
        transport=None,
        source_term=None,
        n_quadrature_points=None,
        communicator=None,
    ):
        super().__init__(time_stepping, temperature.mesh, n_quadrature_points, communicator)
        self.params = parameters
        self.temperature = temperature
        self.transport = transport if transport is not None else NoTransport()
        self.source_term = source_term
        self.policy = PreconditionerUpdatePolicy(parameters.preconditioner_update_frequency)
        self.mass_plus_stiffness = CachedOperator("heat mass_plus_stiffness", self._combine_mass_plus_stiffness)
        self.setup()

    def fields(self):
        return [self.temperature]

    def highest_degree(self):
        degree = self.temperature.degree
        if self.transport.dof_handler is not None:
            degree = max(degree, self.transport.dof_handler.degree)
        return degree

    def assemble_constant_matrices(self):
        dofs = self.temperature.dof_handler
        self.temperature_element = self.element_for(self.temperature.degree)
        self.mass_matrix = assemble_mass_matrix(dofs, self.temperature_element)
        self.stiffness_matrix = assemble_stiffness_matrix(dofs, self.temperature_element)
        self.mass_plus_stiffness.invalidate()
        self.policy.invalidate()

    def _combine_mass_plus_stiffness(self):
        c = self.time_stepping.coefficients
        return (c.alpha[0] * self.mass_matrix + c.gamma[0] * self.params.C4 * self.stiffness_matrix).tocsr()

    def _advection(self, transport):
        transport_dofs = self.transport.dof_handler
        return assemble_advection_matrix(
            self.temperature.dof_handler,
            self.temperature_element,
            transport,
            self.params.convective_term_weak_form,
            transport_dofs=transport_dofs,
            transport_element=self.element_for(transport_dofs.degree),
        )

    def _source(self, weight, time):
        return weight * assemble_load_vector(
            self.temperature.dof_handler, self.temperature_element, self.source_term, time
        )

    def assemble_rhs(self, c):
        ts = self.time_stepping
        T_old = self.temperature.old_solution
        T_old_old = self.temperature.old_old_solution

        rhs = -(self.mass_matrix @ (c.alpha[1] * T_old + c.alpha[2] * T_old_old))
        if c.gamma[1] != 0.0 or c.gamma[2] != 0.0:
            rhs -= self.params.C4 * (self.stiffness_matrix @ (c.gamma[1] * T_old + c.gamma[2] * T_old_old))

        if self.source_term is not None:
            rhs += self._source(c.gamma[0], ts.next_time)
            if c.gamma[1] != 0.0:
                rhs += self._source(c.gamma[1], ts.current_time)
            if c.gamma[2] != 0.0:
                rhs += self._source(c.gamma[2], ts.previous_time)

        explicit = self.params.convective_term_time_discretization == "fully_explicit"
        if self.transport.is_active and explicit:
            w_old, w_old_old = self.transport.history(ts)
            rhs -= c.beta[0] * (self._advection(w_old) @ T_old)
            if c.beta[1] != 0.0:
                rhs -= c.beta[1] * (self._advection(w_old_old) @ T_old_old)
        return rhs

    def solve(self):
        """Advance the temperature to t^{n+1}; returns the stage report."""
        self._check_mesh()
        c = self._check_coefficients()
        ts = self.time_stepping

        system_matrix = self.mass_plus_stiffness.get(self._cache_key())
        if self.transport.is_active and self.params.convective_term_time_discretization == "semi_implicit":
            system_matrix = system_matrix + self._advection(self.transport.extrapolated(ts))

        rhs = self.assemble_rhs(c)
        dofs, values = self.temperature.constrained_dofs(ts.next_time)
        matrix, rhs = apply_boundary_values(system_matrix, rhs, dofs, values)

        x = self.temperature.distributed_vector
        x[:] = self.temperature.old_solution
        x[dofs] = values
        reinit = self.policy.needs_update(ts.step_number)
        report = self._solve_stage(HEAT_EQUATION, matrix, x, rhs, self.params.solver, reinit)
        if not report.failed:
            if reinit:
                self.policy.mark_updated()
            self.temperature.solution = x
            log.debug(f"{HEAT_EQUATION}: {report.iterations} iterations, residual {report.residual:.3e}")
        return report
