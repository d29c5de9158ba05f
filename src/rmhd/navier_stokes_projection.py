"""Incremental pressure-projection solver for the incompressible Navier-Stokes equations.

Per time step (t^n -> t^{n+1}, VSIMEX coefficients alpha, beta, gamma, eta):

1. Diffusion step: solve for the provisional velocity

       alpha_0 M u + gamma_0 C2 K u [+ A(u*) u]
           = -(alpha_1 M u^n + alpha_2 M u^{n-1}) - C6 G p# + F

   with p# = p^n + 4/3 phi^n - 1/3 phi^{n-1} and u* the eta extrapolation.
2. Projection step: (grad psi, grad q) = -(div u, q), phi = alpha_0 / C6 psi.
3. Pressure correction:
       standard:   p^{n+1} = p^n + phi
       rotational: p^{n+1} = p^n + phi + C2 / C6 M_p^{-1} r
   where r is the projection step right-hand side.

The momentum equation solved is

    du/dt + (u . grad) u + C1 e_z x u = -C6 grad p + C2 lap u - C3 theta g + f
"""

import logging

import numpy as np

from .assembly import (
    CachedOperator,
    apply_boundary_values,
    assemble_advection_matrix,
    assemble_coupling_mass_matrix,
    assemble_divergence_matrix,
    assemble_gradient_matrix,
    assemble_mass_matrix,
    assemble_stiffness_matrix,
    assemble_vector_load_vector,
    lumped_mass,
    vector_operator,
)
from .base import TimeDependentSolver
from .datastructures import NavierStokesParameters, StageReport
from .exceptions import ConfigurationConflict
from .linear_solvers import PreconditionerUpdatePolicy

log = logging.getLogger(__name__)

DIFFUSION_STEP = "diffusion step"
PROJECTION_STEP = "projection step"
PRESSURE_CORRECTION = "pressure correction"
POISSON_PRESTEP = "poisson pre-step"


class NavierStokesProjection(TimeDependentSolver):
    """VSIMEX incremental pressure-correction scheme on Taylor-Hood (Qk+1/Qk) fields.

    Parameters
    ----------
    parameters : NavierStokesParameters
        Scheme options, scaling constants C1..C6 and per-stage solver settings.
    time_stepping : VSIMEXMethod
        Shared time controller; its coefficients must be updated before solve().
    velocity : VectorField
        Velocity entity (boundary conditions set on it). Its degree must exceed
        the pressure degree; equal-order pairs are not inf-sup stable.
    pressure : ScalarField
        Pressure entity. Without Dirichlet conditions the pressure is fixed by
        a datum and normalized to zero mean.
    temperature : ScalarField, optional
        Temperature entity for the buoyancy term (C3).
    body_force : callable, optional
        f(x, y, t) -> (f_x, f_y).
    """

    def __init__(
        self,
        parameters: NavierStokesParameters,
        time_stepping,
        velocity,
        pressure,
        temperature=None,
        body_force=None,
        n_quadrature_points=None,
        communicator=None,
    ):
        if velocity.degree <= pressure.degree:
            raise ConfigurationConflict(
                f"Velocity degree ({velocity.degree}) must exceed pressure degree ({pressure.degree})"
            )
        super().__init__(time_stepping, velocity.mesh, n_quadrature_points, communicator)
        self.params = parameters
        self.velocity = velocity
        self.pressure = pressure
        self.temperature = temperature
        self.body_force = body_force
        self.pressure.boundary_conditions.set_datum_at_boundary()

        frequency = parameters.preconditioner_update_frequency
        self.policies = {
            DIFFUSION_STEP: PreconditionerUpdatePolicy(frequency),
            PROJECTION_STEP: PreconditionerUpdatePolicy(frequency),
            PRESSURE_CORRECTION: PreconditionerUpdatePolicy(frequency),
        }
        self.mass_plus_stiffness = CachedOperator("mass_plus_stiffness", self._combine_mass_plus_stiffness)
        self.projection_matrix = CachedOperator("projection_matrix", self._eliminate_projection_matrix)
        self.setup()

    def fields(self):
        entities = [self.velocity, self.pressure]
        if self.temperature is not None:
            entities.append(self.temperature)
        return entities

    @property
    def flag_normalize_pressure(self):
        return self.pressure.boundary_conditions.is_pure_neumann

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def assemble_constant_matrices(self):
        velocity_dofs = self.velocity.dof_handler
        pressure_dofs = self.pressure.dof_handler
        self.velocity_element = self.element_for(self.velocity.degree)
        self.pressure_element = self.element_for(self.pressure.degree)

        velocity_mass = assemble_mass_matrix(velocity_dofs, self.velocity_element)
        self.velocity_mass_matrix = vector_operator(velocity_mass)
        self.velocity_laplace_matrix = vector_operator(
            assemble_stiffness_matrix(velocity_dofs, self.velocity_element)
        )
        self.lumped_velocity_mass = lumped_mass(velocity_mass)
        self.pressure_mass_matrix = assemble_mass_matrix(pressure_dofs, self.pressure_element)
        self.pressure_laplace_matrix = assemble_stiffness_matrix(pressure_dofs, self.pressure_element)
        self.gradient_matrix = assemble_gradient_matrix(
            velocity_dofs, self.velocity_element, pressure_dofs, self.pressure_element
        )
        self.divergence_matrix = assemble_divergence_matrix(
            pressure_dofs, self.pressure_element, velocity_dofs, self.velocity_element
        )
        self.lumped_pressure_mass = lumped_mass(self.pressure_mass_matrix)

        self.buoyancy_matrix = None
        if self.temperature is not None:
            self.buoyancy_matrix = assemble_coupling_mass_matrix(
                velocity_dofs,
                self.velocity_element,
                self.temperature.dof_handler,
                self.element_for(self.temperature.degree),
            )

        n = self.pressure.n_dofs
        self.phi = np.zeros(n)
        self.old_phi = np.zeros(n)
        self.projection_rhs = np.zeros(n)

        self.mass_plus_stiffness.invalidate()
        self.projection_matrix.invalidate()
        for policy in self.policies.values():
            policy.invalidate()

    def _combine_mass_plus_stiffness(self):
        c = self.time_stepping.coefficients
        return (
            c.alpha[0] * self.velocity_mass_matrix
            + c.gamma[0] * self.params.C2 * self.velocity_laplace_matrix
        ).tocsr()

    def _eliminate_projection_matrix(self):
        dofs, values = self.pressure.constrained_dofs(self.time_stepping.current_time, homogeneous=True)
        matrix, _ = apply_boundary_values(
            self.pressure_laplace_matrix, np.zeros(self.pressure.n_dofs), dofs, values
        )
        return matrix, dofs

    def _advection(self, transport):
        scalar = assemble_advection_matrix(
            self.velocity.dof_handler, self.velocity_element, transport, self.params.convective_term_weak_form
        )
        return vector_operator(scalar)

    def _rotate(self, vector):
        """e_z x u for a component-stacked vector."""
        n = self.velocity.dof_handler.n_dofs
        return np.concatenate([-vector[n:], vector[:n]])

    def _buoyancy_load(self, theta):
        """int theta (g . v) for all velocity test functions v."""
        g = self.params.gravity
        weighted = self.buoyancy_matrix @ theta
        return np.concatenate([g[0] * weighted, g[1] * weighted])

    # ------------------------------------------------------------------
    # Diffusion step
    # ------------------------------------------------------------------

    def _assemble_diffusion_step_rhs(self, c, time):
        p = self.params
        u_old = self.velocity.old_solution
        u_old_old = self.velocity.old_old_solution
        M = self.velocity_mass_matrix

        rhs = -(M @ (c.alpha[1] * u_old + c.alpha[2] * u_old_old))
        if c.gamma[1] != 0.0 or c.gamma[2] != 0.0:
            rhs -= p.C2 * (self.velocity_laplace_matrix @ (c.gamma[1] * u_old + c.gamma[2] * u_old_old))

        pressure_sharp = self.pressure.old_solution + 4.0 / 3.0 * self.phi - 1.0 / 3.0 * self.old_phi
        rhs -= p.C6 * (self.gradient_matrix @ pressure_sharp)

        if p.convective_term_time_discretization == "fully_explicit":
            rhs -= c.beta[0] * (self._advection(u_old) @ u_old)
            if c.beta[1] != 0.0:
                rhs -= c.beta[1] * (self._advection(u_old_old) @ u_old_old)

        if self.body_force is not None:
            rhs += c.gamma[0] * assemble_vector_load_vector(
                self.velocity.dof_handler, self.velocity_element, self.body_force, time
            )

        if p.C1 != 0.0:
            extrapolated = c.beta[0] * u_old + c.beta[1] * u_old_old
            rhs -= p.C1 * (M @ self._rotate(extrapolated))

        if p.C3 != 0.0 and self.temperature is not None:
            rhs -= p.C3 * self._buoyancy_load(self.temperature.solution)
        return rhs

    def solve_diffusion_step(self, reinit_preconditioner):
        c = self._check_coefficients()
        time = self.time_stepping.next_time

        system_matrix = self.mass_plus_stiffness.get(self._cache_key())
        if self.params.convective_term_time_discretization == "semi_implicit":
            transport = c.eta[0] * self.velocity.old_solution + c.eta[1] * self.velocity.old_old_solution
            system_matrix = system_matrix + self._advection(transport)

        rhs = self._assemble_diffusion_step_rhs(c, time)
        dofs, values = self.velocity.constrained_dofs(time)
        matrix, rhs = apply_boundary_values(system_matrix, rhs, dofs, values)

        x = self.velocity.distributed_vector
        x[:] = self.velocity.old_solution
        x[dofs] = values
        report = self._solve_stage(
            DIFFUSION_STEP, matrix, x, rhs, self.params.diffusion_step_solver, reinit_preconditioner
        )
        if not report.failed:
            self.velocity.solution = x
        return report

    # ------------------------------------------------------------------
    # Projection step
    # ------------------------------------------------------------------

    def solve_projection_step(self, reinit_preconditioner):
        c = self._check_coefficients()
        matrix, dofs = self.projection_matrix.get(
            (self.mesh.version, self.pressure.boundary_conditions.revision)
        )

        self.projection_rhs = -(self.divergence_matrix @ self.velocity.solution)
        rhs = self.projection_rhs.copy()
        rhs[dofs] = 0.0

        x = self.pressure.distributed_vector
        x.fill(0.0)
        report = self._solve_stage(
            PROJECTION_STEP, matrix, x, rhs, self.params.projection_step_solver, reinit_preconditioner
        )
        if report.failed:
            return report

        phi = c.alpha[0] / self.params.C6 * x
        if self.flag_normalize_pressure:
            phi -= self._mean_value(phi, self.lumped_pressure_mass)
        self.old_phi = self.phi
        self.phi = phi
        return report

    # ------------------------------------------------------------------
    # Pressure correction
    # ------------------------------------------------------------------

    def update_pressure(self, reinit_preconditioner):
        p = self.params
        pressure = self.pressure.old_solution + self.phi

        if p.pressure_correction_scheme == "rotational":
            correction = np.zeros(self.pressure.n_dofs)
            report = self._solve_stage(
                PRESSURE_CORRECTION,
                self.pressure_mass_matrix,
                correction,
                self.projection_rhs,
                p.correction_step_solver,
                reinit_preconditioner,
            )
            if report.failed:
                return report
            if self.flag_normalize_pressure:
                correction -= self._mean_value(correction, self.lumped_pressure_mass)
            pressure += p.C2 / p.C6 * correction
        else:
            report = StageReport(PRESSURE_CORRECTION, self.time_stepping.step_number)

        if not self.flag_normalize_pressure:
            dofs, values = self.pressure.constrained_dofs(self.time_stepping.next_time)
            pressure[dofs] = values
        self.pressure.solution = pressure
        return report

    # ------------------------------------------------------------------
    # Poisson pre-step
    # ------------------------------------------------------------------

    def poisson_prestep(self):
        """Initial pressure from (grad p, grad q) = (f - (u.grad)u - C1 e_z x u - C3 theta g, grad q) / C6."""
        p = self.params
        time = self.time_stepping.current_time
        u0 = self.velocity.old_solution
        lumped = np.concatenate([self.lumped_velocity_mass, self.lumped_velocity_mass])

        load = np.zeros(self.velocity.n_dofs)
        if self.body_force is not None:
            load += assemble_vector_load_vector(
                self.velocity.dof_handler, self.velocity_element, self.body_force, time
            )
        load -= self._advection(u0) @ u0
        if p.C3 != 0.0 and self.temperature is not None:
            load -= p.C3 * self._buoyancy_load(self.temperature.old_solution)
        force = load / lumped
        if p.C1 != 0.0:
            force -= p.C1 * self._rotate(u0)

        rhs = (self.gradient_matrix.T @ force) / p.C6
        dofs, values = self.pressure.constrained_dofs(time)
        matrix, rhs = apply_boundary_values(self.pressure_laplace_matrix, rhs, dofs, values)

        x = self.pressure.distributed_vector
        x.fill(0.0)
        x[dofs] = values
        report = self._solve_stage(
            POISSON_PRESTEP, matrix, x, rhs, p.poisson_prestep_solver, reinit_preconditioner=True
        )
        if report.failed:
            return report
        if self.flag_normalize_pressure:
            x -= self._mean_value(x, self.lumped_pressure_mass)
        self.pressure.old_old_solution = x.copy()
        self.pressure.old_solution = x.copy()
        self.pressure.solution = x
        log.info(f"Poisson pre-step converged in {report.iterations} iterations")
        return report

    # ------------------------------------------------------------------
    # One time step
    # ------------------------------------------------------------------

    def solve(self):
        """Diffusion, projection and pressure correction for the pending step.

        Returns the stage reports in order, stopping at the first failure.
        """
        self._check_mesh()
        step = self.time_stepping.step_number
        reports = []
        stages = (
            (DIFFUSION_STEP, self.solve_diffusion_step),
            (PROJECTION_STEP, self.solve_projection_step),
            (PRESSURE_CORRECTION, self.update_pressure),
        )
        for stage, method in stages:
            policy = self.policies[stage]
            reinit = policy.needs_update(step)
            report = method(reinit)
            reports.append(report)
            if report.failed:
                break
            if reinit:
                policy.mark_updated()
            log.debug(f"{stage}: {report.iterations} iterations, residual {report.residual:.3e}")
        return reports
