"""Abstract base for the time-dependent solvers (Navier-Stokes, heat)."""

import logging
from abc import ABC, abstractmethod

import numpy as np

from .assembly import LagrangeElement
from .datastructures import StageReport
from .exceptions import NotReady, SingularSystem, SolverDivergence
from .linear_solvers import build_preconditioner, solve
from .parallel import SerialCommunicator

log = logging.getLogger(__name__)


class TimeDependentSolver(ABC):
    """Shared machinery of the VSIMEX solvers.

    Handles:
    - Constant-operator setup and re-setup after a mesh change
    - One LagrangeElement per field degree on a shared quadrature
    - The (coefficient version, mesh version) key of cached operators
    - Preconditioned solves wrapped into StageReports

    Subclasses must:
    - Implement assemble_constant_matrices()
    - Implement fields() returning the entities they own
    """

    def __init__(self, time_stepping, mesh, n_quadrature_points=None, communicator=None):
        self.time_stepping = time_stepping
        self.mesh = mesh
        self.n_quadrature_points = n_quadrature_points
        self.comm = communicator or SerialCommunicator()
        self._preconditioners = {}
        self._elements = {}
        self._mesh_version = None

    @abstractmethod
    def fields(self):
        """Entities owned by this solver."""

    @abstractmethod
    def assemble_constant_matrices(self):
        """Mass/stiffness (and coupling) operators that only change with the mesh."""

    def setup(self):
        """Assemble the constant operators; reallocate fields after a mesh change."""
        for entity in self.fields():
            if entity.mesh_version != self.mesh.version:
                entity.setup_dofs()
        # One Gauss rule for every space so that mixed integrals line up
        self.quadrature_size = self.n_quadrature_points or self.highest_degree() + 2
        self._elements.clear()
        self._preconditioners.clear()
        self.assemble_constant_matrices()
        self._mesh_version = self.mesh.version
        log.info(f"{type(self).__name__}: assembled constant matrices on {self.mesh}")

    def highest_degree(self):
        """Largest polynomial degree integrated by this solver."""
        return max(entity.degree for entity in self.fields())

    def element_for(self, degree):
        """LagrangeElement of the given degree on the solver's quadrature."""
        if degree not in self._elements:
            self._elements[degree] = LagrangeElement.for_mesh(self.mesh, degree, self.quadrature_size)
        return self._elements[degree]

    def _check_mesh(self):
        if self._mesh_version != self.mesh.version:
            self.setup()

    def _check_coefficients(self):
        ts = self.time_stepping
        coefficients = ts.engine.coefficients
        if coefficients is None or coefficients.step_size != ts.next_step_size:
            raise NotReady("VSIMEX coefficients are not up to date; call update_coefficients() first")
        return coefficients

    def _cache_key(self):
        return (self.time_stepping.version, self.mesh.version)

    def _mean_value(self, vector, lumped_mass):
        """Mass-weighted mean, reduced over all workers."""
        return self.comm.sum(lumped_mass * vector) / self.comm.sum(lumped_mass)

    def _solve_stage(self, stage, matrix, x, rhs, params, reinit_preconditioner):
        """Solve ``matrix x = rhs`` in place; failures come back in the report."""
        step = self.time_stepping.step_number
        try:
            if reinit_preconditioner or stage not in self._preconditioners:
                self._preconditioners[stage] = build_preconditioner(matrix, params.preconditioner)
                log.debug(f"{stage}: rebuilt {params.preconditioner} preconditioner at step {step}")
            iterations, residual = solve(
                matrix,
                x,
                rhs,
                M=self._preconditioners[stage],
                tolerance=params.relative_tolerance,
                max_iterations=params.n_maximum_iterations,
                absolute_tolerance=params.absolute_tolerance,
                method=params.method,
            )
        except (SolverDivergence, SingularSystem) as exc:
            exc.at(step, stage)
            log.error(f"{stage} failed at step {step}: {exc}")
            return StageReport(
                stage,
                step,
                iterations=getattr(exc, "iterations", 0),
                residual=getattr(exc, "residual", np.nan),
                error=exc,
            )
        return StageReport(stage, step, iterations=iterations, residual=residual)
