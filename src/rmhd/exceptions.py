"""Error taxonomy for the projection solver.

InvalidStepSize and NotReady are contract violations raised immediately.
SolverDivergence and SingularSystem come out of the linear-solve service and
are fatal for the run. ConfigurationConflict is raised while building solvers
from inconsistent parameters.
"""

from typing import Optional


class ProjectionSolverError(Exception):
    """Base class carrying the step number and solve stage of a failure."""

    def __init__(self, message: str, step_number: Optional[int] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step_number = step_number
        self.stage = stage

    def at(self, step_number: int, stage: str):
        """Attach the step number and stage where the error surfaced."""
        self.step_number = step_number
        self.stage = stage
        return self

    def __str__(self):
        where = []
        if self.stage is not None:
            where.append(f"stage={self.stage}")
        if self.step_number is not None:
            where.append(f"step={self.step_number}")
        if where:
            return f"{self.message} ({', '.join(where)})"
        return self.message


class InvalidStepSize(ProjectionSolverError):
    """Non-positive or out-of-bound time step size."""


class NotReady(ProjectionSolverError):
    """Time controller or field history used out of order."""


class SolverDivergence(ProjectionSolverError):
    """Krylov solve hit its iteration cap or broke down."""

    def __init__(self, message: str, iterations: int = 0, residual: float = float("nan"), **kwargs):
        super().__init__(message, **kwargs)
        self.iterations = iterations
        self.residual = residual

    def __str__(self):
        return f"{super().__str__()} [iterations={self.iterations}, residual={self.residual:.3e}]"


class SingularSystem(ProjectionSolverError):
    """Preconditioner construction failed."""


class ConfigurationConflict(ProjectionSolverError):
    """Mutually inconsistent configuration options."""
