"""Linear solver service: scipy Krylov methods with pyamg/ILU/Jacobi preconditioning."""

from .scipy_solver import solve, KRYLOV_METHODS
from .preconditioners import build_preconditioner, PreconditionerUpdatePolicy, PRECONDITIONER_KINDS

__all__ = [
    "solve",
    "build_preconditioner",
    "PreconditionerUpdatePolicy",
    "KRYLOV_METHODS",
    "PRECONDITIONER_KINDS",
]
