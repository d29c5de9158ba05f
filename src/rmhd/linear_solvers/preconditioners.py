"""Preconditioner construction and the reinitialization policy."""

import numpy as np
import pyamg
from scipy.sparse.linalg import LinearOperator, spilu

from ..exceptions import SingularSystem

PRECONDITIONER_KINDS = ("amg", "ilu", "jacobi", "none")


def build_preconditioner(A_csr, kind="amg"):
    """Build a preconditioner for A.

    Parameters
    ----------
    A_csr : csr_matrix
        System matrix (after boundary elimination).
    kind : str
        "amg" (pyamg smoothed aggregation, SPD systems), "ilu" (incomplete LU,
        non-symmetric systems), "jacobi" or "none".

    Returns
    -------
    LinearOperator or None
        Approximate inverse usable as the ``M`` argument of the Krylov solvers.

    Raises
    ------
    SingularSystem
        If the factorization or hierarchy cannot be built.
    """
    if kind == "none":
        return None
    if kind == "jacobi":
        diagonal = A_csr.diagonal()
        if np.any(diagonal == 0.0):
            raise SingularSystem("Jacobi preconditioner: zero on the diagonal")
        inverse = 1.0 / diagonal
        return LinearOperator(A_csr.shape, matvec=lambda v: inverse * v, dtype=A_csr.dtype)
    if kind == "ilu":
        try:
            factor = spilu(A_csr.tocsc(), drop_tol=1e-5, fill_factor=20)
        except RuntimeError as exc:
            raise SingularSystem(f"ILU factorization failed: {exc}") from exc
        return LinearOperator(A_csr.shape, matvec=factor.solve, dtype=A_csr.dtype)
    if kind == "amg":
        try:
            ml = pyamg.smoothed_aggregation_solver(A_csr, max_coarse=10)
        except (ValueError, RuntimeError, np.linalg.LinAlgError) as exc:
            raise SingularSystem(f"AMG setup failed: {exc}") from exc
        return ml.aspreconditioner()
    raise ValueError(f"Unknown preconditioner '{kind}'; expected one of {PRECONDITIONER_KINDS}")


class PreconditionerUpdatePolicy:
    """Decides when a stage rebuilds its preconditioner.

    Rebuild on the first solve, every ``update_frequency`` steps and after
    ``invalidate()`` (matrix structure changed, e.g. mesh refinement).
    """

    def __init__(self, update_frequency=10):
        self.update_frequency = update_frequency
        self._pending = True

    def invalidate(self):
        self._pending = True

    def needs_update(self, step_number):
        return self._pending or step_number % self.update_frequency == 0

    def mark_updated(self):
        self._pending = False
