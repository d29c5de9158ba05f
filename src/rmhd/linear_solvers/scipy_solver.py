"""Scipy Krylov solves for the projection scheme stages."""

import logging
import math

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.linalg import bicgstab, cg, gmres

from ..exceptions import SolverDivergence

log = logging.getLogger(__name__)

KRYLOV_METHODS = ("gmres", "bicgstab", "cg")
GMRES_RESTART = 30


def solve(
    A_csr: csr_matrix,
    x: np.ndarray,
    b: np.ndarray,
    M=None,
    tolerance=1e-6,
    max_iterations=1000,
    absolute_tolerance=0.0,
    method="gmres",
):
    """Solve A x = b in place with a preconditioned Krylov method.

    Converged when ||b - A x|| <= max(tolerance * ||b||, absolute_tolerance).

    Parameters
    ----------
    A_csr : csr_matrix
        Sparse matrix in CSR format.
    x : np.ndarray
        Initial guess, overwritten with the solution on success only.
    b : np.ndarray
        Right-hand side vector.
    M : LinearOperator, optional
        Preconditioner from build_preconditioner.
    tolerance : float, optional
        Relative residual tolerance (default: 1e-6).
    max_iterations : int, optional
        Iteration cap (default: 1000).
    absolute_tolerance : float, optional
        Absolute residual floor (default: 0).
    method : str, optional
        "gmres" (non-symmetric), "bicgstab" or "cg" (SPD).

    Returns
    -------
    iterations : int
        Krylov iterations performed.
    residual : float
        Final unpreconditioned residual norm ||b - A x||.

    Raises
    ------
    SolverDivergence
        If the iteration cap is reached or the method breaks down.
    """
    iterations = 0

    def count(_):
        nonlocal iterations
        iterations += 1

    kwargs = dict(x0=x.copy(), rtol=tolerance, atol=absolute_tolerance, M=M, callback=count)
    if method == "gmres":
        restart = min(GMRES_RESTART, max_iterations)
        solution, info = gmres(
            A_csr, b, restart=restart, maxiter=math.ceil(max_iterations / restart),
            callback_type="pr_norm", **kwargs
        )
    elif method == "bicgstab":
        solution, info = bicgstab(A_csr, b, maxiter=max_iterations, **kwargs)
    elif method == "cg":
        solution, info = cg(A_csr, b, maxiter=max_iterations, **kwargs)
    else:
        raise ValueError(f"Unknown Krylov method '{method}'; expected one of {KRYLOV_METHODS}")

    residual = float(np.linalg.norm(b - A_csr @ solution))
    if info != 0 or not np.all(np.isfinite(solution)):
        reason = "iteration limit reached" if info > 0 else f"breakdown (info={info})"
        raise SolverDivergence(
            f"{method.upper()} failed: {reason}", iterations=iterations, residual=residual
        )

    x[:] = solution
    log.debug(f"{method.upper()} converged in {iterations} iterations, residual={residual:.3e}")
    return iterations, residual
