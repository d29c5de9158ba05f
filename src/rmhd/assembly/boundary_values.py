"""Essential boundary condition elimination."""

import numpy as np
import scipy.sparse as sp


def apply_boundary_values(matrix, rhs, dofs, values):
    """Eliminate prescribed dofs from ``matrix x = rhs``.

    Rows and columns of the constrained dofs are zeroed (the column
    contribution moves to the right-hand side) and the original diagonal
    entry is kept, so symmetric matrices stay symmetric and the conditioning
    is not disturbed.

    Parameters
    ----------
    matrix : csr_matrix
        System matrix, not modified.
    rhs : np.ndarray
        Right-hand side, not modified.
    dofs : np.ndarray
        Constrained dof indices.
    values : np.ndarray
        Prescribed values at ``dofs``.

    Returns
    -------
    matrix, rhs : csr_matrix, np.ndarray
        Eliminated system.
    """
    dofs = np.asarray(dofs, dtype=np.int64)
    if dofs.size == 0:
        return matrix, rhs.copy()

    n = matrix.shape[0]
    diagonal = matrix.diagonal()[dofs]
    diagonal = np.where(diagonal != 0.0, diagonal, 1.0)

    prescribed = np.zeros(n)
    prescribed[dofs] = values
    rhs = rhs - matrix @ prescribed
    rhs[dofs] = diagonal * np.asarray(values, dtype=float)

    free = np.ones(n)
    free[dofs] = 0.0
    keep = sp.diags(free)
    fixed = np.zeros(n)
    fixed[dofs] = diagonal
    eliminated = (keep @ matrix @ keep + sp.diags(fixed)).tocsr()
    eliminated.eliminate_zeros()
    return eliminated, rhs
