"""Vectorized Qk operator assembly for structured rectangular meshes.

Local matrices are built for all cells at once with einsum and scattered
into scipy.sparse CSR matrices via COO triplets (duplicates are summed).

Conventions:
- Every space is a (DofHandler, LagrangeElement) pair; mixed operators take
  a test and a trial pair whose elements share the quadrature.
- Scalar operators act on vectors of length dof_handler.n_dofs.
- Vector operators act on component-stacked vectors [u_x; u_y] and are
  block diagonal.
- Functions are called as f(x, y, t) with coordinate arrays; scalar
  functions return an array (or a scalar), vector functions a pair.
"""

import numpy as np
import scipy.sparse as sp


# -----------------------------------------------------------------------------
# Scatter helpers
# -----------------------------------------------------------------------------


def scatter_matrix(row_dofs, local, col_dofs=None):
    """Sum local matrices into a global CSR matrix.

    Parameters
    ----------
    row_dofs : DofHandler
        Test space numbering.
    local : ndarray
        Either one (r, c) matrix shared by all cells or (n_cells, r, c).
    col_dofs : DofHandler, optional
        Trial space numbering; the test space by default.
    """
    col_dofs = row_dofs if col_dofs is None else col_dofs
    rows_per_cell = row_dofs.cell_dofs
    cols_per_cell = col_dofs.cell_dofs
    n_cells, r = rows_per_cell.shape
    c = cols_per_cell.shape[1]
    if local.ndim == 2:
        local = np.broadcast_to(local, (n_cells, r, c))
    rows = np.repeat(rows_per_cell, c, axis=1).ravel()
    cols = np.tile(cols_per_cell, (1, r)).ravel()
    data = local.reshape(n_cells, r * c).ravel()
    return sp.coo_matrix((data, (rows, cols)), shape=(row_dofs.n_dofs, col_dofs.n_dofs)).tocsr()


def scatter_vector(dof_handler, local):
    """Sum local (n_cells, dofs_per_cell) vectors into a global vector."""
    return np.bincount(dof_handler.cell_dofs.ravel(), weights=local.ravel(), minlength=dof_handler.n_dofs)


def evaluate(function, x, y, t):
    """Evaluate a scalar function and broadcast constants to the point shape."""
    return np.broadcast_to(np.asarray(function(x, y, t), dtype=float), x.shape)


def evaluate_vector(function, x, y, t):
    fx, fy = function(x, y, t)
    return (
        np.broadcast_to(np.asarray(fx, dtype=float), x.shape),
        np.broadcast_to(np.asarray(fy, dtype=float), x.shape),
    )


def vector_operator(scalar_operator):
    """Block-diagonal two-component version of a scalar operator."""
    return sp.block_diag([scalar_operator, scalar_operator], format="csr")


def _check_quadrature(test_element, trial_element):
    if test_element.n_points != trial_element.n_points:
        raise ValueError(
            f"Mixed operator needs a shared quadrature: {test_element} vs {trial_element}"
        )


# -----------------------------------------------------------------------------
# Constant operators
# -----------------------------------------------------------------------------


def assemble_mass_matrix(dof_handler, element):
    local = np.einsum("qa,qb,q->ab", element.values, element.values, element.JxW)
    return scatter_matrix(dof_handler, local)


def assemble_stiffness_matrix(dof_handler, element):
    local = np.einsum("qad,qbd,q->ab", element.gradients, element.gradients, element.JxW)
    return scatter_matrix(dof_handler, local)


def assemble_coupling_mass_matrix(test_dofs, test_element, trial_dofs, trial_element):
    """C[i, j] = int N_i M_j for test functions N and trial functions M."""
    _check_quadrature(test_element, trial_element)
    local = np.einsum("qa,qb,q->ab", test_element.values, trial_element.values, test_element.JxW)
    return scatter_matrix(test_dofs, local, trial_dofs)


def assemble_derivative_matrices(test_dofs, test_element, trial_dofs, trial_element):
    """Return (B_x, B_y) with B_d[i, j] = int N_i dM_j/dx_d.

    With velocity test functions and pressure trial functions [B_x; B_y] is
    the gradient operator; with the roles swapped [B_x, B_y] is the
    divergence operator.
    """
    _check_quadrature(test_element, trial_element)
    blocks = []
    for d in range(2):
        local = np.einsum(
            "qa,qb,q->ab", test_element.values, trial_element.gradients[:, :, d], test_element.JxW
        )
        blocks.append(scatter_matrix(test_dofs, local, trial_dofs))
    return tuple(blocks)


def assemble_gradient_matrix(velocity_dofs, velocity_element, pressure_dofs, pressure_element):
    """G[i, j] = int N_i . grad M_j, shape (2 n_u, n_p)."""
    bx, by = assemble_derivative_matrices(velocity_dofs, velocity_element, pressure_dofs, pressure_element)
    return sp.vstack([bx, by], format="csr")


def assemble_divergence_matrix(pressure_dofs, pressure_element, velocity_dofs, velocity_element):
    """D[i, j] = int M_i div N_j, shape (n_p, 2 n_u)."""
    bx, by = assemble_derivative_matrices(pressure_dofs, pressure_element, velocity_dofs, velocity_element)
    return sp.hstack([bx, by], format="csr")


def lumped_mass(mass_matrix):
    return np.asarray(mass_matrix.sum(axis=1)).ravel()


# -----------------------------------------------------------------------------
# Variable operators
# -----------------------------------------------------------------------------


def assemble_advection_matrix(
    dof_handler, element, transport, weak_form="skew_symmetric", transport_dofs=None, transport_element=None
):
    """Scalar advection operator for a finite element transport velocity.

    A[i, j] = int N_i (w . grad N_j) [+ 1/2 (div w) N_i N_j]

    Parameters
    ----------
    transport : ndarray
        Component-stacked coefficients [w_x; w_y] in the transport space.
    weak_form : str
        "standard" or "skew_symmetric".
    transport_dofs, transport_element : optional
        Space of ``transport``; the advected space by default.
    """
    if transport_dofs is None:
        transport_dofs, transport_element = dof_handler, element
    _check_quadrature(element, transport_element)

    n = transport_dofs.n_dofs
    cells = transport_dofs.cell_dofs
    w_cells = np.stack([transport[:n][cells], transport[n:][cells]], axis=-1)
    w_q = np.einsum("qa,cad->cqd", transport_element.values, w_cells)
    local = np.einsum(
        "qa,cqd,qbd,q->cab", element.values, w_q, element.gradients, element.JxW, optimize=True
    )
    if weak_form == "skew_symmetric":
        div_w = np.einsum("qad,cad->cq", transport_element.gradients, w_cells)
        local += 0.5 * np.einsum(
            "qa,qb,cq,q->cab", element.values, element.values, div_w, element.JxW, optimize=True
        )
    return scatter_matrix(dof_handler, local)


def assemble_load_vector(dof_handler, element, function, time):
    """F_i = int f(x, t) N_i for a scalar function."""
    points = element.quadrature_points(dof_handler.mesh)
    f_q = evaluate(function, points[..., 0], points[..., 1], time)
    local = np.einsum("qa,cq,q->ca", element.values, f_q, element.JxW)
    return scatter_vector(dof_handler, local)


def assemble_vector_load_vector(dof_handler, element, function, time):
    """Component-stacked load vector of a vector-valued function."""
    points = element.quadrature_points(dof_handler.mesh)
    fx, fy = evaluate_vector(function, points[..., 0], points[..., 1], time)
    parts = [
        scatter_vector(dof_handler, np.einsum("qa,cq,q->ca", element.values, f_q, element.JxW))
        for f_q in (fx, fy)
    ]
    return np.concatenate(parts)
