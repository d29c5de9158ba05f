"""Tensor-product Lagrange (Qk) element on an axis-aligned rectangle with Gauss quadrature.

Local dof numbering is lexicographic: a = j * (k + 1) + i, with i counting
the equispaced support points along x and j along y.
"""

import numpy as np


def lagrange_basis_1d(degree, x):
    """Values and derivatives of the 1D Lagrange polynomials on [-1, 1].

    Parameters
    ----------
    degree : int
        Polynomial degree k (k + 1 equispaced support points).
    x : array_like
        Evaluation points.

    Returns
    -------
    values, derivatives : np.ndarray
        Shape (n_points, k + 1).
    """
    x = np.asarray(x, dtype=float)
    nodes = np.linspace(-1.0, 1.0, degree + 1)
    values = np.empty((x.size, degree + 1))
    derivatives = np.zeros((x.size, degree + 1))
    for m in range(degree + 1):
        others = np.delete(nodes, m)
        denominators = nodes[m] - others
        factors = (x[:, None] - others[None, :]) / denominators
        values[:, m] = factors.prod(axis=1)
        for l in range(degree):
            derivatives[:, m] += np.delete(factors, l, axis=1).prod(axis=1) / denominators[l]
    return values, derivatives


def shape_values(degree, xi, eta):
    """Qk shape functions at the reference points (xi, eta), shape (n_points, (k+1)^2)."""
    vx, _ = lagrange_basis_1d(degree, xi)
    vy, _ = lagrange_basis_1d(degree, eta)
    return np.einsum("pi,pj->pji", vx, vy).reshape(len(vx), -1)


def shape_reference_gradients(degree, xi, eta):
    """d/dxi and d/deta of the shape functions, shape (n_points, (k+1)^2, 2)."""
    vx, dx = lagrange_basis_1d(degree, xi)
    vy, dy = lagrange_basis_1d(degree, eta)
    n = len(vx)
    dxi = np.einsum("pi,pj->pji", dx, vy).reshape(n, -1)
    deta = np.einsum("pi,pj->pji", vx, dy).reshape(n, -1)
    return np.stack([dxi, deta], axis=-1)


class LagrangeElement:
    """Shape values, physical gradients and JxW at the quadrature points.

    All cells of a structured mesh share the same Jacobian, so one instance
    serves the whole mesh. Elements of different degree built with the same
    ``n_points`` share their quadrature and can be combined in mixed
    (velocity-pressure) integrals.

    Parameters
    ----------
    degree : int
        Polynomial degree per direction.
    dx, dy : float
        Cell size.
    n_points : int, optional
        Gauss points per direction, degree + 2 by default (enough to integrate
        the advection integrand exactly for a transport velocity of the same
        degree).
    """

    def __init__(self, degree, dx, dy, n_points=None):
        if degree < 1:
            raise ValueError(f"Element degree must be at least 1, got {degree}")
        self.degree = degree
        self.dx = dx
        self.dy = dy
        self.n_points = n_points or degree + 2

        points, weights = np.polynomial.legendre.leggauss(self.n_points)
        XI, ETA = np.meshgrid(points, points, indexing="ij")
        self.reference_points = np.column_stack([XI.ravel(), ETA.ravel()])
        self.unit_points = 0.5 * (self.reference_points + 1.0)

        self.values = shape_values(degree, XI.ravel(), ETA.ravel())
        ref_grad = shape_reference_gradients(degree, XI.ravel(), ETA.ravel())
        self.gradients = ref_grad * np.array([2.0 / dx, 2.0 / dy])
        self.JxW = np.outer(weights, weights).ravel() * dx * dy / 4.0

    @property
    def dofs_per_cell(self):
        return (self.degree + 1) ** 2

    @property
    def n_quadrature_points(self):
        return self.JxW.size

    def quadrature_points(self, mesh):
        """Physical quadrature point coordinates, shape (n_cells, n_q, 2)."""
        return mesh.cell_origins[:, None, :] + self.unit_points[None, :, :] * np.array([self.dx, self.dy])

    @classmethod
    def for_mesh(cls, mesh, degree=1, n_points=None):
        return cls(degree, mesh.dx, mesh.dy, n_points)

    def __repr__(self):
        return f"LagrangeElement(Q{self.degree}, n_points={self.n_points})"
