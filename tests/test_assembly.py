"""Tests for the mesh, the Lagrange elements, the dof numbering and operator assembly."""

import numpy as np
import pytest

from rmhd.assembly import (
    CachedOperator,
    DofHandler,
    LagrangeElement,
    apply_boundary_values,
    assemble_advection_matrix,
    assemble_coupling_mass_matrix,
    assemble_divergence_matrix,
    assemble_gradient_matrix,
    assemble_load_vector,
    assemble_mass_matrix,
    assemble_stiffness_matrix,
    lumped_mass,
)
from rmhd.assembly.lagrange_element import lagrange_basis_1d
from rmhd.meshing import RectangularMesh


@pytest.fixture
def dofs(mesh):
    return DofHandler(mesh, 1)


@pytest.fixture
def element(mesh):
    return LagrangeElement.for_mesh(mesh)


@pytest.fixture
def q2_dofs(mesh):
    return DofHandler(mesh, 2)


@pytest.fixture
def q2_element(mesh):
    return LagrangeElement.for_mesh(mesh, 2)


def nodal(dof_handler, function):
    x, y = dof_handler.support_points.T
    return function(x, y)


# ============================================================================
# Mesh
# ============================================================================


class TestRectangularMesh:
    """Geometry, connectivity and boundary tagging."""

    def test_sizes(self):
        mesh = RectangularMesh(3, 2, Lx=3.0, Ly=1.0)
        assert mesh.n_nodes == 12
        assert mesh.n_cells == 6
        assert mesh.dx == 1.0
        assert mesh.dy == 0.5

    def test_cells_counter_clockwise(self, mesh):
        """Corners run lower-left, lower-right, upper-right, upper-left."""
        corners = mesh.node_coordinates[mesh.cells[0]]
        assert np.allclose(corners, [[0.0, 0.0], [0.25, 0.0], [0.25, 0.25], [0.0, 0.25]])

    def test_boundary_nodes(self, mesh):
        coords = mesh.node_coordinates
        assert np.allclose(coords[mesh.boundary_nodes(0), 0], 0.0)
        assert np.allclose(coords[mesh.boundary_nodes(1), 0], 1.0)
        assert np.allclose(coords[mesh.boundary_nodes(2), 1], 0.0)
        assert np.allclose(coords[mesh.boundary_nodes(3), 1], 1.0)
        assert len(mesh.boundary_nodes(0)) == 5
        with pytest.raises(KeyError):
            mesh.boundary_nodes(4)

    def test_refine_globally(self, mesh):
        """Refinement halves the cell size and bumps the version."""
        mesh.refine_globally()
        assert (mesh.nx, mesh.ny) == (8, 8)
        assert mesh.version == 1
        assert np.isclose(mesh.minimum_cell_diameter, np.hypot(0.125, 0.125))

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            RectangularMesh(0, 4)


# ============================================================================
# Lagrange elements and dof numbering
# ============================================================================


class TestLagrangeElement:
    """Shape functions of degree 1 and 2."""

    @pytest.mark.parametrize("degree", [1, 2, 3])
    def test_basis_is_nodal(self, degree):
        nodes = np.linspace(-1.0, 1.0, degree + 1)
        values, derivatives = lagrange_basis_1d(degree, nodes)
        assert np.allclose(values, np.eye(degree + 1))
        assert np.allclose(derivatives.sum(axis=1), 0.0)

    @pytest.mark.parametrize("degree", [1, 2])
    def test_partition_of_unity(self, mesh, degree):
        element = LagrangeElement.for_mesh(mesh, degree)
        assert element.values.shape == (element.n_quadrature_points, (degree + 1) ** 2)
        assert np.allclose(element.values.sum(axis=1), 1.0)
        assert np.allclose(element.gradients.sum(axis=1), 0.0)
        assert np.isclose(element.JxW.sum(), mesh.dx * mesh.dy)

    def test_default_quadrature(self, mesh):
        assert LagrangeElement.for_mesh(mesh, 1).n_points == 3
        assert LagrangeElement.for_mesh(mesh, 2).n_points == 4
        assert LagrangeElement.for_mesh(mesh, 1, 4).n_points == 4

    def test_invalid_degree(self):
        with pytest.raises(ValueError):
            LagrangeElement(0, 1.0, 1.0)


class TestDofHandler:
    """Support points, cell map and boundary dofs."""

    def test_degree_one_matches_mesh_nodes(self, mesh, dofs):
        assert dofs.n_dofs == mesh.n_nodes
        assert np.allclose(dofs.support_points, mesh.node_coordinates)
        assert np.array_equal(np.sort(dofs.cell_dofs, axis=1), np.sort(mesh.cells, axis=1))
        for boundary_id in range(4):
            assert np.array_equal(dofs.boundary_dofs(boundary_id), mesh.boundary_nodes(boundary_id))

    def test_degree_two_sizes(self, mesh, q2_dofs):
        assert q2_dofs.n_dofs == 9 * 9
        assert q2_dofs.cell_dofs.shape == (mesh.n_cells, 9)
        assert len(q2_dofs.boundary_dofs(3)) == 9

    def test_degree_two_first_cell(self, q2_dofs):
        """Local order is lexicographic, x fastest."""
        points = q2_dofs.support_points[q2_dofs.cell_dofs[0]]
        X, Y = np.meshgrid([0.0, 0.125, 0.25], [0.0, 0.125, 0.25])
        assert np.allclose(points, np.column_stack([X.ravel(), Y.ravel()]))

    def test_boundary_dofs(self, q2_dofs):
        points = q2_dofs.support_points
        assert np.allclose(points[q2_dofs.boundary_dofs(0), 0], 0.0)
        assert np.allclose(points[q2_dofs.boundary_dofs(1), 0], 1.0)
        assert np.allclose(points[q2_dofs.boundary_dofs(2), 1], 0.0)
        assert np.allclose(points[q2_dofs.boundary_dofs(3), 1], 1.0)
        with pytest.raises(KeyError):
            q2_dofs.boundary_dofs(4)

    def test_redistribute_after_refinement(self, mesh, q2_dofs):
        mesh.refine_globally()
        assert not q2_dofs.is_current
        q2_dofs.distribute_dofs()
        assert q2_dofs.is_current
        assert q2_dofs.n_dofs == 17 * 17


# ============================================================================
# Constant operators
# ============================================================================


class TestConstantOperators:
    """Mass, stiffness, gradient and divergence matrices."""

    @pytest.mark.parametrize("degree", [1, 2])
    def test_mass_integrates_area(self, degree):
        mesh = RectangularMesh(3, 5, Lx=2.0, Ly=0.5)
        M = assemble_mass_matrix(DofHandler(mesh, degree), LagrangeElement.for_mesh(mesh, degree))
        assert np.isclose(M.sum(), 1.0)
        assert np.isclose(lumped_mass(M).sum(), 1.0)
        assert np.all(lumped_mass(M) > 0.0)

    def test_mass_symmetric_positive(self, dofs, element):
        M = assemble_mass_matrix(dofs, element).toarray()
        assert np.allclose(M, M.T)
        assert np.all(np.linalg.eigvalsh(M) > 0)

    def test_stiffness_annihilates_constants(self, dofs, element):
        K = assemble_stiffness_matrix(dofs, element)
        assert np.allclose(K @ np.ones(dofs.n_dofs), 0.0, atol=1e-13)
        assert np.allclose(K.toarray(), K.toarray().T)

    def test_stiffness_energy_of_linear_function(self, dofs, element):
        """|grad (2x + y)|^2 integrated over the unit square is 5."""
        K = assemble_stiffness_matrix(dofs, element)
        p = nodal(dofs, lambda x, y: 2.0 * x + y)
        assert np.isclose(p @ (K @ p), 5.0)

    def test_stiffness_energy_of_quadratic_function(self, q2_dofs, q2_element):
        """|grad x^2|^2 integrated over the unit square is 4/3."""
        K = assemble_stiffness_matrix(q2_dofs, q2_element)
        T = nodal(q2_dofs, lambda x, y: x**2)
        assert np.isclose(T @ (K @ T), 4.0 / 3.0)

    def test_gradient_of_linear_pressure(self, dofs, element):
        """G p for p = x + y equals the load of the constant vector (1, 1)."""
        G = assemble_gradient_matrix(dofs, element, dofs, element)
        M = assemble_mass_matrix(dofs, element)
        p = nodal(dofs, lambda x, y: x + y)
        expected = np.concatenate([lumped_mass(M), lumped_mass(M)])
        assert np.allclose(G @ p, expected)

    def test_taylor_hood_gradient(self, mesh, dofs, q2_dofs, q2_element):
        """Q2 velocity tests against Q1 pressure trials: G p is the Q2 load of (1, 1)."""
        pressure_element = LagrangeElement.for_mesh(mesh, 1, q2_element.n_points)
        G = assemble_gradient_matrix(q2_dofs, q2_element, dofs, pressure_element)
        assert G.shape == (2 * q2_dofs.n_dofs, dofs.n_dofs)
        weights = lumped_mass(assemble_mass_matrix(q2_dofs, q2_element))
        p = nodal(dofs, lambda x, y: x + y)
        assert np.allclose(G @ p, np.concatenate([weights, weights]))

    def test_divergence_of_solenoidal_field(self, dofs, element):
        """D u vanishes for the bilinear divergence-free field (x, -y)."""
        D = assemble_divergence_matrix(dofs, element, dofs, element)
        u = np.concatenate([nodal(dofs, lambda x, y: x), nodal(dofs, lambda x, y: -y)])
        assert np.allclose(D @ u, 0.0, atol=1e-14)

    def test_taylor_hood_divergence_of_quadratic_field(self, mesh, dofs, q2_dofs, q2_element):
        """(x^2, -2xy) is divergence free and lies in Q2."""
        pressure_element = LagrangeElement.for_mesh(mesh, 1, q2_element.n_points)
        D = assemble_divergence_matrix(dofs, pressure_element, q2_dofs, q2_element)
        assert D.shape == (dofs.n_dofs, 2 * q2_dofs.n_dofs)
        u = np.concatenate([nodal(q2_dofs, lambda x, y: x**2), nodal(q2_dofs, lambda x, y: -2.0 * x * y)])
        assert np.allclose(D @ u, 0.0, atol=1e-13)

    def test_divergence_is_gradient_transpose(self, mesh, dofs, q2_dofs, q2_element):
        pressure_element = LagrangeElement.for_mesh(mesh, 1, q2_element.n_points)
        G = assemble_gradient_matrix(q2_dofs, q2_element, dofs, pressure_element)
        D = assemble_divergence_matrix(dofs, pressure_element, q2_dofs, q2_element)
        assert G.shape == D.T.shape
        # int q div v = -int grad q . v + boundary terms; interior columns agree up to sign
        boundary = np.concatenate([q2_dofs.boundary_dofs(b) for b in range(4)])
        interior = np.setdiff1d(np.arange(q2_dofs.n_dofs), boundary)
        rows = np.concatenate([interior, interior + q2_dofs.n_dofs])
        assert np.allclose(D.toarray()[:, rows], -G.toarray()[rows, :].T)

    def test_mixed_operators_need_shared_quadrature(self, dofs, element, q2_dofs, q2_element):
        with pytest.raises(ValueError, match="shared quadrature"):
            assemble_gradient_matrix(q2_dofs, q2_element, dofs, element)

    def test_coupling_mass_reproduces_constant(self, mesh, dofs, q2_dofs, q2_element):
        """C 1 equals the Q2 lumped mass for a Q1 trial space."""
        trial_element = LagrangeElement.for_mesh(mesh, 1, q2_element.n_points)
        C = assemble_coupling_mass_matrix(q2_dofs, q2_element, dofs, trial_element)
        weights = lumped_mass(assemble_mass_matrix(q2_dofs, q2_element))
        assert np.allclose(C @ np.ones(dofs.n_dofs), weights)

    def test_load_vector(self, dofs, element):
        """Load of f = x integrates to 1/2 on the unit square."""
        F = assemble_load_vector(dofs, element, lambda x, y, t: x, 0.0)
        assert np.isclose(F.sum(), 0.5)


# ============================================================================
# Advection
# ============================================================================


class TestAdvection:
    """Standard and skew-symmetric advection operators."""

    @pytest.mark.parametrize("weak_form", ["standard", "skew_symmetric"])
    def test_constants_preserved_for_solenoidal_transport(self, dofs, element, weak_form):
        w = np.concatenate([nodal(dofs, lambda x, y: -(y - 0.5)), nodal(dofs, lambda x, y: x - 0.5)])
        A = assemble_advection_matrix(dofs, element, w, weak_form)
        assert np.allclose(A @ np.ones(dofs.n_dofs), 0.0, atol=1e-14)

    def test_skew_symmetric_divergence_correction(self, dofs, element):
        """For w = (x, 0) the skew form adds 1/2 (div w) M."""
        w = np.concatenate([nodal(dofs, lambda x, y: x), np.zeros(dofs.n_dofs)])
        A = assemble_advection_matrix(dofs, element, w, "skew_symmetric")
        M = assemble_mass_matrix(dofs, element)
        assert np.allclose(A @ np.ones(dofs.n_dofs), 0.5 * lumped_mass(M))

    def test_advection_of_linear_field(self, dofs, element):
        """Uniform transport (1, 0) of T = x gives the load of 1."""
        w = np.concatenate([np.ones(dofs.n_dofs), np.zeros(dofs.n_dofs)])
        A = assemble_advection_matrix(dofs, element, w, "standard")
        M = assemble_mass_matrix(dofs, element)
        assert np.allclose(A @ nodal(dofs, lambda x, y: x), lumped_mass(M))

    def test_advection_of_quadratic_field(self, q2_dofs, q2_element):
        """Uniform transport (1, 0) of T = x^2 gives the load of 2x."""
        w = np.concatenate([np.ones(q2_dofs.n_dofs), np.zeros(q2_dofs.n_dofs)])
        A = assemble_advection_matrix(q2_dofs, q2_element, w, "standard")
        T = nodal(q2_dofs, lambda x, y: x**2)
        expected = assemble_load_vector(q2_dofs, q2_element, lambda x, y, t: 2.0 * x, 0.0)
        assert np.allclose(A @ T, expected)

    def test_transport_from_other_space(self, mesh, dofs, q2_dofs, q2_element):
        """A Q1 transport velocity advecting a Q2 field."""
        transport_element = LagrangeElement.for_mesh(mesh, 1, q2_element.n_points)
        w = np.concatenate([nodal(dofs, lambda x, y: x), np.zeros(dofs.n_dofs)])
        A = assemble_advection_matrix(
            q2_dofs,
            q2_element,
            w,
            "standard",
            transport_dofs=dofs,
            transport_element=transport_element,
        )
        T = nodal(q2_dofs, lambda x, y: y + x)
        expected = assemble_load_vector(q2_dofs, q2_element, lambda x, y, t: x, 0.0)
        assert np.allclose(A @ T, expected)


# ============================================================================
# Boundary elimination and caching
# ============================================================================


class TestBoundaryValues:
    """Symmetric elimination of prescribed dofs."""

    def test_elimination_keeps_symmetry_and_solution(self, dofs, element):
        K = assemble_stiffness_matrix(dofs, element) + assemble_mass_matrix(dofs, element)
        exact = nodal(dofs, lambda x, y: 1.0 + x * y)
        rhs = K @ exact
        constrained = dofs.boundary_dofs(0)
        matrix, eliminated_rhs = apply_boundary_values(K, rhs, constrained, exact[constrained])

        dense = matrix.toarray()
        assert np.allclose(dense, dense.T)
        assert np.allclose(dense[constrained][:, constrained], np.diag(K.diagonal()[constrained]))
        assert np.allclose(np.linalg.solve(dense, eliminated_rhs), exact)

    def test_inputs_not_modified(self, dofs, element):
        K = assemble_stiffness_matrix(dofs, element)
        rhs = np.ones(dofs.n_dofs)
        before = K.copy()
        apply_boundary_values(K, rhs, [0], [2.0])
        assert np.allclose(rhs, 1.0)
        assert abs(K - before).sum() == 0.0

    def test_no_constraints(self, dofs, element):
        K = assemble_stiffness_matrix(dofs, element)
        matrix, rhs = apply_boundary_values(K, np.ones(dofs.n_dofs), np.array([], dtype=int), np.array([]))
        assert matrix is K
        assert np.allclose(rhs, 1.0)


class TestCachedOperator:
    """Rebuild only on a new key or after invalidation."""

    def test_rebuild_on_key_change(self):
        calls = []
        cache = CachedOperator("test", lambda: calls.append(1) or len(calls))
        assert cache.get((1, 0)) == 1
        assert cache.get((1, 0)) == 1
        assert cache.n_builds == 1
        assert cache.is_stale((2, 0))
        assert cache.get((2, 0)) == 2
        cache.invalidate()
        assert cache.get((2, 0)) == 3
        assert cache.n_builds == 3
