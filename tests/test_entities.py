"""Tests for the field entities, boundary conditions and transport velocities."""

import numpy as np
import pytest

from rmhd.assembly import DofHandler
from rmhd.entities import BoundaryConditions, ScalarField, VectorField
from rmhd.exceptions import NotReady
from rmhd.transport import AnalyticTransport, CoupledTransport, NoTransport


def linear(x, y, t):
    return x + 2.0 * y + t


def swirl(x, y, t):
    return -y, x


class TestFieldHistory:
    """Three-level solution history."""

    def test_initial_condition_fills_all_levels(self, mesh):
        field = ScalarField(mesh, "T")
        field.set_initial_condition(linear, 0.5)
        x, y = mesh.node_coordinates.T
        for vector in (field.solution, field.old_solution, field.old_old_solution):
            assert np.allclose(vector, x + 2.0 * y + 0.5)

    def test_rotation(self, mesh):
        field = ScalarField(mesh, "T")
        field.set_initial_condition(lambda x, y, t: 1.0, 0.0)
        field.solution = np.full(mesh.n_nodes, 2.0)
        field.update_solution_vectors()
        assert np.allclose(field.old_solution, 2.0)
        assert np.allclose(field.old_old_solution, 1.0)

        field.solution = np.full(mesh.n_nodes, 3.0)
        field.update_solution_vectors()
        assert np.allclose(field.old_solution, 3.0)
        assert np.allclose(field.old_old_solution, 2.0)

    def test_double_rotation_rejected(self, mesh):
        """Rotating twice without a new solution raises NotReady."""
        field = ScalarField(mesh, "T")
        field.solution = np.ones(mesh.n_nodes)
        field.update_solution_vectors()
        with pytest.raises(NotReady):
            field.update_solution_vectors()

    def test_initial_condition_counts_as_rotated(self, mesh):
        field = ScalarField(mesh, "T")
        field.set_initial_condition(linear, 0.0)
        with pytest.raises(NotReady):
            field.update_solution_vectors()

    def test_rotation_does_not_alias(self, mesh):
        field = ScalarField(mesh, "T")
        field.solution = np.ones(mesh.n_nodes)
        field.update_solution_vectors()
        field.solution[:] = 5.0
        assert np.allclose(field.old_solution, 1.0)

    def test_set_to_zero(self, mesh):
        field = VectorField(mesh, "u")
        field.set_initial_condition(swirl, 0.0)
        field.set_solution_vectors_to_zero()
        assert not field.old_solution.any()
        assert not field.old_old_solution.any()
        assert not field.solution.any()

    def test_setup_after_refinement(self, mesh):
        field = VectorField(mesh, "u")
        mesh.refine_globally()
        field.setup_dofs()
        assert field.n_dofs == 2 * 81
        assert field.old_solution.shape == (162,)
        assert field.mesh_version == mesh.version

    def test_quadratic_field_after_refinement(self, mesh):
        field = ScalarField(mesh, "T", 2)
        assert field.degree == 2
        assert field.n_dofs == 9 * 9
        mesh.refine_globally()
        field.setup_dofs()
        assert field.dof_handler.is_current
        assert field.n_dofs == 17 * 17


class TestConstraints:
    """Dirichlet dofs and the pressure datum."""

    def test_scalar_dirichlet(self, mesh):
        field = ScalarField(mesh, "T")
        field.boundary_conditions.set_dirichlet_bcs(0, linear)
        dofs, values = field.constrained_dofs(1.0)
        assert np.array_equal(dofs, mesh.boundary_nodes(0))
        y = mesh.node_coordinates[dofs, 1]
        assert np.allclose(values, 2.0 * y + 1.0)

    def test_homogeneous(self, mesh):
        field = ScalarField(mesh, "T")
        field.boundary_conditions.set_dirichlet_bcs(0, linear)
        _, values = field.constrained_dofs(1.0, homogeneous=True)
        assert not values.any()

    def test_vector_dirichlet_covers_both_components(self, mesh):
        field = VectorField(mesh, "u")
        for boundary_id in range(4):
            field.boundary_conditions.set_dirichlet_bcs(boundary_id, swirl)
        dofs, values = field.constrained_dofs(0.0)
        assert len(dofs) == 2 * 16
        expected = field.interpolate(swirl, 0.0)
        assert np.allclose(values, expected[dofs])

    def test_datum_only_without_dirichlet(self, mesh):
        pressure = ScalarField(mesh, "p")
        pressure.boundary_conditions.set_datum_at_boundary()
        dofs, _ = pressure.constrained_dofs(0.0)
        assert np.array_equal(dofs, [0])

        pressure.boundary_conditions.set_dirichlet_bcs(1)
        dofs, _ = pressure.constrained_dofs(0.0)
        assert 0 not in dofs
        assert not pressure.boundary_conditions.is_pure_neumann

    def test_duplicate_boundary_rejected(self, mesh):
        field = ScalarField(mesh, "T")
        field.boundary_conditions.set_dirichlet_bcs(2)
        with pytest.raises(ValueError):
            field.boundary_conditions.set_dirichlet_bcs(2)
        field.boundary_conditions.clear()
        field.boundary_conditions.set_dirichlet_bcs(2)

    def test_revision_counts_changes(self):
        bcs = BoundaryConditions()
        assert bcs.revision == 0
        bcs.set_dirichlet_bcs(0)
        bcs.set_datum_at_boundary()
        assert bcs.revision == 2
        bcs.clear()
        assert bcs.revision == 3

    def test_quadratic_vector_dirichlet(self, mesh):
        """Q2 boundary dofs include the edge midpoints."""
        field = VectorField(mesh, "u", 2)
        field.boundary_conditions.set_dirichlet_bcs(2, swirl)
        dofs, values = field.constrained_dofs(0.0)
        assert len(dofs) == 2 * 9
        x = field.dof_handler.support_points[dofs[:9], 0]
        assert np.allclose(x, np.linspace(0.0, 1.0, 9))
        assert np.allclose(values[:9], 0.0)
        assert np.allclose(values[9:], x)


class TestVectorField:
    def test_components(self, mesh):
        field = VectorField(mesh, "u")
        vector = field.interpolate(lambda x, y, t: (3.0, 4.0), 0.0)
        assert np.allclose(field.component(vector, 0), 3.0)
        assert np.allclose(field.component(vector, 1), 4.0)
        assert np.allclose(field.magnitude(vector), 5.0)

    def test_quadratic_components(self, mesh):
        field = VectorField(mesh, "u", 2)
        vector = field.interpolate(swirl, 0.0)
        assert vector.shape == (2 * 81,)
        x, y = field.dof_handler.support_points.T
        assert np.allclose(field.component(vector, 0), -y)
        assert np.allclose(field.component(vector, 1), x)


class TestTransport:
    """Transport velocity variants."""

    def test_coupled_extrapolates_with_eta(self, mesh, time_stepping):
        velocity = VectorField(mesh, "u")
        velocity.old_solution = np.full(velocity.n_dofs, 2.0)
        velocity.old_old_solution = np.full(velocity.n_dofs, 1.0)
        time_stepping.advance_time()
        time_stepping.update_coefficients()

        transport = CoupledTransport(velocity)
        assert np.allclose(transport.extrapolated(time_stepping), 3.0)
        w_old, w_old_old = transport.history(time_stepping)
        assert np.allclose(w_old, 2.0)
        assert np.allclose(w_old_old, 1.0)

    def test_analytic_evaluates_at_step_times(self, mesh, time_stepping):
        transport = AnalyticTransport(lambda x, y, t: (t + 0.0 * x, -t + 0.0 * y), DofHandler(mesh))
        time_stepping.advance_time()
        n = mesh.n_nodes
        assert np.allclose(transport.extrapolated(time_stepping)[:n], 0.2)
        w_old, w_old_old = transport.history(time_stepping)
        assert np.allclose(w_old[n:], -0.1)
        assert np.allclose(w_old_old[:n], 0.0)

    def test_no_transport(self, time_stepping):
        transport = NoTransport()
        assert not transport.is_active
        assert transport.extrapolated(time_stepping) is None
