"""Finite element field entities.

A field owns its coefficient vectors at three time levels plus a scratch
vector, its dof numbering and its essential boundary conditions:

- solution: value at the time just computed (t^{n+1} after a solve)
- old_solution: previous accepted value (t^n)
- old_old_solution: the one before (t^{n-1})
- distributed_vector: working copy for the solvers

Vector fields store components stacked: [u_x (all dofs); u_y (all dofs)].
"""

import numpy as np

from .assembly.dof_handler import DofHandler
from .assembly.operators import evaluate, evaluate_vector
from .exceptions import NotReady


class BoundaryConditions:
    """Essential boundary conditions of one field.

    Dirichlet data is a function f(x, y, t) (a pair of components for vector
    fields) or None for homogeneous data. ``datum`` pins one dof so that a
    pure Neumann problem has a unique solution. ``revision`` counts changes;
    operators built with the conditions eliminated compare it.
    """

    def __init__(self, n_components=1):
        self.n_components = n_components
        self.dirichlet = {}
        self.datum = False
        self.revision = 0

    def set_dirichlet_bcs(self, boundary_id, function=None):
        if boundary_id in self.dirichlet:
            raise ValueError(f"Boundary {boundary_id} already has a Dirichlet condition")
        self.dirichlet[boundary_id] = function
        self.revision += 1

    def set_datum_at_boundary(self):
        self.datum = True
        self.revision += 1

    def clear(self):
        self.dirichlet.clear()
        self.datum = False
        self.revision += 1

    @property
    def is_pure_neumann(self):
        return not self.dirichlet


class FEField:
    """Lagrange field of a given degree on a RectangularMesh with a three-level history."""

    n_components = 1

    def __init__(self, mesh, name, degree=1):
        self.mesh = mesh
        self.name = name
        self.dof_handler = DofHandler(mesh, degree)
        self.boundary_conditions = BoundaryConditions(self.n_components)
        self.setup_dofs()

    @property
    def degree(self):
        return self.dof_handler.degree

    def setup_dofs(self):
        """(Re)allocate all vectors; called again after a mesh change."""
        if not self.dof_handler.is_current:
            self.dof_handler.distribute_dofs()
        n = self.n_dofs
        self._solution = np.zeros(n)
        self.old_solution = np.zeros(n)
        self.old_old_solution = np.zeros(n)
        self.distributed_vector = np.zeros(n)
        self._rotated = False
        self.mesh_version = self.mesh.version

    @property
    def n_dofs(self):
        return self.n_components * self.dof_handler.n_dofs

    @property
    def solution(self):
        return self._solution

    @solution.setter
    def solution(self, values):
        self._solution = np.array(values, dtype=float)
        self._rotated = False

    def update_solution_vectors(self):
        """Shift history: old_old <- old, old <- solution.

        Raises NotReady when called twice without a new solution in between.
        """
        if self._rotated:
            raise NotReady(f"{self.name}: solution vectors already rotated for this step")
        self.old_old_solution = self.old_solution.copy()
        self.old_solution = self._solution.copy()
        self._rotated = True

    def set_solution_vectors_to_zero(self):
        for vector in (self._solution, self.old_solution, self.old_old_solution):
            vector.fill(0.0)
        self._rotated = False

    # ------------------------------------------------------------------
    # Interpolation and constraints
    # ------------------------------------------------------------------

    def interpolate(self, function, time):
        x, y = self.dof_handler.support_points.T
        return evaluate(function, x, y, time).copy()

    def set_initial_condition(self, function, time):
        """Interpolate ``function`` into all three history levels."""
        values = self.interpolate(function, time)
        self.old_old_solution = values.copy()
        self.old_solution = values.copy()
        self.solution = values
        self._rotated = True

    def component_dofs(self, scalar_dofs):
        """Indices of ``scalar_dofs`` in every component of the stacked vector."""
        scalar_dofs = np.asarray(scalar_dofs, dtype=np.int64)
        n = self.dof_handler.n_dofs
        return np.concatenate([scalar_dofs + d * n for d in range(self.n_components)])

    def constrained_dofs(self, time, homogeneous=False):
        """Dofs fixed by the essential conditions and their values at ``time``.

        With ``homogeneous`` all values are zero (used for increments such as
        the pressure correction).
        """
        bcs = self.boundary_conditions
        values = np.zeros(self.n_dofs)
        mask = np.zeros(self.n_dofs, dtype=bool)
        for boundary_id, function in bcs.dirichlet.items():
            scalar_dofs = self.dof_handler.boundary_dofs(boundary_id)
            dofs = self.component_dofs(scalar_dofs)
            mask[dofs] = True
            if function is not None and not homogeneous:
                values[dofs] = self._boundary_values(function, scalar_dofs, time)
        if bcs.datum and bcs.is_pure_neumann:
            mask[0] = True
        dofs = np.flatnonzero(mask)
        return dofs, values[dofs]

    def _boundary_values(self, function, scalar_dofs, time):
        x, y = self.dof_handler.support_points[scalar_dofs].T
        return evaluate(function, x, y, time)


class ScalarField(FEField):
    n_components = 1


class VectorField(FEField):
    n_components = 2

    def interpolate(self, function, time):
        x, y = self.dof_handler.support_points.T
        fx, fy = evaluate_vector(function, x, y, time)
        return np.concatenate([fx, fy])

    def _boundary_values(self, function, scalar_dofs, time):
        x, y = self.dof_handler.support_points[scalar_dofs].T
        fx, fy = evaluate_vector(function, x, y, time)
        return np.concatenate([fx, fy])

    def component(self, vector, d):
        n = self.dof_handler.n_dofs
        return vector[d * n:(d + 1) * n]

    def magnitude(self, vector):
        n = self.dof_handler.n_dofs
        return np.hypot(vector[:n], vector[n:])
