"""
DofHandler: numbering of the Qk degrees of freedom on a RectangularMesh.

Indexing Conventions:
- Support points form a (k nx + 1) x (k ny + 1) grid numbered row by row:
  dof(i, j) = j * (k nx + 1) + i. For k = 1 they coincide with the mesh nodes.
- cell_dofs[c] lists the (k + 1)^2 dofs of cell c in the lexicographic local
  order of LagrangeElement.
- Boundary ids follow the mesh: 0 left, 1 right, 2 bottom, 3 top.

Scalar numbering only; vector fields stack one copy per component.
"""

import numpy as np

from ..meshing.rectangle import BOUNDARY_IDS


class DofHandler:
    def __init__(self, mesh, degree=1):
        if degree < 1:
            raise ValueError(f"Finite element degree must be at least 1, got {degree}")
        self.mesh = mesh
        self.degree = degree
        self.distribute_dofs()

    def distribute_dofs(self):
        """(Re)number the dofs for the current mesh."""
        mesh, k = self.mesh, self.degree
        nx, ny = k * mesh.nx, k * mesh.ny

        # --- Support points ---
        x = mesh.x0 + (mesh.dx / k) * np.arange(nx + 1)
        y = mesh.y0 + (mesh.dy / k) * np.arange(ny + 1)
        X, Y = np.meshgrid(x, y)
        self.support_points = np.column_stack([X.ravel(), Y.ravel()])

        # --- Cell -> dof map ---
        cell_i, cell_j = np.meshgrid(np.arange(mesh.nx), np.arange(mesh.ny))
        local_i, local_j = np.meshgrid(np.arange(k + 1), np.arange(k + 1))
        dof_i = k * cell_i.ravel()[:, None] + local_i.ravel()[None, :]
        dof_j = k * cell_j.ravel()[:, None] + local_j.ravel()[None, :]
        self.cell_dofs = dof_j * (nx + 1) + dof_i

        # --- Boundary tagging ---
        grid_i = np.tile(np.arange(nx + 1), ny + 1)
        grid_j = np.repeat(np.arange(ny + 1), nx + 1)
        self._boundary_dofs = {
            0: np.flatnonzero(grid_i == 0),
            1: np.flatnonzero(grid_i == nx),
            2: np.flatnonzero(grid_j == 0),
            3: np.flatnonzero(grid_j == ny),
        }
        self.n_dofs = (nx + 1) * (ny + 1)
        self.mesh_version = mesh.version

    @property
    def is_current(self):
        return self.mesh_version == self.mesh.version

    @property
    def dofs_per_cell(self):
        return (self.degree + 1) ** 2

    def boundary_dofs(self, boundary_id):
        if boundary_id not in self._boundary_dofs:
            raise KeyError(f"Unknown boundary id {boundary_id}; expected one of {BOUNDARY_IDS}")
        return self._boundary_dofs[boundary_id]

    def __repr__(self):
        return f"DofHandler(Q{self.degree}, n_dofs={self.n_dofs})"
