"""
RectangularMesh: structured quadrilateral mesh of [x0, x0+Lx] x [y0, y0+Ly].

Indexing Conventions:
- Nodes are numbered row by row: node(i, j) = j * (nx + 1) + i, i along x.
- Cells are numbered the same way: cell(i, j) = j * nx + i.
- cells[c] lists the four corner nodes counter-clockwise starting at the
  lower-left corner.

Boundary Tagging:
- 0 = left (x = x0), 1 = right (x = x0 + Lx), 2 = bottom (y = y0), 3 = top (y = y0 + Ly)
- Corner nodes belong to both adjacent boundaries.

Mesh Changes:
- refine_globally() halves the cell size in place and bumps ``version``;
  anything cached against the mesh compares this counter.
"""

import logging

import numpy as np

log = logging.getLogger(__name__)

BOUNDARY_IDS = (0, 1, 2, 3)


class RectangularMesh:
    def __init__(self, nx, ny, Lx=1.0, Ly=1.0, x0=0.0, y0=0.0):
        if nx < 1 or ny < 1:
            raise ValueError(f"Mesh needs at least one cell per direction, got nx={nx}, ny={ny}")
        self.Lx = Lx
        self.Ly = Ly
        self.x0 = x0
        self.y0 = y0
        self.version = 0
        self._build(nx, ny)

    def _build(self, nx, ny):
        # --- Structured grid info ---
        self.nx = nx
        self.ny = ny
        self.dx = self.Lx / nx
        self.dy = self.Ly / ny

        # --- Geometry ---
        x = self.x0 + self.dx * np.arange(nx + 1)
        y = self.y0 + self.dy * np.arange(ny + 1)
        X, Y = np.meshgrid(x, y)
        self.node_coordinates = np.column_stack([X.ravel(), Y.ravel()])

        # --- Connectivity ---
        i, j = np.meshgrid(np.arange(nx), np.arange(ny))
        lower_left = (j * (nx + 1) + i).ravel()
        self.cells = np.column_stack(
            [lower_left, lower_left + 1, lower_left + nx + 2, lower_left + nx + 1]
        )
        self.cell_origins = self.node_coordinates[self.cells[:, 0]]
        self.cell_diameters = np.full(self.n_cells, np.hypot(self.dx, self.dy))

        # --- Boundary tagging ---
        node_i = np.tile(np.arange(nx + 1), ny + 1)
        node_j = np.repeat(np.arange(ny + 1), nx + 1)
        self._boundary_nodes = {
            0: np.flatnonzero(node_i == 0),
            1: np.flatnonzero(node_i == nx),
            2: np.flatnonzero(node_j == 0),
            3: np.flatnonzero(node_j == ny),
        }

    @property
    def n_nodes(self):
        return (self.nx + 1) * (self.ny + 1)

    @property
    def n_cells(self):
        return self.nx * self.ny

    @property
    def minimum_cell_diameter(self):
        return float(self.cell_diameters.min())

    def boundary_nodes(self, boundary_id):
        if boundary_id not in self._boundary_nodes:
            raise KeyError(f"Unknown boundary id {boundary_id}; expected one of {BOUNDARY_IDS}")
        return self._boundary_nodes[boundary_id]

    def refine_globally(self, n_times=1):
        """Split every cell into four, n_times over."""
        factor = 2 ** n_times
        self._build(self.nx * factor, self.ny * factor)
        self.version += 1
        log.info(f"Mesh refined to {self.nx}x{self.ny} cells ({self.n_nodes} nodes)")

    def __repr__(self):
        return f"RectangularMesh(nx={self.nx}, ny={self.ny}, Lx={self.Lx}, Ly={self.Ly})"
