"""CFL-based adaptive step-size control."""

import logging

import numpy as np

from .assembly.lagrange_element import shape_values
from .parallel import SerialCommunicator

log = logging.getLogger(__name__)

# Corners, edge midpoints and centre of the reference cell.
_SAMPLE = np.array([-1.0, 0.0, 1.0])
_XI, _ETA = np.meshgrid(_SAMPLE, _SAMPLE, indexing="ij")


class AdaptiveStepSizeController:
    """Step size from dt = Courant * min_cells(diameter / max |u|).

    Parameters
    ----------
    params : TimeDiscretizationParameters
        adaptive_time_stepping, courant_number, minimum/maximum step and the
        adaptive barrier (steps taken with the initial step first).
    mesh : RectangularMesh
    time_stepping : VSIMEXMethod
        Supplies the step number, the initial step size, the admissible
        fraction of the time interval and, without adaptivity, the fixed
        step size.
    communicator : optional
        Reduction provider; SerialCommunicator by default.
    """

    velocity_floor = 1e-10

    def __init__(self, params, mesh, time_stepping, communicator=None):
        self.params = params
        self.mesh = mesh
        self.time_stepping = time_stepping
        self.comm = communicator or SerialCommunicator()
        self._sample_values = {}

    def _sample_shape_values(self, degree):
        if degree not in self._sample_values:
            self._sample_values[degree] = shape_values(degree, _XI.ravel(), _ETA.ravel())
        return self._sample_values[degree]

    def cell_max_velocity(self, velocity, vector=None):
        """Maximum velocity magnitude of each cell over the sample points.

        ``vector`` defaults to ``velocity.old_solution``.
        """
        vector = velocity.old_solution if vector is None else vector
        dofs = velocity.dof_handler
        values = self._sample_shape_values(dofs.degree)
        n = dofs.n_dofs
        ux = vector[:n][dofs.cell_dofs] @ values.T
        uy = vector[n:][dofs.cell_dofs] @ values.T
        return np.hypot(ux, uy).max(axis=1)

    @property
    def upper_bound(self):
        """Largest step the time controller accepts."""
        bound = self.params.maximum_time_step
        ts = self.time_stepping
        fraction = getattr(ts, "max_step_fraction", None)
        if fraction is not None:
            bound = min(bound, fraction * (ts.end_time - ts.start_time))
        return bound

    def compute_next_step_size(self, velocity):
        """Candidate step for the pending step from ``velocity.old_solution``."""
        params = self.params
        ts = self.time_stepping
        if not params.adaptive_time_stepping:
            return ts.next_step_size if ts.next_step_size is not None else ts.initial_step_size
        if ts.step_number < max(1, params.adaptive_time_step_barrier):
            return ts.initial_step_size

        vmax = np.maximum(self.cell_max_velocity(velocity), self.velocity_floor)
        step_size = params.courant_number * self.comm.min(self.mesh.cell_diameters / vmax)
        clipped = min(max(step_size, params.minimum_time_step), self.upper_bound)
        if clipped != step_size:
            log.warning(f"CFL step size {step_size:.3e} clipped to {clipped:.3e}")
        return clipped

    def compute_cfl_number(self, velocity, step_size, vector=None):
        """max over cells of |u| dt / diameter."""
        vmax = self.cell_max_velocity(velocity, vector)
        return self.comm.max(vmax * step_size / self.mesh.cell_diameters)
