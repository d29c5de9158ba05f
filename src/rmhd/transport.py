"""Transport (advecting) velocity supplied to the heat equation.

Three variants share one interface:

- CoupledTransport: the live velocity field of a Navier-Stokes solver,
  read from its history (one step behind the temperature).
- AnalyticTransport: a function w(x, y, t) interpolated at the support
  points of a DofHandler.
- NoTransport: pure diffusion.

``extrapolated`` gives the velocity used inside the matrix (semi-implicit
convection), ``history`` the velocities at t^n and t^{n-1} used on the
right-hand side (fully explicit convection). Both return component-stacked
coefficient vectors in the space of ``dof_handler``, which the assembly
interpolates to the quadrature points.
"""

from abc import ABC, abstractmethod

import numpy as np

from .assembly.operators import evaluate_vector


class TransportVelocity(ABC):
    is_active = True
    dof_handler = None

    @abstractmethod
    def extrapolated(self, time_stepping):
        """Velocity at t^{n+1}."""

    @abstractmethod
    def history(self, time_stepping):
        """Velocities at t^n and t^{n-1}."""


class CoupledTransport(TransportVelocity):
    def __init__(self, velocity):
        self.velocity = velocity

    @property
    def dof_handler(self):
        return self.velocity.dof_handler

    def extrapolated(self, time_stepping):
        eta = time_stepping.eta
        return eta[0] * self.velocity.old_solution + eta[1] * self.velocity.old_old_solution

    def history(self, time_stepping):
        return self.velocity.old_solution, self.velocity.old_old_solution


class AnalyticTransport(TransportVelocity):
    def __init__(self, function, dof_handler):
        self.function = function
        self.dof_handler = dof_handler

    def _at(self, time):
        if not self.dof_handler.is_current:
            self.dof_handler.distribute_dofs()
        x, y = self.dof_handler.support_points.T
        wx, wy = evaluate_vector(self.function, x, y, time)
        return np.concatenate([wx, wy])

    def extrapolated(self, time_stepping):
        return self._at(time_stepping.next_time)

    def history(self, time_stepping):
        return self._at(time_stepping.current_time), self._at(time_stepping.previous_time)


class NoTransport(TransportVelocity):
    is_active = False

    def extrapolated(self, time_stepping):
        return None

    def history(self, time_stepping):
        return None, None
