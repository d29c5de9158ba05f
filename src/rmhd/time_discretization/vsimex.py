"""Variable-step IMEX (VSIMEX) BDF2 coefficients.

For a step of size dt_n preceded by one of size dt_{n-1}, with
omega = dt_n / dt_{n-1}:

    alpha = [(1 + 2 omega)/(1 + omega), -(1 + omega), omega^2/(1 + omega)] / dt_n
    beta  = eta = [1 + omega, -omega]
    gamma = [1, 0, 0]

alpha weights u^{n+1}, u^n, u^{n-1} in the time derivative, beta/eta
extrapolate u^n, u^{n-1} to t^{n+1}, gamma weights the implicit terms. Without
a previous step the first-order (backward Euler) set is returned.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..exceptions import InvalidStepSize

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VSIMEXCoefficientSet:
    """One set of multistep coefficients."""

    alpha: Tuple[float, float, float]
    beta: Tuple[float, float]
    gamma: Tuple[float, float, float]
    eta: Tuple[float, float]
    omega: Optional[float]
    step_size: float

    @property
    def order(self) -> int:
        return 1 if self.omega is None else 2


class VSIMEXCoefficients:
    """Coefficient engine with change tracking.

    Parameters
    ----------
    start_time, end_time : float
        Simulation interval, used for the step-size sanity bound.
    max_step_fraction : float or None
        Reject steps larger than this fraction of the interval. None disables
        the bound.
    initial_version : int
        Starting value of the change counter; a restarted controller continues
        from its previous count so cached operators keyed on it stay distinct.
    """

    def __init__(
        self,
        start_time: float,
        end_time: float,
        max_step_fraction: Optional[float] = 0.5,
        initial_version: int = 0,
    ):
        self.start_time = start_time
        self.end_time = end_time
        self.max_step_fraction = max_step_fraction
        self.coefficients: Optional[VSIMEXCoefficientSet] = None
        self.version = initial_version
        self._omega_changed = False
        self._has_omega = False

    def update_coefficients(
        self, step_size_n: float, step_size_n_minus_1: Optional[float] = None
    ) -> VSIMEXCoefficientSet:
        """Compute the coefficients for the step ``step_size_n``."""
        self._check_step_size(step_size_n)
        if step_size_n_minus_1 is None:
            dt = step_size_n
            new = VSIMEXCoefficientSet(
                alpha=(1.0 / dt, -1.0 / dt, 0.0),
                beta=(1.0, 0.0),
                gamma=(1.0, 0.0, 0.0),
                eta=(1.0, 0.0),
                omega=None,
                step_size=dt,
            )
        else:
            if step_size_n_minus_1 <= 0.0:
                raise InvalidStepSize(f"Previous step size must be positive, got {step_size_n_minus_1}")
            dt = step_size_n
            omega = step_size_n / step_size_n_minus_1
            new = VSIMEXCoefficientSet(
                alpha=(
                    (1.0 + 2.0 * omega) / (1.0 + omega) / dt,
                    -(1.0 + omega) / dt,
                    omega * omega / (1.0 + omega) / dt,
                ),
                beta=(1.0 + omega, -omega),
                gamma=(1.0, 0.0, 0.0),
                eta=(1.0 + omega, -omega),
                omega=omega,
                step_size=dt,
            )

        previous = self.coefficients
        self._omega_changed = not self._has_omega or previous.omega != new.omega
        self._has_omega = True
        if previous is None or previous != new:
            self.version += 1
            log.debug(f"VSIMEX coefficients updated: omega={new.omega}, dt={dt:.3e}, version={self.version}")
        self.coefficients = new
        return new

    def coefficients_changed(self) -> bool:
        """True when the last update produced a different step-size ratio."""
        return self._omega_changed

    def _check_step_size(self, step_size):
        if step_size <= 0.0:
            raise InvalidStepSize(f"Step size must be positive, got {step_size}")
        if self.max_step_fraction is not None:
            bound = self.max_step_fraction * (self.end_time - self.start_time)
            if step_size > bound:
                raise InvalidStepSize(
                    f"Step size {step_size} exceeds {self.max_step_fraction} of the time interval ({bound})"
                )
