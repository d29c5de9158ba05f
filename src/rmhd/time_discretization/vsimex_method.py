"""Time controller combined with the VSIMEX coefficient engine."""

from ..exceptions import NotReady
from .discrete_time import DiscreteTime
from .vsimex import VSIMEXCoefficients


class VSIMEXMethod(DiscreteTime):
    """DiscreteTime that also owns the VSIMEX coefficients of the next step."""

    def __init__(self, start_time, end_time, initial_step_size=None, max_step_fraction=0.5):
        self.max_step_fraction = max_step_fraction
        super().__init__(start_time, end_time, initial_step_size)

    def restart(self):
        super().restart()
        previous = getattr(self, "engine", None)
        self.engine = VSIMEXCoefficients(
            self.start_time,
            self.end_time,
            self.max_step_fraction,
            initial_version=0 if previous is None else previous.version + 1,
        )

    @classmethod
    def from_parameters(cls, params):
        """Build from TimeDiscretizationParameters."""
        return cls(
            params.start_time,
            params.final_time,
            params.initial_time_step,
            params.max_step_fraction,
        )

    def update_coefficients(self):
        """Recompute alpha/beta/gamma/eta for the pending step."""
        if self.next_step_size is None:
            raise NotReady("update_coefficients() called before a step size was set")
        previous = None if self.step_number == 0 else self.previous_step_size
        return self.engine.update_coefficients(self.next_step_size, previous)

    def coefficients_changed(self):
        return self.engine.coefficients_changed()

    @property
    def coefficients(self):
        if self.engine.coefficients is None:
            raise NotReady("VSIMEX coefficients requested before update_coefficients()")
        return self.engine.coefficients

    @property
    def version(self):
        return self.engine.version

    @property
    def alpha(self):
        return self.coefficients.alpha

    @property
    def beta(self):
        return self.coefficients.beta

    @property
    def gamma(self):
        return self.coefficients.gamma

    @property
    def eta(self):
        return self.coefficients.eta
