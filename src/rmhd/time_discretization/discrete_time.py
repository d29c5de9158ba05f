"""Discrete time controller."""

import enum
import logging
from typing import Optional

from ..exceptions import InvalidStepSize, NotReady

log = logging.getLogger(__name__)


class TimeState(enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINISHED = "finished"


class DiscreteTime:
    """Tracks current/previous/next time, step number and step sizes.

    The last step is clipped to land exactly on ``end_time``; a remainder
    below ``clip_tolerance`` times the step is folded into the last step
    instead of producing a sliver step.
    """

    clip_tolerance = 1e-10

    def __init__(self, start_time: float, end_time: float, initial_step_size: Optional[float] = None):
        if end_time <= start_time:
            raise InvalidStepSize(f"end_time ({end_time}) must exceed start_time ({start_time})")
        self.start_time = start_time
        self.end_time = end_time
        self.initial_step_size = initial_step_size
        self.restart()

    def restart(self):
        """Reset to ``not_started`` with the configured bounds."""
        self.state = TimeState.NOT_STARTED
        self.current_time = self.start_time
        self.previous_time = self.start_time
        self.step_number = 0
        self.previous_step_size: Optional[float] = None
        self.next_step_size: Optional[float] = None
        self.next_time: Optional[float] = None
        if self.initial_step_size is not None:
            self.set_desired_next_step_size(self.initial_step_size)

    @property
    def is_at_start(self) -> bool:
        return self.step_number == 0

    @property
    def is_at_end(self) -> bool:
        return self.state is TimeState.FINISHED

    def set_desired_next_step_size(self, step_size: float):
        if step_size <= 0.0:
            raise InvalidStepSize(f"Step size must be positive, got {step_size}")
        if self.state is TimeState.FINISHED:
            raise NotReady("Cannot set a step size after reaching the end time")
        next_time = self.current_time + step_size
        if next_time > self.end_time - self.clip_tolerance * step_size:
            next_time = self.end_time
            step_size = self.end_time - self.current_time
        self.next_time = next_time
        self.next_step_size = step_size

    def advance_time(self):
        if self.state is TimeState.FINISHED:
            raise NotReady("advance_time() called after reaching the end time")
        if self.next_step_size is None:
            raise NotReady("advance_time() called before a step size was set")

        self.previous_time = self.current_time
        self.current_time = self.next_time
        self.previous_step_size = self.next_step_size
        self.step_number += 1

        if self.current_time == self.end_time:
            self.state = TimeState.FINISHED
            self.next_time = None
            self.next_step_size = None
            log.debug(f"Reached end time t={self.end_time} after {self.step_number} steps")
        else:
            self.state = TimeState.RUNNING
            self.set_desired_next_step_size(self.previous_step_size)

    def __repr__(self):
        return (
            f"{type(self).__name__}(step={self.step_number}, t={self.current_time:.6g}, "
            f"dt={self.next_step_size}, state={self.state.value})"
        )
