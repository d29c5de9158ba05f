"""Collective reductions used by the core.

Every reduction the solvers need (CFL minimum, mean-value normalization)
goes through a communicator object so a distributed backend can supply
global versions. SerialCommunicator is the single-process implementation.
"""

import numpy as np


class SerialCommunicator:
    """Single-process communicator: reductions are local."""

    rank = 0
    size = 1

    def min(self, value):
        return float(np.min(value))

    def max(self, value):
        return float(np.max(value))

    def sum(self, value):
        return float(np.sum(value))
