"""Time discretization: discrete time controller and VSIMEX coefficients."""

from .discrete_time import DiscreteTime, TimeState
from .vsimex import VSIMEXCoefficients, VSIMEXCoefficientSet
from .vsimex_method import VSIMEXMethod

__all__ = [
    "DiscreteTime",
    "TimeState",
    "VSIMEXCoefficients",
    "VSIMEXCoefficientSet",
    "VSIMEXMethod",
]
