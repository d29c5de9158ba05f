from .base import Problem
from .guermond import GuermondProblem
from .heated_cavity import DifferentiallyHeatedCavityProblem
from .polynomial_stokes import PolynomialStokesProblem

__all__ = [
    "Problem",
    "GuermondProblem",
    "DifferentiallyHeatedCavityProblem",
    "PolynomialStokesProblem",
]
