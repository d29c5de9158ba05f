"""VSIMEX incremental pressure-projection solver for incompressible flow and heat transfer.

Structure:

    TimeDependentSolver (base.py)
    ├── NavierStokesProjection   diffusion -> projection -> pressure correction
    └── HeatEquation             convection-diffusion of the temperature

    VSIMEXMethod (time_discretization)   time controller + coefficient engine
    CoupledDriver (driver.py)            per-step ordering, diagnostics, output
    Problem (problems)                   mesh, entities, boundary conditions
"""

from .datastructures import (
    HeatEquationParameters,
    LinearSolverParameters,
    Metrics,
    NavierStokesParameters,
    ProblemParameters,
    StageReport,
    TimeDiscretizationParameters,
    TimeSeries,
)
from .driver import CoupledDriver, SimulationSession
from .entities import ScalarField, VectorField
from .exceptions import (
    ConfigurationConflict,
    InvalidStepSize,
    NotReady,
    ProjectionSolverError,
    SingularSystem,
    SolverDivergence,
)
from .heat_equation import HeatEquation
from .meshing import RectangularMesh
from .navier_stokes_projection import NavierStokesProjection
from .time_discretization import VSIMEXMethod

__all__ = [
    "HeatEquationParameters",
    "LinearSolverParameters",
    "Metrics",
    "NavierStokesParameters",
    "ProblemParameters",
    "StageReport",
    "TimeDiscretizationParameters",
    "TimeSeries",
    "CoupledDriver",
    "SimulationSession",
    "ScalarField",
    "VectorField",
    "ConfigurationConflict",
    "InvalidStepSize",
    "NotReady",
    "ProjectionSolverError",
    "SingularSystem",
    "SolverDivergence",
    "HeatEquation",
    "RectangularMesh",
    "NavierStokesProjection",
    "VSIMEXMethod",
]
