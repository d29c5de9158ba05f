"""Pytest configuration and fixtures for the projection solver tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def mesh():
    """4x4 cells on the unit square."""
    from rmhd.meshing import RectangularMesh

    return RectangularMesh(4, 4)


@pytest.fixture
def time_stepping():
    """VSIMEX controller on [0, 1] with a fixed step of 0.1."""
    from rmhd.time_discretization import VSIMEXMethod

    return VSIMEXMethod(0.0, 1.0, initial_step_size=0.1)


@pytest.fixture
def tight_solver():
    """Solver settings tight enough to reproduce discrete fixed points."""
    return {
        "relative_tolerance": 1e-12,
        "absolute_tolerance": 1e-14,
        "n_maximum_iterations": 500,
    }


@pytest.fixture
def hydrodynamic_params(tight_solver):
    """ProblemParameters mapping for a small hydrodynamic run."""
    return {
        "problem_type": "hydrodynamic",
        "Re": 1.0,
        "nx": 4,
        "ny": 4,
        "terminal_output_frequency": 1,
        "time_discretization": {
            "start_time": 0.0,
            "final_time": 0.4,
            "initial_time_step": 0.1,
        },
        "navier_stokes": {
            "pressure_correction_scheme": "standard",
            "diffusion_step_solver": {**tight_solver, "method": "gmres", "preconditioner": "ilu"},
            "projection_step_solver": {**tight_solver, "method": "cg", "preconditioner": "amg"},
            "correction_step_solver": {**tight_solver, "method": "cg", "preconditioner": "jacobi"},
            "poisson_prestep_solver": {**tight_solver, "method": "cg", "preconditioner": "amg"},
        },
    }
