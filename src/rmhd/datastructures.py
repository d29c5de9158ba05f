"""Data structures for solver configuration and results.

Structure:
- LinearSolverParameters: tolerances/iteration caps of one solve stage
- TimeDiscretizationParameters: time interval and step-size control
- NavierStokesParameters / HeatEquationParameters: per-solver settings
- ProblemParameters: problem type, dimensionless numbers and mesh
  (logged to MLflow at start)
- Metrics: output results (logged to MLflow at end)
- TimeSeries: per-step history
"""

import math
from dataclasses import dataclass, field, asdict, fields, is_dataclass
from typing import Optional, List

import pandas as pd
from omegaconf import DictConfig, OmegaConf

from .exceptions import ConfigurationConflict


PROBLEM_TYPES = (
    "hydrodynamic",
    "heat_convection_diffusion",
    "boussinesq",
    "rotating_boussinesq",
    "rotating_magnetohydrodynamic",
)


def _flatten(prefix, obj):
    flat = {}
    for key, value in obj.items():
        name = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            flat.update(_flatten(name, value))
        elif value is not None:
            flat[name] = value
    return flat


def _from_dict(cls, data):
    """Build a (possibly nested) dataclass from a plain dict, ignoring unknown keys."""
    if data is None:
        return None
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        sub = _dataclass_type(f.type)
        if sub is not None and isinstance(value, dict):
            value = _from_dict(sub, value)
        kwargs[f.name] = value
    return cls(**kwargs)


def _dataclass_type(tp):
    if is_dataclass(tp):
        return tp
    for arg in getattr(tp, "__args__", ()):
        if is_dataclass(arg):
            return arg
    return None


# ========================================================
# Linear solvers
# ========================================================


@dataclass
class LinearSolverParameters:
    """Krylov solve settings for one stage of the scheme."""

    relative_tolerance: float = 1e-6
    absolute_tolerance: float = 1e-9
    n_maximum_iterations: int = 1000
    method: str = "gmres"
    preconditioner: str = "ilu"


# ========================================================
# Time discretization
# ========================================================


@dataclass
class TimeDiscretizationParameters:
    """Time interval, initial step and adaptive step-size settings."""

    start_time: float = 0.0
    final_time: float = 1.0
    initial_time_step: float = 1e-2
    minimum_time_step: float = 1e-9
    maximum_time_step: float = 1e3
    adaptive_time_stepping: bool = False
    courant_number: float = 0.5
    max_step_fraction: Optional[float] = 0.5
    n_maximum_steps: int = 0
    adaptive_time_step_barrier: int = 0

    def __post_init__(self):
        if self.final_time <= self.start_time:
            raise ConfigurationConflict(
                f"final_time ({self.final_time}) must exceed start_time ({self.start_time})"
            )
        if self.courant_number <= 0:
            raise ConfigurationConflict("courant_number must be positive")


# ========================================================
# Solver parameters
# ========================================================


@dataclass
class NavierStokesParameters:
    """Incremental pressure-projection settings."""

    pressure_correction_scheme: str = "rotational"
    convective_term_weak_form: str = "skew_symmetric"
    convective_term_time_discretization: str = "semi_implicit"
    preconditioner_update_frequency: int = 10
    solve_poisson_prestep: bool = False
    C1: float = 0.0
    C2: float = 1.0
    C3: float = 0.0
    C5: float = 0.0
    C6: float = 1.0
    gravity: List[float] = field(default_factory=lambda: [0.0, -1.0])
    diffusion_step_solver: LinearSolverParameters = field(
        default_factory=lambda: LinearSolverParameters(method="gmres", preconditioner="ilu")
    )
    projection_step_solver: LinearSolverParameters = field(
        default_factory=lambda: LinearSolverParameters(method="cg", preconditioner="amg")
    )
    correction_step_solver: Optional[LinearSolverParameters] = field(
        default_factory=lambda: LinearSolverParameters(method="cg", preconditioner="jacobi")
    )
    poisson_prestep_solver: LinearSolverParameters = field(
        default_factory=lambda: LinearSolverParameters(method="cg", preconditioner="amg")
    )

    def __post_init__(self):
        if self.pressure_correction_scheme not in ("standard", "rotational"):
            raise ConfigurationConflict(
                f"Unknown pressure correction scheme: {self.pressure_correction_scheme}"
            )
        if self.pressure_correction_scheme == "rotational" and self.correction_step_solver is None:
            raise ConfigurationConflict(
                "The rotational pressure-correction scheme needs correction_step_solver parameters"
            )
        _check_convection_options(self.convective_term_weak_form, self.convective_term_time_discretization)
        if self.preconditioner_update_frequency < 1:
            raise ConfigurationConflict("preconditioner_update_frequency must be >= 1")
        if self.C5 != 0.0:
            raise ConfigurationConflict("Lorentz coupling (C5 != 0) needs a magnetic field, which is not available")


@dataclass
class HeatEquationParameters:
    """Convection-diffusion settings for the temperature."""

    convective_term_weak_form: str = "skew_symmetric"
    convective_term_time_discretization: str = "semi_implicit"
    preconditioner_update_frequency: int = 10
    C4: float = 1.0
    solver: LinearSolverParameters = field(
        default_factory=lambda: LinearSolverParameters(method="gmres", preconditioner="ilu")
    )

    def __post_init__(self):
        _check_convection_options(self.convective_term_weak_form, self.convective_term_time_discretization)
        if self.preconditioner_update_frequency < 1:
            raise ConfigurationConflict("preconditioner_update_frequency must be >= 1")


def _check_convection_options(weak_form, time_discretization):
    if weak_form not in ("standard", "skew_symmetric"):
        raise ConfigurationConflict(f"Unknown convective term weak form: {weak_form}")
    if time_discretization not in ("semi_implicit", "fully_explicit"):
        raise ConfigurationConflict(f"Unknown convective term time discretization: {time_discretization}")


# ========================================================
# Problem (Input Configuration)
# ========================================================


@dataclass
class ProblemParameters:
    """Problem description - logged to MLflow at the start of a run."""

    problem_type: str = "hydrodynamic"
    Re: float = 1.0
    Pe: float = 1.0
    Pr: float = 1.0
    Ra: float = 1.0
    Ek: float = 1.0
    Pm: float = 1.0
    nx: int = 8
    ny: int = 8
    Lx: float = 1.0
    Ly: float = 1.0
    fe_degree_velocity: int = 2
    fe_degree_pressure: int = 1
    fe_degree_temperature: int = 2
    n_quadrature_points: Optional[int] = None
    terminal_output_frequency: int = 10
    output_directory: Optional[str] = None
    time_discretization: TimeDiscretizationParameters = field(default_factory=TimeDiscretizationParameters)
    navier_stokes: NavierStokesParameters = field(default_factory=NavierStokesParameters)
    heat_equation: HeatEquationParameters = field(default_factory=HeatEquationParameters)

    def __post_init__(self):
        if self.problem_type not in PROBLEM_TYPES:
            raise ConfigurationConflict(f"Unknown problem type: {self.problem_type}")
        for name in ("Re", "Pe", "Pr", "Ra", "Ek", "Pm"):
            if getattr(self, name) <= 0:
                raise ConfigurationConflict(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("fe_degree_velocity", "fe_degree_pressure", "fe_degree_temperature"):
            if getattr(self, name) < 1:
                raise ConfigurationConflict(f"{name} must be at least 1, got {getattr(self, name)}")

    def apply_dimensionless_numbers(self):
        """Set C1..C6 from the problem type and dimensionless numbers."""
        ns, heat = self.navier_stokes, self.heat_equation
        if self.problem_type == "hydrodynamic":
            ns.C1, ns.C2, ns.C3, heat.C4, ns.C5, ns.C6 = 0.0, 1.0 / self.Re, 0.0, 0.0, 0.0, 1.0
        elif self.problem_type == "heat_convection_diffusion":
            ns.C1, ns.C2, ns.C3, heat.C4, ns.C5, ns.C6 = 0.0, 0.0, 0.0, 1.0 / self.Pe, 0.0, 1.0
        elif self.problem_type == "boussinesq":
            ns.C1, ns.C2, ns.C3 = 0.0, math.sqrt(self.Pr / self.Ra), 1.0
            heat.C4, ns.C5, ns.C6 = 1.0 / math.sqrt(self.Ra * self.Pr), 0.0, 1.0
        elif self.problem_type == "rotating_boussinesq":
            ns.C1, ns.C2, ns.C3 = 2.0 / self.Ek, 1.0, self.Ra / self.Pr
            heat.C4, ns.C5, ns.C6 = 1.0 / self.Pr, 0.0, 1.0 / self.Ek
        else:
            raise ConfigurationConflict(
                f"Problem type '{self.problem_type}' needs a magnetic field, which is not available"
            )
        for name in ("C1", "C2", "C3", "C6"):
            if not math.isfinite(getattr(ns, name)):
                raise ConfigurationConflict(f"{name} is not finite")
        if not math.isfinite(heat.C4):
            raise ConfigurationConflict("C4 is not finite")
        return self

    @classmethod
    def from_config(cls, cfg):
        """Build parameters from an OmegaConf config (or plain dict)."""
        if isinstance(cfg, DictConfig):
            cfg = OmegaConf.to_container(cfg, resolve=True)
        return _from_dict(cls, cfg)

    def to_dataframe(self):
        return pd.DataFrame([self.to_mlflow()])

    def to_mlflow(self):
        """Flat parameter dict for mlflow.log_params."""
        return _flatten("", asdict(self))


# ========================================================
# Metrics (Output Results)
# ========================================================


@dataclass
class Metrics:
    """Run metrics - output results computed during/after time stepping."""

    n_steps: int = 0
    final_time: float = 0.0
    wall_time_seconds: float = 0.0
    max_cfl_number: float = 0.0
    diffusion_step_iterations: int = 0
    projection_step_iterations: int = 0
    pressure_correction_iterations: int = 0
    heat_equation_iterations: int = 0

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])

    def to_mlflow(self):
        return asdict(self)


# ========================================================
# Time Series (Per-step history)
# ========================================================


@dataclass
class TimeSeries:
    """Step history (one value per accepted step)."""

    step: List[int] = field(default_factory=list)
    time: List[float] = field(default_factory=list)
    step_size: List[float] = field(default_factory=list)
    cfl_number: List[float] = field(default_factory=list)
    velocity_l2_norm: List[float] = field(default_factory=list)
    pressure_l2_norm: List[float] = field(default_factory=list)
    temperature_l2_norm: List[float] = field(default_factory=list)

    def append(self, **values):
        for key, value in values.items():
            getattr(self, key).append(value)

    def __len__(self):
        return len(self.step)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame with one row per step."""
        return pd.DataFrame({k: v for k, v in asdict(self).items() if len(v) == len(self.step)})


# ========================================================
# Stage Reports (Per-solve outcome)
# ========================================================


@dataclass
class StageReport:
    """Outcome of one solve stage; ``error`` is set when the stage failed."""

    stage: str
    step_number: int
    iterations: int = 0
    residual: float = 0.0
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.error is not None
