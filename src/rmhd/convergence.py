"""Convergence tables for spatial / temporal refinement studies."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
import pandas as pd

log = logging.getLogger(__name__)

CONVERGENCE_TEST_TYPES = ("spatial", "temporal", "spatio_temporal")


@dataclass
class ConvergenceTestParameters:
    """How the refinement cycles of a convergence study are generated."""

    test_type: str = "temporal"
    n_cycles: int = 3
    n_spatial_refinements: int = 1
    step_size_reduction_factor: float = 0.5

    def __post_init__(self):
        if self.test_type not in CONVERGENCE_TEST_TYPES:
            raise ValueError(f"Unknown convergence test type: {self.test_type}")
        if not 0.0 < self.step_size_reduction_factor < 1.0:
            raise ValueError("step_size_reduction_factor must lie in (0, 1)")

    @property
    def refines_space(self):
        return self.test_type in ("spatial", "spatio_temporal")

    @property
    def refines_time(self):
        return self.test_type in ("temporal", "spatio_temporal")


@dataclass
class ConvergenceTable:
    """Error norms per refinement cycle with observed convergence rates.

    Each row holds the cycle index, mesh size h, step size dt and the error
    norms. Rates are computed against h (spatial studies) or dt (temporal and
    spatio-temporal studies):

        rate_k = log(e_{k-1} / e_k) / log(x_{k-1} / x_k)
    """

    test_type: str = "temporal"
    rows: List[Dict[str, float]] = field(default_factory=list)

    def add_row(self, cycle, h, dt, errors):
        row = {"cycle": cycle, "h": h, "dt": dt}
        row.update(errors)
        self.rows.append(row)
        log.info(
            f"cycle {cycle}: h={h:.3e}, dt={dt:.3e}, "
            + ", ".join(f"{k}={v:.3e}" for k, v in errors.items())
        )

    @property
    def reference_column(self):
        return "h" if self.test_type == "spatial" else "dt"

    def error_columns(self):
        if not self.rows:
            return []
        return [k for k in self.rows[0] if k not in ("cycle", "h", "dt")]

    def to_dataframe(self) -> pd.DataFrame:
        """Rows plus one ``<error>_rate`` column per error norm."""
        df = pd.DataFrame(self.rows)
        if df.empty:
            return df
        x = df[self.reference_column].to_numpy(dtype=float)
        for column in self.error_columns():
            e = df[column].to_numpy(dtype=float)
            rates = np.full(len(e), np.nan)
            with np.errstate(divide="ignore", invalid="ignore"):
                rates[1:] = np.log(e[:-1] / e[1:]) / np.log(x[:-1] / x[1:])
            df[f"{column}_rate"] = rates
        return df

    def save(self, filepath):
        self.to_dataframe().to_csv(filepath, index=False)
        log.info(f"Convergence table written to {filepath}")
