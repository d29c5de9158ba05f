"""Error norms for convergence studies."""

from __future__ import annotations

import numpy as np


# -----------------------------------------------------------------------------
# Norms / errors
# -----------------------------------------------------------------------------


def discrete_linf_error(f_exact: np.ndarray, f_num: np.ndarray) -> float:
    """Compute discrete L-infinity (maximum) error."""
    return float(np.max(np.abs(f_num - f_exact)))


def fe_l2_error(mass_matrix, f_exact: np.ndarray, f_num: np.ndarray) -> float:
    """L2 norm of the finite element interpolant of the error, sqrt(e^T M e)."""
    diff = f_num - f_exact
    return float(np.sqrt(max(diff @ (mass_matrix @ diff), 0.0)))


def fe_h1_seminorm_error(stiffness_matrix, f_exact: np.ndarray, f_num: np.ndarray) -> float:
    """H1 seminorm of the interpolated error, sqrt(e^T K e)."""
    diff = f_num - f_exact
    return float(np.sqrt(max(diff @ (stiffness_matrix @ diff), 0.0)))


def field_errors(prefix: str, mass_matrix, stiffness_matrix, f_exact, f_num) -> dict[str, float]:
    """L2, H1 and Linf errors of one field as a flat dict."""
    return {
        f"{prefix}_L2": fe_l2_error(mass_matrix, f_exact, f_num),
        f"{prefix}_H1": fe_h1_seminorm_error(stiffness_matrix, f_exact, f_num),
        f"{prefix}_Linf": discrete_linf_error(f_exact, f_num),
    }
