"""Ordinary least-squares fits used by the corrections.

Both fits use only valid points: x and y finite and strictly positive.
Invalid points are dropped from the fit, never from the caller's grid.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np

ArrayLike = Union[Sequence[float], np.ndarray]

# Normal-equation denominators below this are treated as degenerate
DEGENERATE_DENOMINATOR = 1e-30


def _valid_points(x: ArrayLike, y: ArrayLike) -> Tuple[np.ndarray, np.ndarray]:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"x and y must have the same shape, got {x.shape} and {y.shape}")
    mask = np.isfinite(x) & np.isfinite(y) & (x > 0.0) & (y > 0.0)
    return x[mask], y[mask]


def _least_squares(x: np.ndarray, y: np.ndarray) -> Optional[Tuple[float, float]]:
    n = x.size
    if n < 2:
        return None
    sx = float(np.sum(x))
    sy = float(np.sum(y))
    sxx = float(np.sum(x * x))
    sxy = float(np.sum(x * y))
    denom = n * sxx - sx * sx
    if not np.isfinite(denom) or abs(denom) < DEGENERATE_DENOMINATOR:
        return None
    slope = (n * sxy - sx * sy) / denom
    intercept = (sy - slope * sx) / n
    return intercept, slope


def fit_line(x: ArrayLike, y: ArrayLike) -> Optional[Tuple[float, float]]:
    """
    Fit y = intercept + slope * x.

    Returns:
        (intercept, slope), or None with fewer than two valid points, a
        degenerate design, or a non-finite result
    """
    fit = _least_squares(*_valid_points(x, y))
    if fit is None:
        return None
    intercept, slope = fit
    if not (np.isfinite(intercept) and np.isfinite(slope)):
        return None
    return intercept, slope


def fit_ln_vs_x(x: ArrayLike, y: ArrayLike) -> Tuple[float, float]:
    """
    Fit ln(y) = intercept + slope * x.

    A flat or empty segment is a legitimate outcome here, so insufficient
    or degenerate data gives (0.0, 0.0) instead of failing.
    """
    xv, yv = _valid_points(x, y)
    fit = _least_squares(xv, np.log(yv))
    if fit is None:
        return 0.0, 0.0
    return fit
