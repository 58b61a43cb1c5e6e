"""
Point and variance estimators under calibrated weights.

The variance of the calibrated mean uses Taylor linearization for a
single-stage design without replacement, each unit of sample A acting as its
own primary sampling unit. The influence values of the ratio mean

    u_i = (y_i - ybar) / sum_j w_j

are residualized on the calibration constraints (calibration removes the
variance explained by the constrained totals), giving

    V(ybar) = (1 - n/N) * n/(n-1) * sum_i (w_i e_i)^2.
"""

from __future__ import annotations

import numpy as np
import pandas as pd


def weighted_mean(y: pd.Series | np.ndarray, w: pd.Series | np.ndarray) -> float:
    """Return ``sum(w * y) / sum(w)``."""
    y_arr = np.asarray(y, dtype=float)
    w_arr = np.asarray(w, dtype=float)
    return float(np.dot(w_arr, y_arr) / np.sum(w_arr))


def weighted_variance(y: pd.Series | np.ndarray, w: pd.Series | np.ndarray) -> float:
    """
    Weighted variance of ``y`` itself (not of its mean).

    Computed as ``n/(n-1) * sum(w (y - ybar)^2) / sum(w)``; NaN for n < 2.
    """
    y_arr = np.asarray(y, dtype=float)
    w_arr = np.asarray(w, dtype=float)
    n = y_arr.size
    if n < 2:
        return float("nan")
    ybar = weighted_mean(y_arr, w_arr)
    ss = float(np.dot(w_arr, (y_arr - ybar) ** 2) / np.sum(w_arr))
    return ss * n / (n - 1)


def calibration_residuals(
    u: np.ndarray, w: np.ndarray, Z: np.ndarray
) -> np.ndarray:
    """Residuals of the ``w``-weighted least-squares fit of ``u`` on ``Z``."""
    ZtWZ = Z.T @ (w[:, None] * Z)
    ZtWu = Z.T @ (w * u)
    beta = np.linalg.lstsq(ZtWZ, ZtWu, rcond=None)[0]
    return u - Z @ beta


def linearized_variance(
    y: pd.Series | np.ndarray,
    w: pd.Series | np.ndarray,
    Z: pd.DataFrame | np.ndarray | None = None,
    *,
    population_size: float | None = None,
) -> float:
    """
    Linearized variance of the calibrated weighted mean.

    Parameters
    ----------
    y : array-like, shape (n,)
        Outcome for the units of sample A.
    w : array-like, shape (n,)
        Calibrated weights.
    Z : array-like, shape (n, p), optional
        Calibration constraint contributions for the same units. If None,
        the variance of the uncalibrated (Hajek) mean is returned.
    population_size : float, optional
        Population size N for the finite population correction ``1 - n/N``.
        If None, no correction is applied.

    Returns
    -------
    float
        Estimated variance of the mean; NaN when fewer than two units.
    """
    y_arr = np.asarray(y, dtype=float)
    w_arr = np.asarray(w, dtype=float)
    n = y_arr.size
    if n < 2:
        return float("nan")

    total_w = float(np.sum(w_arr))
    ybar = float(np.dot(w_arr, y_arr)) / total_w
    u = (y_arr - ybar) / total_w

    if Z is not None:
        Zn = np.asarray(Z, dtype=float)
        if Zn.shape[0] != n:
            raise ValueError(f"Z must have {n} rows, got {Zn.shape[0]}")
        e = calibration_residuals(u, w_arr, Zn)
    else:
        e = u

    fpc = 1.0
    if population_size is not None:
        fpc = max(0.0, 1.0 - n / population_size)

    return fpc * n / (n - 1) * float(np.sum((w_arr * e) ** 2))
