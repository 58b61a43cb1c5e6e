"""
Weight calibration for the RegDI estimator.

This module implements linear (GREG) calibration: sample A's initial weights
are adjusted so that weighted constraint totals reproduce population totals
exactly, while staying as close as possible to the initial weights under the
chi-square distance.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .constants import RANK_TOL_FACTOR, TOLERANCE_CALIBRATION
from .validation import SingularConstraintMatrixError, ValidationError

logger = logging.getLogger(__name__)


def _check_rank(M: np.ndarray, names: list[str]) -> None:
    """Raise if the constraint cross-product ``M`` is numerically singular."""
    p = M.shape[0]
    if not np.all(np.isfinite(M)):
        raise SingularConstraintMatrixError(names)

    # Equilibrate so constraints on very different scales do not mask collinearity
    scale = np.sqrt(np.abs(np.diag(M)))
    scale[scale == 0] = 1.0
    M_s = M / np.outer(scale, scale)

    sv = np.linalg.svd(M_s, compute_uv=False)
    tol = sv.max(initial=0.0) * p * np.finfo(float).eps * RANK_TOL_FACTOR
    rank = int(np.sum(sv > tol))
    if rank < p:
        raise SingularConstraintMatrixError(names, rank=rank)


def calibrate_weights(
    d: pd.Series,
    Z: pd.DataFrame,
    pop_totals: pd.Series,
    *,
    distance: str = "linear",
) -> pd.Series:
    """
    Compute calibrated weights for the units of a sample.

    Solves the optimization problem:
        min sum_i (w_i - d_i)^2 / d_i  s.t. Z^T w = t
    where d are the initial (design) weights, Z holds one row of constraint
    contributions per unit, and t are the population totals.

    Examples
    --------
    >>> import numpy as np
    >>> import pandas as pd
    >>> from regdi import calibrate_weights
    >>>
    >>> Z = pd.DataFrame({"intercept": 1.0, "x": np.arange(5.0)})
    >>> d = pd.Series(2.0, index=Z.index)
    >>> t = pd.Series({"intercept": 12.0, "x": 30.0})
    >>> w = calibrate_weights(d, Z, t)
    >>>
    >>> # Weights satisfy the calibration constraints:
    >>> # Z.T @ w ≈ t

    Parameters
    ----------
    d : pd.Series
        Initial weights, one per unit (index = unit labels).
    Z : pd.DataFrame, shape (n, p)
        Constraint contributions, index aligned with ``d``, one column per
        constraint.
    pop_totals : pd.Series
        Population totals indexed by constraint name; must cover ``Z.columns``.
    distance : {'linear'}
        Calibration distance. Only the linear (chi-square) distance is
        implemented.

    Returns
    -------
    pd.Series
        Calibrated weights indexed like ``d``.

    Raises
    ------
    SingularConstraintMatrixError
        If ``Z^T diag(d) Z`` is singular (collinear constraints or fewer
        effective units than constraints).

    Notes
    -----
    The closed-form solution for the chi-square distance is:
        lambda = (Z^T D Z)^{-1} (t - Z^T d)
        w = d * (1 + Z lambda)
    with D = diag(d). Weights may turn negative when the totals are far from
    the initial weighted totals; they are returned as computed.

    References
    ----------
    Deville, J.-C., & Särndal, C.-E. (1992). Calibration estimators in survey sampling.
    Journal of the American Statistical Association, 87(418), 376-382.
    """
    if distance != "linear":
        raise NotImplementedError(f"Distance '{distance}' not implemented yet")

    if not d.index.equals(Z.index):
        raise ValidationError("d.index must align with Z.index")

    names = list(Z.columns)
    missing = [c for c in names if c not in pop_totals.index]
    if missing:
        raise ValidationError(f"pop_totals is missing constraints {missing}")
    if len(d) == 0:
        raise SingularConstraintMatrixError(names, rank=0)

    d_arr = d.to_numpy(dtype=float)  # (n,)
    Zn = Z.to_numpy(dtype=float)  # (n, p)
    t = pop_totals.reindex(names).to_numpy(dtype=float)  # (p,)

    # M = sum_i d_i z_i z_i^T
    M = Zn.T @ (d_arr[:, None] * Zn)  # (p, p)
    rhs = t - Zn.T @ d_arr  # (p,)

    _check_rank(M, names)
    try:
        lam = np.linalg.solve(M, rhs)  # (p,)
    except np.linalg.LinAlgError as e:
        raise SingularConstraintMatrixError(names) from e

    w = d_arr * (1.0 + Zn @ lam)  # (n,)

    n_neg = int(np.sum(w < 0))
    if n_neg:
        logger.warning("%d calibrated weight(s) are negative", n_neg)

    result = pd.Series(w, index=d.index, name="calibrated_weights")
    miss = calibration_check(result, Z, pop_totals)
    rel = np.abs(miss.to_numpy()) / np.maximum(np.abs(t), 1.0)
    if np.any(rel > TOLERANCE_CALIBRATION):
        logger.warning("Calibration totals missed by up to %.3g (relative)", rel.max())
    else:
        logger.debug("Calibrated %d weights to %d constraints", len(w), len(names))
    return result


def calibration_check(
    weights: pd.Series, Z: pd.DataFrame, pop_totals: pd.Series
) -> pd.Series:
    """
    Achieved minus target totals for a set of weights.

    Parameters
    ----------
    weights : pd.Series
        Weights indexed like ``Z``.
    Z : pd.DataFrame
        Constraint contributions.
    pop_totals : pd.Series
        Target totals indexed by constraint name.

    Returns
    -------
    pd.Series
        ``Z^T w - t`` indexed by constraint name; zero for exact calibration.
    """
    achieved = Z.to_numpy(dtype=float).T @ weights.reindex(Z.index).to_numpy(float)
    target = pop_totals.reindex(Z.columns).to_numpy(dtype=float)
    return pd.Series(achieved - target, index=Z.columns, name="calibration_residual")
