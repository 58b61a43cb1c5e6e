"""
Measurement-error correction for the outcome observed in sample A.

When sample A measures the outcome with error and sample B measures it
without, the relation ``y_A = intercept + slope * y_B`` is fit by ordinary
least squares on validation units (units in both samples) and inverted to
put every A measurement on B's scale.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .constants import (
    A_INDICATOR_COL,
    B_INDICATOR_COL,
    MIN_VALIDATION_UNITS,
    SLOPE_EPS,
)
from .results import CorrectionModel
from .utils import as_float, membership_mask
from .validation import (
    DegenerateCorrectionModelError,
    InsufficientValidationDataError,
    require_columns,
)

logger = logging.getLogger(__name__)


def fit_correction_model(
    y_a: pd.Series | np.ndarray, y_b: pd.Series | np.ndarray
) -> CorrectionModel:
    """
    Fit ``y_a ≈ intercept + slope * y_b`` by ordinary least squares.

    Pairs with a missing value on either side are dropped before fitting.

    Parameters
    ----------
    y_a : array-like
        Error-prone measurements on the validation units.
    y_b : array-like
        Reference measurements on the same units.

    Returns
    -------
    CorrectionModel

    Raises
    ------
    InsufficientValidationDataError
        Fewer than two complete pairs.
    DegenerateCorrectionModelError
        ``y_b`` is constant or the fitted slope is (numerically) zero.
    """
    a = np.asarray(y_a, dtype=float)
    b = np.asarray(y_b, dtype=float)
    if a.shape != b.shape:
        raise ValueError("y_a and y_b must have the same length")

    keep = np.isfinite(a) & np.isfinite(b)
    a, b = a[keep], b[keep]
    n = int(a.size)
    if n < MIN_VALIDATION_UNITS:
        raise InsufficientValidationDataError(n, MIN_VALIDATION_UNITS)

    b_c = b - b.mean()
    sxx = float(b_c @ b_c)
    if sxx <= 0.0:
        # slope is not identified
        raise DegenerateCorrectionModelError(float("nan"))

    slope = float(b_c @ (a - a.mean())) / sxx
    intercept = float(a.mean() - slope * b.mean())
    if not np.isfinite(slope) or abs(slope) <= SLOPE_EPS:
        raise DegenerateCorrectionModelError(slope)

    return CorrectionModel(intercept=intercept, slope=slope, n_validation=n)


def fit_and_correct(
    data: pd.DataFrame,
    outcome_a: str,
    outcome_b: str,
    *,
    a_col: str = A_INDICATOR_COL,
    b_col: str = B_INDICATOR_COL,
) -> tuple[pd.Series, CorrectionModel]:
    """
    Fit the correction model on validation units and correct sample A's outcome.

    Parameters
    ----------
    data : pd.DataFrame
        Record set with both outcomes and both membership indicators.
    outcome_a : str
        Error-prone outcome column (observed on sample A).
    outcome_b : str
        Reference outcome column (observed on sample B).
    a_col, b_col : str
        Membership indicators of samples A and B.

    Returns
    -------
    corrected : pd.Series
        Indexed like ``data``: ``(y_A - intercept) / slope`` for units in A,
        ``y_B`` for every other unit.
    model : CorrectionModel
        The fitted model.
    """
    require_columns(data, [outcome_a, outcome_b], role="outcome column")
    require_columns(data, [a_col, b_col], role="membership indicator")

    in_a = membership_mask(data, a_col)
    in_b = membership_mask(data, b_col)
    validation = in_a & in_b

    y_a = as_float(data[outcome_a])
    y_b = as_float(data[outcome_b])

    model = fit_correction_model(y_a[validation], y_b[validation])
    logger.debug(
        "Correction model on %d validation units: intercept=%.6g slope=%.6g",
        model.n_validation,
        model.intercept,
        model.slope,
    )

    corrected = y_b.copy()
    corrected.loc[in_a] = model.invert(y_a[in_a])
    return corrected.rename("y_corrected"), model
