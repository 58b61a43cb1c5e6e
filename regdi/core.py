"""
RegDI: regression data integration of a probability and a non-probability sample.

The probability sample A carries design weights; the non-probability sample
B is larger but has none. Sample A is calibrated so that its weighted totals
of the intercept, the B-membership indicator, the B outcome and any
auxiliaries reproduce what B (and the population size) says they are. The
calibrated mean of A's outcome is the integrated estimate.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum
from numbers import Integral

import pandas as pd

from .calibration import calibrate_weights
from .constants import A_INDICATOR_COL, B_INDICATOR_COL
from .correction import fit_and_correct
from .results import CorrectionModel, EstimateResult
from .totals import compute_totals, constraint_matrix, constraint_names
from .utils import as_float, membership_mask, observed_count
from .validation import (
    ValidationError,
    require_columns,
    validate_complete,
    validate_positive,
)
from .variance import linearized_variance, weighted_mean, weighted_variance

logger = logging.getLogger(__name__)


class CorrectionMode(IntEnum):
    """
    Measurement-error scenario.

    NONE
        No measurement error.
    CORRECT_B
        Errors in sample B. They are absorbed by the calibration totals, so
        the estimate is computed exactly as for ``NONE``.
    CORRECT_A
        Errors in sample A. A's outcome is corrected with a linear model fit
        on validation units before calibrating.
    """

    NONE = 0
    CORRECT_B = 1
    CORRECT_A = 2

    @classmethod
    def coerce(cls, value: CorrectionMode | int | str) -> CorrectionMode:
        """Accept a member, its integer code, or its (case-insensitive) name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValidationError(
                    f"Unknown correction mode {value!r}; expected one of "
                    f"{[m.name for m in cls]}"
                ) from None
        if isinstance(value, Integral) and not isinstance(value, bool):
            try:
                return cls(int(value))
            except ValueError:
                pass
        raise ValidationError(f"Unknown correction mode {value!r}; expected 0, 1 or 2")


@dataclass(frozen=True, slots=True)
class RegDIConfig:
    """
    Settings for one RegDI estimation.

    Attributes
    ----------
    outcome_a : str
        Outcome column measured on sample A.
    outcome_b : str
        Outcome column measured on sample B.
    size_a : float
        Size of sample A; initial weights are ``1 / size_a`` unless
        ``weights_a`` is given.
    size_b : float
        Size of sample B, checked against the observed count.
    population_size : float, optional
        Population size N. Defaults to the number of records.
    correction : CorrectionMode
        Measurement-error scenario (accepts 0/1/2 or a mode name).
    aux_vars : tuple of str
        Auxiliary columns, observed on both samples, added as constraints.
    weights_a : str, optional
        Column of known design weights for sample A.
    a_col, b_col : str
        Membership indicator columns of samples A and B.
    """

    outcome_a: str
    outcome_b: str
    size_a: float
    size_b: float
    population_size: float | None = None
    correction: CorrectionMode = CorrectionMode.NONE
    aux_vars: tuple[str, ...] = ()
    weights_a: str | None = None
    a_col: str = A_INDICATOR_COL
    b_col: str = B_INDICATOR_COL

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "correction", CorrectionMode.coerce(self.correction))
        aux = () if self.aux_vars is None else self.aux_vars
        if isinstance(aux, str):
            aux = (aux,)
        object.__setattr__(self, "aux_vars", tuple(aux))

        validate_positive(self.size_a, "size_a")
        validate_positive(self.size_b, "size_b")
        if self.population_size is not None:
            validate_positive(self.population_size, "population_size")
        constraint_names(self.aux_vars)

    @property
    def required_columns(self) -> list[str]:
        cols = [self.outcome_a, self.outcome_b, self.a_col, self.b_col]
        if self.weights_a is not None:
            cols.append(self.weights_a)
        return cols


def _validate_inputs(data: pd.DataFrame, config: RegDIConfig) -> None:
    if not isinstance(data, pd.DataFrame):
        raise TypeError("data must be a pandas DataFrame")
    require_columns(data, config.required_columns)
    require_columns(data, config.aux_vars, role="auxiliary variable")
    if not data.index.is_unique:
        raise ValidationError("data must have a unique index")


def _initial_weights(
    data: pd.DataFrame, in_a: pd.Series, config: RegDIConfig
) -> pd.Series:
    """Design weights for the units of sample A."""
    index = data.index[in_a.to_numpy()]
    if config.weights_a is None:
        return pd.Series(1.0 / config.size_a, index=index, name="d")

    d = as_float(data.loc[in_a, config.weights_a]).rename("d")
    validate_complete(d, f"weights column {config.weights_a!r}")
    if (d <= 0).any():
        raise ValidationError(
            f"weights column {config.weights_a!r} must be positive for sample A"
        )
    return d


def _check_declared_size(declared: float, observed: int, label: str) -> None:
    if int(round(declared)) != observed:
        logger.warning(
            "Declared size of sample %s (%s) differs from the %d units flagged in data",
            label,
            declared,
            observed,
        )


def estimate(data: pd.DataFrame, config: RegDIConfig) -> EstimateResult:
    """
    Compute the RegDI estimate of the population mean.

    Parameters
    ----------
    data : pd.DataFrame
        Record set, one row per unit, with membership indicators
        ``config.a_col`` and ``config.b_col``.
    config : RegDIConfig
        Estimation settings.

    Returns
    -------
    EstimateResult
        Calibrated mean and its linearized variance, plus diagnostics.

    Raises
    ------
    MissingColumnError
        A required, auxiliary or weight column is absent.
    ValidationError
        Sample A is empty, or its outcome, constraint values or weights
        are missing.
    SingularConstraintMatrixError
        The calibration constraints are collinear on sample A.
    InsufficientValidationDataError, DegenerateCorrectionModelError
        ``CORRECT_A`` only: the correction model cannot be fit or inverted.
    """
    _validate_inputs(data, config)

    in_a = membership_mask(data, config.a_col)
    in_b = membership_mask(data, config.b_col)
    n_a, n_b = observed_count(in_a), observed_count(in_b)
    if n_a == 0:
        raise ValidationError("Sample A is empty")

    N = config.population_size
    if N is None:
        N = float(len(data))
    if N < n_a:
        raise ValidationError(f"population_size {N} is smaller than sample A ({n_a})")

    _check_declared_size(config.size_a, n_a, "A")
    _check_declared_size(config.size_b, n_b, "B")
    logger.debug(
        "RegDI %s: n_a=%d n_b=%d validation=%d N=%s",
        config.correction.name,
        n_a,
        n_b,
        observed_count(in_a & in_b),
        N,
    )

    d = _initial_weights(data, in_a, config)

    model: CorrectionModel | None = None
    if config.correction is CorrectionMode.CORRECT_A:
        y, model = fit_and_correct(
            data,
            config.outcome_a,
            config.outcome_b,
            a_col=config.a_col,
            b_col=config.b_col,
        )
        totals_outcome: str | pd.Series = y
    else:
        # NONE and CORRECT_B share one path
        y = as_float(data[config.outcome_a])
        totals_outcome = config.outcome_b

    totals = compute_totals(
        data,
        totals_outcome,
        config.aux_vars,
        b_col=config.b_col,
        population_size=N,
    )

    # A-side contributions always use the observed B outcome
    Z = constraint_matrix(data, config.outcome_b, config.aux_vars, b_col=config.b_col)
    Z_a = Z.loc[d.index]
    validate_complete(Z_a, "constraint values on sample A")

    y_a = y.loc[d.index]
    validate_complete(y_a, f"outcome {config.outcome_a!r} on sample A")

    w = calibrate_weights(d, Z_a, totals)

    mean = weighted_mean(y_a, w)
    variance = linearized_variance(y_a, w, Z_a, population_size=N)
    outcome_variance = weighted_variance(y_a, w)

    return EstimateResult(
        mean=mean,
        variance=variance,
        outcome_variance=outcome_variance,
        weights=w,
        totals=totals,
        mode=config.correction,
        correction_model=model,
        n_a=n_a,
        n_b=n_b,
        population_size=N,
    )


def regdi(
    data: pd.DataFrame,
    y_a_col: str,
    y_b_col: str,
    size_a: float,
    size_b: float,
    N: float | None = None,
    apply_correction: CorrectionMode | int | str = 0,
    aux_vars: Sequence[str] | None = None,
    weights_a_col: str | None = None,
    *,
    a_col: str = A_INDICATOR_COL,
    b_col: str = B_INDICATOR_COL,
) -> EstimateResult:
    """
    Functional entry point for the RegDI estimator.

    Examples
    --------
    >>> from regdi import regdi
    >>> res = regdi(
    ...     data, "y", "y_star", size_a=1000, size_b=5000, N=10000,
    ...     apply_correction=0, aux_vars=["z1", "z2"],
    ... )  # doctest: +SKIP
    >>> res.mean, res.variance  # doctest: +SKIP

    Parameters
    ----------
    data : pd.DataFrame
        Record set with membership indicators ``a_col`` and ``b_col``.
    y_a_col, y_b_col : str
        Outcome columns measured on samples A and B.
    size_a, size_b : float
        Sizes of samples A and B.
    N : float, optional
        Population size; defaults to ``len(data)``.
    apply_correction : {0, 1, 2} or CorrectionMode
        0: no correction, 1: errors in B, 2: errors in A.
    aux_vars : sequence of str, optional
        Auxiliary calibration variables.
    weights_a_col : str, optional
        Column of known design weights for sample A.

    Returns
    -------
    EstimateResult
    """
    config = RegDIConfig(
        outcome_a=y_a_col,
        outcome_b=y_b_col,
        size_a=size_a,
        size_b=size_b,
        population_size=N,
        correction=apply_correction,
        aux_vars=() if aux_vars is None else aux_vars,
        weights_a=weights_a_col,
        a_col=a_col,
        b_col=b_col,
    )
    return estimate(data, config)
