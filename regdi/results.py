"""
Result types returned by regdi estimation routines.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from .core import CorrectionMode


@dataclass(frozen=True, slots=True)
class CorrectionModel:
    """
    Linear measurement-error model ``y_A ≈ intercept + slope * y_B``.

    Fit on validation units (observed in both samples); inverting it maps
    the error-prone A measurement back to the scale of B.
    """

    intercept: float
    slope: float
    n_validation: int

    def invert(self, values: pd.Series | np.ndarray) -> pd.Series | np.ndarray:
        """Return ``(values - intercept) / slope``."""
        return (values - self.intercept) / self.slope


@dataclass(frozen=True, slots=True)
class EstimateResult:
    """
    Result of a RegDI estimation.

    Attributes
    ----------
    mean : float
        Calibrated weighted mean of the (possibly corrected) A outcome.
    variance : float
        Linearized variance of ``mean``.
    outcome_variance : float
        Weighted variance of the outcome itself under the calibrated weights.
    weights : pd.Series
        Calibrated weights for the units of sample A.
    totals : pd.Series
        Population totals the weights were calibrated to.
    mode : CorrectionMode
        Correction mode the estimate was produced under.
    correction_model : CorrectionModel or None
        Fitted measurement-error model (``CORRECT_A`` only).
    n_a, n_b : int
        Observed sizes of samples A and B.
    population_size : float
        Population size used for the intercept total.
    """

    mean: float
    variance: float
    outcome_variance: float = math.nan
    weights: pd.Series = field(default_factory=lambda: pd.Series(dtype=float), repr=False)
    totals: pd.Series = field(default_factory=lambda: pd.Series(dtype=float), repr=False)
    mode: CorrectionMode | None = None
    correction_model: CorrectionModel | None = None
    n_a: int = 0
    n_b: int = 0
    population_size: float = math.nan

    @property
    def se(self) -> float:
        """Standard error of the mean."""
        return math.sqrt(self.variance) if self.variance >= 0 else math.nan

    def to_dict(self) -> dict[str, Any]:
        """Scalar summary of the estimate and its diagnostics."""
        return {
            "mean": self.mean,
            "variance": self.variance,
            "se": self.se,
            "outcome_variance": self.outcome_variance,
            "mode": None if self.mode is None else self.mode.name,
            "n_a": self.n_a,
            "n_b": self.n_b,
            "population_size": self.population_size,
        }
