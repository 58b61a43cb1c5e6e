"""
Errors raised by regdi and the eager input checks that run before any
numeric work.

Input problems derive from :class:`ValidationError` (a ``ValueError``);
numerical failures derive from :class:`EstimationError` (an
``ArithmeticError``). Both are fatal to a single estimation call.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from numbers import Real

import numpy as np
import pandas as pd


class ValidationError(ValueError):
    """Invalid input to an estimation routine."""


class MissingColumnError(ValidationError, KeyError):
    """One or more required columns are absent from the data."""

    def __init__(self, columns: Sequence[str], role: str = "column") -> None:
        self.columns = list(columns)
        self.role = role
        names = ", ".join(repr(c) for c in self.columns)
        super().__init__(f"Missing {role}(s) in data: {names}")

    def __str__(self) -> str:
        # KeyError would otherwise quote the whole message
        return str(self.args[0])


class EstimationError(ArithmeticError):
    """Numerical failure while computing an estimate."""


class SingularConstraintMatrixError(EstimationError):
    """The weighted cross-product of the calibration constraints is singular."""

    def __init__(self, constraints: Sequence[str], rank: int | None = None) -> None:
        self.constraints = list(constraints)
        self.rank = rank
        detail = "" if rank is None else f" (rank {rank} < {len(self.constraints)})"
        super().__init__(
            "Calibration constraint matrix is singular"
            f"{detail}; check for collinear constraints among "
            f"{self.constraints} or too few units in sample A"
        )


class InsufficientValidationDataError(EstimationError):
    """Too few units observed in both samples to fit the correction model."""

    def __init__(self, n_validation: int, required: int) -> None:
        self.n_validation = n_validation
        self.required = required
        super().__init__(
            f"Measurement-error model needs at least {required} validation "
            f"units (in both A and B), got {n_validation}"
        )


class DegenerateCorrectionModelError(EstimationError):
    """The fitted correction slope is zero, so the model cannot be inverted."""

    def __init__(self, slope: float) -> None:
        self.slope = slope
        super().__init__(
            f"Measurement-error model slope {slope!r} is zero or undefined; "
            "the correction cannot be inverted"
        )


def require_columns(
    data: pd.DataFrame, columns: Iterable[str], role: str = "column"
) -> None:
    """
    Raise :class:`MissingColumnError` naming every absent column.

    Parameters
    ----------
    data : pd.DataFrame
        Record set to check.
    columns : iterable of str
        Column names that must be present.
    role : str
        Label used in the error message (e.g. ``"auxiliary variable"``).
    """
    missing = [c for c in columns if c not in data.columns]
    if missing:
        raise MissingColumnError(missing, role=role)


def validate_positive(value: float, name: str) -> None:
    """Validate that a size parameter is a finite positive number."""
    if (
        not isinstance(value, Real)
        or isinstance(value, bool)
        or not np.isfinite(value)
        or value <= 0
    ):
        raise ValidationError(f"{name} must be a positive number, got {value!r}")


def validate_unique_names(names: Sequence[str], reserved: Sequence[str] = ()) -> None:
    """Reject duplicated names and names that shadow reserved ones."""
    dupes = [n for n, k in Counter(names).items() if k > 1]
    if dupes:
        raise ValidationError(f"Duplicate auxiliary variables: {sorted(dupes)}")
    clash = [n for n in names if n in reserved]
    if clash:
        raise ValidationError(
            f"Auxiliary variables {clash} clash with builtin constraints {list(reserved)}"
        )


def validate_complete(values: pd.Series | pd.DataFrame, name: str) -> None:
    """Raise if ``values`` holds missing or non-finite entries."""
    arr = values.to_numpy(dtype=float)
    bad = ~np.isfinite(arr)
    if bad.any():
        raise ValidationError(
            f"{name} has {int(bad.sum())} missing or non-finite value(s) "
            "where a value is required"
        )
