"""
Constraint vectors and population totals for RegDI calibration.

Every unit contributes one value per constraint:

    intercept     1
    b_membership  1 if the unit is in sample B, else 0
    b_outcome     y_B if the unit is in sample B, else 0
    <aux>         z   if the unit is in sample B, else 0

Population totals are the sums of these contributions over the record set,
except the intercept, whose total is the population size N.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TypeAlias

import pandas as pd

from .constants import (
    B_INDICATOR_COL,
    B_MEMBERSHIP,
    B_OUTCOME,
    BUILTIN_CONSTRAINTS,
    INTERCEPT,
)
from .utils import as_float, gate, membership_mask, observed_count
from .validation import (
    ValidationError,
    require_columns,
    validate_positive,
    validate_unique_names,
)

logger = logging.getLogger(__name__)

# Outcome given either as a column name or as precomputed per-record values
OutcomeSpec: TypeAlias = str | pd.Series


def constraint_names(aux_vars: Sequence[str] = ()) -> list[str]:
    """
    Names of the calibration constraints: the builtins followed by ``aux_vars``.

    Raises
    ------
    ValidationError
        If an auxiliary name is repeated or shadows a builtin constraint.
    """
    aux = list(aux_vars)
    validate_unique_names(aux, reserved=BUILTIN_CONSTRAINTS)
    return [*BUILTIN_CONSTRAINTS, *aux]


def _resolve_outcome(data: pd.DataFrame, outcome_b: OutcomeSpec) -> pd.Series:
    if isinstance(outcome_b, str):
        require_columns(data, [outcome_b], role="outcome column")
        return as_float(data[outcome_b])
    if not outcome_b.index.equals(data.index):
        raise ValidationError("outcome_b values must be indexed like data")
    return as_float(outcome_b)


def constraint_matrix(
    data: pd.DataFrame,
    outcome_b: OutcomeSpec,
    aux_vars: Sequence[str] = (),
    *,
    b_col: str = B_INDICATOR_COL,
) -> pd.DataFrame:
    """
    Per-record constraint contributions.

    Parameters
    ----------
    data : pd.DataFrame
        Record set, one row per unit.
    outcome_b : str or pd.Series
        Column holding the B outcome, or values indexed like ``data``.
    aux_vars : sequence of str
        Auxiliary columns observed on both samples.
    b_col : str
        Membership indicator of sample B.

    Returns
    -------
    pd.DataFrame, shape (n_records, 3 + len(aux_vars))
        One column per constraint, in :func:`constraint_names` order.
    """
    names = constraint_names(aux_vars)
    require_columns(data, [b_col], role="membership indicator")
    require_columns(data, aux_vars, role="auxiliary variable")

    in_b = membership_mask(data, b_col)
    cols: dict[str, pd.Series] = {
        INTERCEPT: pd.Series(1.0, index=data.index),
        B_MEMBERSHIP: in_b.astype(float),
        B_OUTCOME: gate(_resolve_outcome(data, outcome_b), in_b),
    }
    for z in aux_vars:
        cols[z] = gate(as_float(data[z]), in_b)

    return pd.DataFrame(cols, index=data.index, columns=names)


def compute_totals(
    data: pd.DataFrame,
    outcome_b: OutcomeSpec,
    aux_vars: Sequence[str] = (),
    *,
    b_col: str = B_INDICATOR_COL,
    population_size: float | None = None,
) -> pd.Series:
    """
    Population totals targeted by the calibration.

    Sums over sample B skip missing values. The intercept total is
    ``population_size``, defaulting to the number of records in ``data``.

    Parameters
    ----------
    data : pd.DataFrame
        Record set, one row per unit.
    outcome_b : str or pd.Series
        Column holding the B outcome, or values indexed like ``data``
        (e.g. a measurement-error corrected outcome).
    aux_vars : sequence of str
        Auxiliary columns.
    b_col : str
        Membership indicator of sample B.
    population_size : float, optional
        Population size N.

    Returns
    -------
    pd.Series
        Totals indexed by constraint name.
    """
    names = constraint_names(aux_vars)
    require_columns(data, [b_col], role="membership indicator")
    require_columns(data, aux_vars, role="auxiliary variable")

    if population_size is None:
        population_size = float(len(data))
    validate_positive(population_size, "population_size")

    in_b = membership_mask(data, b_col)
    sample_b = data.loc[in_b]

    totals: dict[str, float] = {
        INTERCEPT: float(population_size),
        B_MEMBERSHIP: float(observed_count(in_b)),
        B_OUTCOME: float(
            _resolve_outcome(data, outcome_b).loc[in_b].sum(skipna=True)
        ),
    }
    for z in aux_vars:
        totals[z] = float(as_float(sample_b[z]).sum(skipna=True))

    result = pd.Series(totals, index=names, name="population_totals", dtype=float)
    logger.debug("Population totals: %s", result.to_dict())
    return result
