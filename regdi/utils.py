"""
Common utility functions for regdi.

Small helpers shared by the totals, correction and orchestration modules.
"""

from __future__ import annotations

import numpy as np
import pandas as pd


def membership_mask(data: pd.DataFrame, col: str) -> pd.Series:
    """
    Coerce a sample membership indicator column to a boolean mask.

    Parameters
    ----------
    data : pd.DataFrame
        Record set holding the indicator.
    col : str
        Indicator column (1/0, True/False; missing counts as not a member).

    Returns
    -------
    pd.Series
        Boolean mask aligned with ``data.index``.
    """
    raw = pd.to_numeric(data[col], errors="coerce").fillna(0.0)
    return (raw != 0).rename(col)


def as_float(values: pd.Series | np.ndarray, index: pd.Index | None = None) -> pd.Series:
    """Return ``values`` as a float Series (non-numeric entries become NaN)."""
    if isinstance(values, pd.Series):
        return pd.to_numeric(values, errors="coerce").astype(float)
    return pd.Series(np.asarray(values, dtype=float), index=index)


def gate(values: pd.Series, mask: pd.Series) -> pd.Series:
    """
    Return ``values`` where ``mask`` holds and 0 elsewhere.

    Values outside the mask are dropped, not multiplied, so a missing entry
    outside the mask contributes 0 instead of NaN.
    """
    arr = np.where(mask.to_numpy(), values.to_numpy(dtype=float), 0.0)
    return pd.Series(arr, index=values.index, name=values.name)


def observed_count(mask: pd.Series) -> int:
    """Number of rows flagged in a membership mask."""
    return int(mask.to_numpy().sum())
