"""
Min/max reverse-coding of rubric-flagged items.

Applied after transforms, per row, with each row's own item bounds (never a
scale-wide bound).
"""

from __future__ import annotations

import pandas as pd

from .errors import MissingBoundsError


def reverse_code(value, lo, hi):
    """
    Invert a response on its item's scale: ``lo + hi - value``.

    Works on scalars and on numpy/pandas arrays alike.  A missing value stays
    missing.
    """
    return lo + hi - value


def apply_reversal(df: pd.DataFrame) -> pd.DataFrame:
    """
    Reverse-code the ``value`` column on rows whose rule has ``reverse`` set.

    Args:
        df: Numeric working rows with float ``value``, ``min``, ``max`` and
            boolean ``reverse`` columns.

    Returns:
        Copy of ``df`` with reversed values in place.

    Raises:
        MissingBoundsError: A reverse-flagged row lacks min or max.
    """
    df = df.copy()
    if df.empty:
        return df

    flagged = df["reverse"].astype(bool)
    unbounded = flagged & (df["min"].isna() | df["max"].isna())
    if unbounded.any():
        item_id = df.loc[unbounded, "item_id"].iloc[0]
        raise MissingBoundsError(item_id, "reverse = true")

    df.loc[flagged, "value"] = reverse_code(
        df.loc[flagged, "value"].to_numpy(dtype=float),
        df.loc[flagged, "min"].to_numpy(dtype=float),
        df.loc[flagged, "max"].to_numpy(dtype=float),
    )
    return df
