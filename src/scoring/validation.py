"""
Group homogeneity checks shared by the rule compiler, transform evaluator,
and engine.
"""

from __future__ import annotations

import pandas as pd

from .errors import InconsistentDirectiveError


def require_homogeneous(
    df: pd.DataFrame,
    by: str | list[str],
    column: str,
    dropna: bool = False,
) -> None:
    """
    Fail fast if any group holds more than one distinct value in ``column``.

    Never resolves a conflict by majority or first-seen value.

    Args:
        df: Rows to validate.
        by: Column name(s) defining the validation group.
        column: Column that must be constant within each group.
        dropna: Ignore missing values when counting distinct values.

    Raises:
        InconsistentDirectiveError: First offending group, with its key and
            the distinct values observed.
    """
    if df.empty:
        return

    keys = [by] if isinstance(by, str) else list(by)
    for key, values in df.groupby(keys, sort=True, dropna=False)[column]:
        distinct = values.dropna() if dropna else values
        distinct = distinct.drop_duplicates()
        if len(distinct) > 1:
            group_key = key if isinstance(key, tuple) else (key,)
            raise InconsistentDirectiveError(
                column,
                group_key,
                sorted(distinct.tolist(), key=str),
            )
