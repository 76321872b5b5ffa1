"""
Aggregation resolver: maps include tags to reduction functions and applies
the missing-value policy.

Tags resolve through a closed registry.  The mean tag is built in; every
other method must be registered explicitly with :func:`register_aggregation`.
Unresolved tags are fatal, never an identity fallback.

Missing-value defaults differ by method (config.MEAN_EXCLUDES_MISSING,
config.OTHER_EXCLUDES_MISSING):

    mean   → missing items are dropped before averaging
    others → any missing item makes the score missing
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

import numpy as np
import pandas as pd
from scipy import stats

from .config import (
    IDENTITY_TAG,
    MEAN_EXCLUDES_MISSING,
    MEAN_TAG,
    OTHER_EXCLUDES_MISSING,
)
from .errors import InconsistentDirectiveError, ScoringConfigError, UnknownAggregationError
from .values import MISSING, Numeric, Score


AggregationFunc = Callable[[np.ndarray], float]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_REGISTRY: dict[str, AggregationFunc] = {
    "sum": np.sum,
    "prod": np.prod,
    "median": np.median,
    "min": np.min,
    "max": np.max,
    "gmean": stats.gmean,
    "hmean": stats.hmean,
}


def registered_methods() -> list[str]:
    """All resolvable include tags, mean tag first."""
    return [MEAN_TAG] + sorted(_REGISTRY)


def register_aggregation(
    tag: str,
    func: AggregationFunc,
    replace: bool = False,
) -> None:
    """
    Register a named reduction under an include tag.

    Args:
        tag: Include tag as written in the rubric (case-insensitive).
        func: Reduction over a 1-D float array of non-missing values.
        replace: Allow overwriting an existing registration.

    Raises:
        ScoringConfigError: Reserved tag, or tag already registered and
            ``replace`` is False.
    """
    key = str(tag).strip().lower()
    if key in (MEAN_TAG, IDENTITY_TAG.lower(), "", "0"):
        raise ScoringConfigError(f"Include tag '{tag}' is reserved")
    if key in _REGISTRY and not replace:
        raise ScoringConfigError(
            f"Aggregation method '{key}' is already registered; pass replace=True"
        )
    _REGISTRY[key] = func


def unregister_aggregation(tag: str) -> None:
    _REGISTRY.pop(str(tag).strip().lower(), None)


def resolve_method(tag: str) -> AggregationFunc:
    """
    Look up the reduction for an include tag.

    Raises:
        ScoringConfigError: The identity tag was passed (identity items are
            never aggregated).
        UnknownAggregationError: Tag is not the mean tag or registered.
    """
    key = str(tag).strip()
    if key == MEAN_TAG:
        return np.mean
    if key.upper() == IDENTITY_TAG:
        raise ScoringConfigError("Identity items are passed through, never aggregated")
    try:
        return _REGISTRY[key.lower()]
    except KeyError:
        raise UnknownAggregationError(tag, registered_methods()) from None


def default_exclude_missing(tag: str) -> bool:
    return MEAN_EXCLUDES_MISSING if tag == MEAN_TAG else OTHER_EXCLUDES_MISSING


def resolve_group_method(tags: Iterable[str], group_key: tuple) -> str:
    """
    Return the single include tag shared by one aggregation group.

    Raises:
        InconsistentDirectiveError: More than one distinct tag in the group.
    """
    distinct = sorted(set(tags), key=str)
    if len(distinct) != 1:
        raise InconsistentDirectiveError("include", group_key, distinct)
    return distinct[0]


# ---------------------------------------------------------------------------
# Reduction
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AggregationResult:
    score: Score
    item_count: int
    missing_count: int
    method: str


def aggregate(
    values,
    method_tag: str,
    exclude_missing: bool | None = None,
    context: str = "",
    diagnostics: list[str] | None = None,
) -> AggregationResult:
    """
    Reduce one group's item values to a scale score.

    Args:
        values: Item values; None/NaN/non-numeric text count as missing.
        method_tag: Mean tag or a registered method tag.
        exclude_missing: Drop missing values before reducing.  None applies
                         the method's default policy.
        context: Group description used in diagnostics.
        diagnostics: If given, non-fatal diagnostic messages are appended.

    Returns:
        AggregationResult; ``item_count`` and ``missing_count`` are always
        counted over the full input, whatever the policy.

    Raises:
        UnknownAggregationError: ``method_tag`` does not resolve.
    """
    func = resolve_method(method_tag)

    array = pd.to_numeric(pd.Series(list(values), dtype=object), errors="coerce").to_numpy(dtype=float)
    missing = np.isnan(array)
    item_count = int((~missing).sum())
    missing_count = int(missing.sum())

    if item_count == 0:
        # Covers an empty input and a group whose items are all missing.
        detail = "empty" if array.size == 0 else f"all {missing_count} item(s) missing"
        message = (
            f"WARNING: no contributing items in aggregation group "
            f"{context or '(unnamed)'} ({detail}, method '{method_tag}'); "
            f"score set to missing"
        )
        print(message)
        if diagnostics is not None:
            diagnostics.append(message)
        return AggregationResult(MISSING, 0, missing_count, method_tag)

    if exclude_missing is None:
        exclude_missing = default_exclude_missing(method_tag)

    if missing_count and not exclude_missing:
        return AggregationResult(MISSING, item_count, missing_count, method_tag)

    present = array[~missing]

    with np.errstate(divide="ignore", invalid="ignore"):
        score = float(func(present))
    if not np.isfinite(score):
        return AggregationResult(MISSING, item_count, missing_count, method_tag)

    return AggregationResult(Numeric(score), item_count, missing_count, method_tag)
