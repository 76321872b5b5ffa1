"""
Scoring engine: rubric + responses → scored table.

Stages (each fails fast on a rubric defect; nothing partial is returned):
  1. Compile rubric and join onto responses (rules module)
  2. Partition working rows into identity and numeric items
  3. Identity items → one verbatim row per group
  4. Numeric items → transform, then reverse-code (per item)
  5. Numeric items → aggregate per (survey, scale, subscale, subject)
  6. Concatenate and sort

Identity rows are partitioned out before any include-homogeneity check, so
an identity item sharing a scored scale with numeric items is emitted as its
own row and never enters the numeric reduction.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .aggregation import aggregate, resolve_group_method, resolve_method
from .config import (
    GROUP_KEYS,
    IDENTITY_TAG,
    MEAN_EXCLUDES_MISSING,
    MEAN_TAG,
    OTHER_EXCLUDES_MISSING,
    OUTPUT_COLUMNS,
)
from .reversal import apply_reversal
from .rules import compile_rubric, join_responses
from .transforms import apply_transforms
from .validation import require_homogeneous
from .values import MISSING, ScoredValue, Verbatim


@dataclass
class ScoringResult:
    table: pd.DataFrame
    records: list[ScoredValue] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)


def empty_scored_table() -> pd.DataFrame:
    return pd.DataFrame(columns=OUTPUT_COLUMNS)


def _describe(key: tuple) -> str:
    survey, scale, subscale, subject = key
    return f"survey={survey} scale={scale} subscale={subscale} subject={subject}"


def _blank_to_nan(value):
    if isinstance(value, str):
        value = value.strip()
        return value if value else np.nan
    return value


# ---------------------------------------------------------------------------
# Identity items
# ---------------------------------------------------------------------------

def score_identity_items(rows: pd.DataFrame) -> list[ScoredValue]:
    """
    Pass identity items through unaggregated, one row per group.

    The score is the original (uncoerced) value.  A group with more than one
    distinct non-missing value is a rubric defect.

    Raises:
        InconsistentDirectiveError: Conflicting values within a group.
    """
    if rows.empty:
        return []

    rows = rows.copy()
    rows["value"] = rows["value"].map(_blank_to_nan)
    require_homogeneous(rows, GROUP_KEYS, "value", dropna=True)

    records: list[ScoredValue] = []
    for key, group in rows.groupby(GROUP_KEYS, sort=True, dropna=False):
        present = group["value"].dropna()
        score = Verbatim(present.iloc[0]) if len(present) else MISSING
        records.append(ScoredValue(
            *key,
            score=score,
            item_count=int(len(present)),
            missing_count=int(len(group) - len(present)),
            method=IDENTITY_TAG,
        ))
    return records


# ---------------------------------------------------------------------------
# Numeric items
# ---------------------------------------------------------------------------

def prepare_numeric_items(rows: pd.DataFrame) -> pd.DataFrame:
    """Coerce values to float, then apply transforms and reverse-coding."""
    rows = rows.copy()
    rows["value"] = pd.to_numeric(rows["value"].map(_blank_to_nan), errors="coerce").astype(float)
    rows = apply_transforms(rows)
    return apply_reversal(rows)


def score_numeric_items(
    rows: pd.DataFrame,
    exclude_missing_mean: bool = MEAN_EXCLUDES_MISSING,
    exclude_missing_other: bool = OTHER_EXCLUDES_MISSING,
    diagnostics: list[str] | None = None,
) -> list[ScoredValue]:
    """
    Transform, reverse-code, and aggregate numeric items per group.

    Args:
        rows: Joined working rows whose include tag is not identity.
        exclude_missing_mean: Missing policy for the mean tag.
        exclude_missing_other: Missing policy for every other tag.
        diagnostics: Collects non-fatal diagnostics.

    Raises:
        InconsistentDirectiveError: Mixed include tags in a group, or mixed
            transforms for an item.
        UnknownAggregationError: Unregistered include tag.
    """
    if rows.empty:
        return []

    for tag in sorted(rows["include"].unique(), key=str):
        resolve_method(tag)
    require_homogeneous(rows, GROUP_KEYS, "include")

    prepared = prepare_numeric_items(rows)

    records: list[ScoredValue] = []
    for key, group in prepared.groupby(GROUP_KEYS, sort=True, dropna=False):
        tag = resolve_group_method(group["include"], key)
        result = aggregate(
            group["value"],
            tag,
            exclude_missing=exclude_missing_mean if tag == MEAN_TAG else exclude_missing_other,
            context=_describe(key),
            diagnostics=diagnostics,
        )
        records.append(ScoredValue(
            *key,
            score=result.score,
            item_count=result.item_count,
            missing_count=result.missing_count,
            method=result.method,
        ))
    return records


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def records_to_table(records: list[ScoredValue]) -> pd.DataFrame:
    """Flatten ScoredValue records into the output table, sorted by group."""
    if not records:
        return empty_scored_table()
    table = pd.DataFrame([r.to_record() for r in records], columns=OUTPUT_COLUMNS)
    table["item_count"] = table["item_count"].astype(int)
    table["missing_count"] = table["missing_count"].astype(int)
    return table.sort_values(GROUP_KEYS + ["method"], kind="stable").reset_index(drop=True)


def score_responses(
    responses_df: pd.DataFrame,
    rubric_df: pd.DataFrame,
    exclude_missing_mean: bool = MEAN_EXCLUDES_MISSING,
    exclude_missing_other: bool = OTHER_EXCLUDES_MISSING,
) -> ScoringResult:
    """
    Score long-format responses against a rubric.

    Args:
        responses_df: Columns subject_id, survey_name, item_id, value.
        rubric_df: Concatenated rubric rows (see rules.compile_rubric).
        exclude_missing_mean: Drop missing items from mean scores.
        exclude_missing_other: Drop missing items from other reductions
                               (default propagates missingness).

    Returns:
        ScoringResult with the scored table (OUTPUT_COLUMNS), the underlying
        ScoredValue records, and non-fatal diagnostics.  Empty input yields
        an empty table.

    Raises:
        ScoringConfigError: Any rubric/consistency defect; the run aborts.
    """
    rules = compile_rubric(rubric_df)
    joined = join_responses(rules, responses_df)

    if joined.empty:
        return ScoringResult(empty_scored_table())

    diagnostics: list[str] = []
    identity_mask = joined["include"] == IDENTITY_TAG

    records = score_identity_items(joined.loc[identity_mask])
    records += score_numeric_items(
        joined.loc[~identity_mask],
        exclude_missing_mean=exclude_missing_mean,
        exclude_missing_other=exclude_missing_other,
        diagnostics=diagnostics,
    )

    return ScoringResult(records_to_table(records), records, diagnostics)


def score_table(
    responses_df: pd.DataFrame,
    rubric_df: pd.DataFrame,
    **kwargs,
) -> pd.DataFrame:
    """Shorthand for ``score_responses(...).table``."""
    return score_responses(responses_df, rubric_df, **kwargs).table
