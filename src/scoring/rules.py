"""
Rule compilation: normalize a rubric table into typed scoring rules and join
them onto long-format responses.

The rubric is the driving side of the join.  Every in-scope subject receives
one working row per rubric item of a scale, so unanswered items surface as
missing values and are counted downstream rather than silently vanishing.

Survey scope of a rubric row:
- ``survey_pattern`` set   → surveys whose name matches it (case-insensitive
                             regular-expression search)
- ``survey_pattern`` blank → surveys in which any item of the same scale was
                             answered
"""

from __future__ import annotations

import re

import numpy as np
import pandas as pd

from .config import (
    EXCLUDE_SPELLINGS,
    EXCLUDE_TAG,
    FALSE_SPELLINGS,
    GROUP_KEYS,
    IDENTITY_TAG,
    MEAN_TAG,
    NOOP_TRANSFORM,
    RESPONSE_COLUMNS,
    RUBRIC_COLUMN_ALIASES,
    RUBRIC_COLUMNS,
    TRUE_SPELLINGS,
)
from .errors import MalformedTransformError, MissingBoundsError, ScoringConfigError
from .transforms import compile_transform, normalize_transform


# ---------------------------------------------------------------------------
# Cell normalization
# ---------------------------------------------------------------------------

def _is_blank(raw) -> bool:
    return raw is None or (not isinstance(raw, str) and pd.isna(raw))


def normalize_include(raw) -> str:
    """
    Resolve a raw ``include`` cell to its canonical tag.

    ``1``/``1.0``/``"1"`` → mean tag; ``0``/blank/NaN → exclusion tag;
    ``"I"``/``"i"`` → identity tag; anything else → lower-cased method tag.
    """
    if _is_blank(raw):
        return EXCLUDE_TAG

    text = str(raw).strip()
    try:
        number = float(text)
    except ValueError:
        number = None
    if number is not None and np.isfinite(number) and number.is_integer():
        text = str(int(number))

    lowered = text.lower()
    if lowered in EXCLUDE_SPELLINGS:
        return EXCLUDE_TAG
    if lowered == IDENTITY_TAG.lower():
        return IDENTITY_TAG
    if lowered == MEAN_TAG:
        return MEAN_TAG
    return lowered


def normalize_reverse(raw, item_id=None) -> bool:
    """
    Resolve a boolean-like ``reverse`` cell.

    Raises:
        ScoringConfigError: Value is not recognisably true or false.
    """
    if _is_blank(raw):
        return False
    if isinstance(raw, (bool, np.bool_)):
        return bool(raw)

    text = str(raw).strip().lower()
    try:
        number = float(text)
        if number in (0.0, 1.0):
            return number == 1.0
    except ValueError:
        pass
    if text in TRUE_SPELLINGS:
        return True
    if text in FALSE_SPELLINGS:
        return False
    raise ScoringConfigError(f"Unrecognised reverse flag {raw!r} for item '{item_id}'")


# ---------------------------------------------------------------------------
# Rubric compilation
# ---------------------------------------------------------------------------

def compile_rubric(rubric_df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize a concatenated rubric table into typed scoring rules.

    Steps:
      1. Rename exported header aliases (column_name → item_id, ...).
      2. Fill optional columns (scored_scale defaults to scale_name).
      3. Normalize include tags, reverse flags, bounds, and transforms.
      4. Drop excluded rows.
      5. Validate reverse bounds and compile every distinct transform.

    Args:
        rubric_df: Raw rubric rows from the rubric loader.

    Returns:
        New DataFrame with exactly RUBRIC_COLUMNS; the input is not modified.

    Raises:
        ScoringConfigError: Required column absent or reverse flag unreadable.
        MissingBoundsError: Reverse-coded item without min/max.
        MalformedTransformError: Transform text outside the grammar.
    """
    aliases = {
        alias: target for alias, target in RUBRIC_COLUMN_ALIASES.items()
        if target not in rubric_df.columns
    }
    rules = rubric_df.rename(columns=aliases).copy()

    missing = [c for c in ("scale_name", "item_id", "include") if c not in rules.columns]
    if missing:
        raise ScoringConfigError(f"Rubric is missing required columns: {missing}")

    if rules.empty:
        return pd.DataFrame(columns=RUBRIC_COLUMNS)

    if "scored_scale" not in rules.columns:
        rules["scored_scale"] = np.nan
    rules["scored_scale"] = rules["scored_scale"].where(
        rules["scored_scale"].notna() & (rules["scored_scale"].astype(str).str.strip() != ""),
        rules["scale_name"],
    )
    for column, default in (
        ("survey_pattern", ""),
        ("reverse", False),
        ("min", np.nan),
        ("max", np.nan),
        ("transform", NOOP_TRANSFORM),
    ):
        if column not in rules.columns:
            rules[column] = default

    rules["survey_pattern"] = rules["survey_pattern"].fillna("").astype(str).str.strip()
    rules["item_id"] = rules["item_id"].astype(str).str.strip()
    rules["include"] = rules["include"].map(normalize_include)
    rules["reverse"] = [
        normalize_reverse(flag, item) for flag, item in zip(rules["reverse"], rules["item_id"])
    ]
    rules["min"] = pd.to_numeric(rules["min"], errors="coerce")
    rules["max"] = pd.to_numeric(rules["max"], errors="coerce")
    rules["transform"] = rules["transform"].map(normalize_transform)

    rules = rules.loc[rules["include"] != EXCLUDE_TAG, RUBRIC_COLUMNS].reset_index(drop=True)

    unbounded = rules["reverse"] & (rules["min"].isna() | rules["max"].isna())
    if unbounded.any():
        raise MissingBoundsError(rules.loc[unbounded, "item_id"].iloc[0], "reverse = true")

    for text, items in rules.groupby("transform", sort=True)["item_id"]:
        if text == NOOP_TRANSFORM:
            continue
        try:
            compiled = compile_transform(text)
        except MalformedTransformError as exc:
            raise MalformedTransformError(text, exc.detail, item_id=items.iloc[0]) from None
        if compiled.uses_reverse:
            item_rows = rules.loc[items.index]
            bad = item_rows["min"].isna() | item_rows["max"].isna()
            if bad.any():
                raise MissingBoundsError(
                    item_rows.loc[bad, "item_id"].iloc[0],
                    f"transform {text!r} calls reverse()",
                )

    return rules


# ---------------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------------

def _survey_scope(rules: pd.DataFrame, responses: pd.DataFrame) -> pd.DataFrame:
    """Map each (survey_pattern, scale_name) to the surveys it applies to."""
    surveys = sorted(responses["survey_name"].dropna().astype(str).unique())
    answered = responses.groupby("survey_name")["item_id"].apply(set).to_dict()

    records: list[dict] = []
    for (pattern, scale), scale_rules in rules.groupby(["survey_pattern", "scale_name"], sort=True):
        if pattern:
            try:
                regex = re.compile(pattern, re.IGNORECASE)
            except re.error as exc:
                raise ScoringConfigError(
                    f"Invalid survey_pattern {pattern!r} for scale '{scale}': {exc}"
                ) from None
            matched = [s for s in surveys if regex.search(s)]
        else:
            items = set(scale_rules["item_id"])
            matched = [s for s in surveys if items & answered.get(s, set())]

        records.extend(
            {"survey_pattern": pattern, "scale_name": scale, "survey_name": s}
            for s in matched
        )

    return pd.DataFrame(records, columns=["survey_pattern", "scale_name", "survey_name"])


def join_responses(rules_df: pd.DataFrame, responses_df: pd.DataFrame) -> pd.DataFrame:
    """
    Left-join compiled rules onto responses by item identifier.

    Every subject with a response in an in-scope survey gets one row per
    rubric item; unanswered items carry a missing ``value``.  Excluded rows
    never reach the output.

    Args:
        rules_df: Output of :func:`compile_rubric`.
        responses_df: Long-format responses (RESPONSE_COLUMNS).

    Returns:
        Working rows: RUBRIC_COLUMNS + subject_id, survey_name, value,
        sorted by GROUP_KEYS then item_id.

    Raises:
        ScoringConfigError: Response table lacks a required column.
    """
    missing = [c for c in RESPONSE_COLUMNS if c not in responses_df.columns]
    if missing:
        raise ScoringConfigError(f"Response table is missing required columns: {missing}")

    columns = RUBRIC_COLUMNS + ["subject_id", "survey_name", "value"]
    if rules_df.empty or responses_df.empty:
        return pd.DataFrame(columns=columns)

    responses = responses_df[RESPONSE_COLUMNS].copy()
    responses["item_id"] = responses["item_id"].astype(str).str.strip()
    responses["survey_name"] = responses["survey_name"].astype(str)

    scope = _survey_scope(rules_df, responses)
    sessions = responses[["subject_id", "survey_name"]].drop_duplicates()

    expanded = (
        rules_df.merge(scope, on=["survey_pattern", "scale_name"], how="inner")
        .merge(sessions, on="survey_name", how="inner")
    )
    joined = expanded.merge(
        responses,
        on=["subject_id", "survey_name", "item_id"],
        how="left",
    )

    joined = joined.loc[joined["include"] != EXCLUDE_TAG, columns]
    return joined.sort_values(GROUP_KEYS + ["item_id"], kind="stable").reset_index(drop=True)
