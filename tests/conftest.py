"""
Shared pytest fixtures and table builders for scoring engine tests.

Rubric rows default to a 1–4 Likert item scored by the mean tag with no
reverse-coding and no transform; each test overrides only what it exercises.
"""

from __future__ import annotations

import pandas as pd
import pytest


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_rubric_row(
    item_id: str,
    scale_name: str = "anxiety",
    scored_scale: str | None = None,
    include: object = "1",
    reverse: object = False,
    lo: float | None = 1,
    hi: float | None = 4,
    transform: str | None = None,
    survey_pattern: str = "",
) -> dict:
    """Build a single rubric row."""
    return {
        "survey_pattern": survey_pattern,
        "scale_name": scale_name,
        "scored_scale": scored_scale if scored_scale is not None else scale_name,
        "item_id": item_id,
        "include": include,
        "reverse": reverse,
        "min": lo,
        "max": hi,
        "transform": transform,
    }


def make_responses(
    values: dict[str, object],
    subject_id: object = "S01",
    survey_name: str = "baseline",
) -> pd.DataFrame:
    """Build long-format responses for one subject from {item_id: value}."""
    return pd.DataFrame([
        {
            "subject_id": subject_id,
            "survey_name": survey_name,
            "item_id": item_id,
            "value": value,
        }
        for item_id, value in values.items()
    ])


def make_rubric(rows: list[dict]) -> pd.DataFrame:
    return pd.DataFrame(rows)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fifteen_item_rubric():
    """
    15-item sum scale on 1–4 bounds.

    Direct:   items 1–5, 11–12        (7 items)
    Reversed: items 6–10, 13–15       (8 items)
    """
    reversed_items = {6, 7, 8, 9, 10, 13, 14, 15}
    return make_rubric([
        make_rubric_row(
            f"stai_{i}",
            scale_name="stai",
            include="sum",
            reverse=i in reversed_items,
        )
        for i in range(1, 16)
    ])


@pytest.fixture
def fifteen_item_responses():
    """One subject answering every STAI item with 2."""
    return make_responses({f"stai_{i}": 2 for i in range(1, 16)})


@pytest.fixture
def demographics_rubric():
    """Identity items: free-text / categorical answers passed through."""
    return make_rubric([
        make_rubric_row("sex", scale_name="demographics", scored_scale="sex",
                        include="I", lo=None, hi=None),
        make_rubric_row("handedness", scale_name="demographics", scored_scale="handedness",
                        include="I", lo=None, hi=None),
    ])
