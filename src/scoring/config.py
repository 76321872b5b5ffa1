"""
Scoring-layer configuration: column names, rubric tags, missing-value
defaults, and path constants.

All constants shared by the rule compiler, transform evaluator, aggregation
resolver, and engine are centralized here so that configuration is
separated from logic.
"""

from pathlib import Path

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DATA_DIR = PROJECT_ROOT / "data"
RESPONSES_DIR = DATA_DIR / "responses"
RUBRICS_DIR = DATA_DIR / "rubrics"
SCORED_DIR = DATA_DIR / "scored"

# Input / output file paths
RESPONSES_PATH = RESPONSES_DIR / "responses_long.csv"
SCORED_PATH = SCORED_DIR / "scored_scales.csv"

# ---------------------------------------------------------------------------
# Table schemas
# ---------------------------------------------------------------------------

RESPONSE_COLUMNS: list[str] = ["subject_id", "survey_name", "item_id", "value"]

RUBRIC_COLUMNS: list[str] = [
    "survey_pattern", "scale_name", "scored_scale", "item_id",
    "include", "reverse", "min", "max", "transform",
]

# Rubric files exported from the survey platform use these headers
RUBRIC_COLUMN_ALIASES: dict[str, str] = {
    "column_name": "item_id",
    "file_name": "survey_pattern",
}

OUTPUT_COLUMNS: list[str] = [
    "survey_name", "scale_name", "scored_scale", "subject_id",
    "score", "item_count", "missing_count", "method",
]

# Aggregation unit: one output row per key
GROUP_KEYS: list[str] = ["survey_name", "scale_name", "scored_scale", "subject_id"]

# ---------------------------------------------------------------------------
# Include tags
# ---------------------------------------------------------------------------

MEAN_TAG = "1"
IDENTITY_TAG = "I"
EXCLUDE_TAG = "0"

# Raw spellings that resolve to the exclusion tag (NaN is handled separately)
EXCLUDE_SPELLINGS: frozenset[str] = frozenset({"", "0", "nan", "none", "na"})

# ---------------------------------------------------------------------------
# Reverse flags and transforms
# ---------------------------------------------------------------------------

TRUE_SPELLINGS: frozenset[str] = frozenset({"true", "t", "yes", "y", "1"})
FALSE_SPELLINGS: frozenset[str] = frozenset({"false", "f", "no", "n", "0", "", "nan"})

NOOP_TRANSFORM = "no-op"
NOOP_SPELLINGS: frozenset[str] = frozenset({"", "no-op", "noop", "none", "nan", "identity"})

# ---------------------------------------------------------------------------
# Missing-value policy
# ---------------------------------------------------------------------------

# Mean drops missing items; every other reduction propagates missingness.
# Kept as two switches because the asymmetry is inherited, not derived.
MEAN_EXCLUDES_MISSING: bool = True
OTHER_EXCLUDES_MISSING: bool = False
