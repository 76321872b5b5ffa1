"""
src/scoring — Rubric-driven questionnaire scoring engine.

Module layout
-------------
config.py       — Column names, include tags, missing-value defaults, paths
errors.py       — Fatal rubric/configuration error taxonomy
validation.py   — Group homogeneity check shared by every stage
values.py       — Numeric / Verbatim / Missing score variants, ScoredValue
rules.py        — Rubric normalization and rubric-driven response join
transforms.py   — Transform grammar: tokenizer, parser, vectorised evaluator
reversal.py     — Min/max reverse-coding
aggregation.py  — Aggregation registry and missing-value policy
engine.py       — Orchestrates join → transform → reverse → aggregate
pipeline.py     — File-backed run: load CSVs, score, save, summarize

Public interface
----------------
Score in memory:
    score_responses(responses_df, rubric_df)
    score_table(responses_df, rubric_df)

Run from files:
    run_scoring_pipeline()

Individual stages:
    compile_rubric(rubric_df)
    join_responses(rules_df, responses_df)
    compile_transform(text)
    apply_transforms(df)
    apply_reversal(df)
    aggregate(values, method_tag)

Extending the aggregation registry:
    register_aggregation(tag, func)
"""

from .pipeline import load_responses, load_rubrics, run_scoring_pipeline

from .aggregation import (
    AggregationResult,
    aggregate,
    register_aggregation,
    registered_methods,
    resolve_method,
)
from .engine import ScoringResult, score_responses, score_table
from .errors import (
    InconsistentDirectiveError,
    MalformedTransformError,
    MissingBoundsError,
    ScoringConfigError,
    UnknownAggregationError,
)
from .reversal import apply_reversal, reverse_code
from .rules import compile_rubric, join_responses
from .transforms import apply_transforms, compile_transform, parse_transform
from .validation import require_homogeneous
from .values import Missing, Numeric, ScoredValue, Verbatim

__all__ = [
    # Pipeline orchestration
    "run_scoring_pipeline",
    "load_responses",
    "load_rubrics",
    # Engine
    "score_responses",
    "score_table",
    "ScoringResult",
    # Stages
    "compile_rubric",
    "join_responses",
    "compile_transform",
    "parse_transform",
    "apply_transforms",
    "reverse_code",
    "apply_reversal",
    "aggregate",
    "AggregationResult",
    "register_aggregation",
    "registered_methods",
    "resolve_method",
    "require_homogeneous",
    # Values
    "Numeric",
    "Verbatim",
    "Missing",
    "ScoredValue",
    # Errors
    "ScoringConfigError",
    "InconsistentDirectiveError",
    "UnknownAggregationError",
    "MissingBoundsError",
    "MalformedTransformError",
]
