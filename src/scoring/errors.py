"""
Fatal rubric/configuration errors raised by the scoring engine.

All of these abort a scoring run.  Data-sparsity conditions (empty groups,
missing item values) are never raised; they surface as missing scores.
"""

from __future__ import annotations


class ScoringConfigError(ValueError):
    """Base class for rubric or upstream-join defects."""


class InconsistentDirectiveError(ScoringConfigError):
    """A validation group carries more than one distinct directive value."""

    def __init__(self, column: str, group_key: tuple, values: list) -> None:
        self.column = column
        self.group_key = group_key
        self.values = values
        super().__init__(
            f"Inconsistent '{column}' within group {group_key}: "
            f"found {len(values)} distinct values {values!r}"
        )


class UnknownAggregationError(ScoringConfigError):
    """An include tag is neither the mean tag nor a registered method."""

    def __init__(self, tag: str, known: list[str]) -> None:
        self.tag = tag
        super().__init__(
            f"Unknown aggregation method '{tag}'. "
            f"Registered methods: {', '.join(known)}"
        )


class MissingBoundsError(ScoringConfigError):
    """Reverse-coding was requested for an item without min/max."""

    def __init__(self, item_id: str, reason: str) -> None:
        self.item_id = item_id
        super().__init__(
            f"Item '{item_id}' requires min and max ({reason}) "
            "but at least one bound is missing"
        )


class MalformedTransformError(ScoringConfigError):
    """Transform text does not parse under the transform grammar."""

    def __init__(self, text: str, detail: str, item_id: str | None = None) -> None:
        self.text = text
        self.detail = detail
        self.item_id = item_id
        where = f" for item '{item_id}'" if item_id is not None else ""
        super().__init__(f"Malformed transform{where}: {text!r} ({detail})")
