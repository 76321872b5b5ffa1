"""
Score representation for the scored table.

A score is exactly one of three variants:

- ``Numeric``  — result of a numeric reduction (mean, sum, ...)
- ``Verbatim`` — an identity item's original value, never coerced
- ``Missing``  — no score could be produced

The variants are unwrapped only when a ``ScoredValue`` is flattened into a
table row.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

import numpy as np


@dataclass(frozen=True)
class Numeric:
    value: float

    def unwrap(self) -> float:
        return self.value


@dataclass(frozen=True)
class Verbatim:
    value: Any

    def unwrap(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Missing:

    def unwrap(self) -> float:
        return np.nan


Score = Union[Numeric, Verbatim, Missing]

MISSING = Missing()


@dataclass(frozen=True)
class ScoredValue:
    """One output row: a single subject's score on one scored scale."""

    survey_name: str
    scale_name: str
    scored_scale: str
    subject_id: Any
    score: Score
    item_count: int
    missing_count: int
    method: str

    def to_record(self) -> dict:
        return {
            "survey_name": self.survey_name,
            "scale_name": self.scale_name,
            "scored_scale": self.scored_scale,
            "subject_id": self.subject_id,
            "score": self.score.unwrap(),
            "item_count": self.item_count,
            "missing_count": self.missing_count,
            "method": self.method,
        }
