"""
Unit tests for src/scoring/aggregation.py.

Covers:
- Mean aggregation and its default missing-value exclusion.
- Registry methods (sum, prod, scipy extensions) and default propagation.
- Overridable missing-value policies, provenance counts.
- Empty groups: missing score + diagnostic, never fatal.
- Closed registry: unknown tags, reserved tags, deliberate registration.
- resolve_group_method heterogeneity guard.
"""

from __future__ import annotations

import numpy as np
import pytest

from src.scoring.aggregation import (
    aggregate,
    register_aggregation,
    registered_methods,
    resolve_group_method,
    resolve_method,
    unregister_aggregation,
)
from src.scoring.errors import (
    InconsistentDirectiveError,
    ScoringConfigError,
    UnknownAggregationError,
)
from src.scoring.values import Missing, Numeric


# ---------------------------------------------------------------------------
# Class: mean tag
# ---------------------------------------------------------------------------

class TestMeanAggregation:

    def test_mean_of_four(self):
        result = aggregate([1, 2, 3, 4], "1")
        assert result.score == Numeric(2.5)
        assert result.item_count == 4
        assert result.missing_count == 0
        assert result.method == "1"

    def test_mean_excludes_missing_by_default(self):
        result = aggregate([2, None, 4], "1")
        assert result.score == Numeric(3.0)
        assert result.item_count == 2
        assert result.missing_count == 1

    def test_mean_can_propagate_missing(self):
        result = aggregate([2, np.nan, 4], "1", exclude_missing=False)
        assert isinstance(result.score, Missing)
        assert result.missing_count == 1

    def test_mean_all_missing_is_missing(self):
        result = aggregate([np.nan, None], "1")
        assert isinstance(result.score, Missing)
        assert result.item_count == 0
        assert result.missing_count == 2

    def test_non_numeric_text_counts_as_missing(self):
        result = aggregate(["2", "n/a", "4"], "1")
        assert result.score == Numeric(3.0)
        assert result.missing_count == 1


# ---------------------------------------------------------------------------
# Class: registry methods
# ---------------------------------------------------------------------------

class TestRegistryAggregation:

    def test_sum(self):
        assert aggregate([1, 2, 3], "sum").score == Numeric(6.0)

    def test_prod(self):
        assert aggregate([2, 3, 4], "prod").score == Numeric(24.0)

    def test_tag_lookup_is_case_insensitive(self):
        assert aggregate([1, 2], "SUM").score == Numeric(3.0)

    def test_sum_propagates_missing_by_default(self):
        result = aggregate([2, None, 4], "sum")
        assert isinstance(result.score, Missing)
        assert result.item_count == 2
        assert result.missing_count == 1

    def test_sum_can_exclude_missing(self):
        result = aggregate([2, None, 4], "sum", exclude_missing=True)
        assert result.score == Numeric(6.0)
        assert result.missing_count == 1

    def test_median(self):
        assert aggregate([1, 9, 3], "median").score == Numeric(3.0)

    def test_gmean_from_scipy(self):
        result = aggregate([1, 4], "gmean")
        assert result.score.value == pytest.approx(2.0)

    def test_gmean_of_negative_is_missing(self):
        result = aggregate([-1, 4], "gmean")
        assert isinstance(result.score, Missing)


# ---------------------------------------------------------------------------
# Class: empty groups
# ---------------------------------------------------------------------------

class TestEmptyGroup:

    def test_empty_is_missing_not_error(self):
        result = aggregate([], "1")
        assert isinstance(result.score, Missing)
        assert result.item_count == 0
        assert result.missing_count == 0

    def test_empty_prints_warning_with_context(self, capsys):
        aggregate([], "sum", context="survey=s1 scale=stai subscale=total subject=S01")
        out = capsys.readouterr().out
        assert "WARNING" in out
        assert "subject=S01" in out

    def test_empty_records_diagnostic(self):
        diagnostics: list[str] = []
        aggregate([], "1", context="scale=x", diagnostics=diagnostics)
        assert len(diagnostics) == 1
        assert "scale=x" in diagnostics[0]

    @pytest.mark.parametrize("tag", ["1", "sum"])
    def test_all_missing_records_diagnostic(self, tag):
        diagnostics: list[str] = []
        result = aggregate([None, "n/a"], tag, context="scale=x", diagnostics=diagnostics)
        assert isinstance(result.score, Missing)
        assert result.missing_count == 2
        assert len(diagnostics) == 1
        assert "scale=x" in diagnostics[0]

    def test_partly_missing_sum_has_no_diagnostic(self):
        diagnostics: list[str] = []
        aggregate([2, None], "sum", diagnostics=diagnostics)
        assert diagnostics == []

    def test_empty_with_unknown_tag_still_raises(self):
        with pytest.raises(UnknownAggregationError):
            aggregate([], "mode")


# ---------------------------------------------------------------------------
# Class: closed registry
# ---------------------------------------------------------------------------

class TestRegistry:

    def test_unknown_tag_raises(self):
        with pytest.raises(UnknownAggregationError, match="'mode'"):
            resolve_method("mode")

    def test_unknown_tag_never_falls_back_to_identity(self):
        with pytest.raises(UnknownAggregationError):
            aggregate([1, 2], "2")

    def test_identity_tag_is_not_an_aggregation(self):
        with pytest.raises(ScoringConfigError):
            resolve_method("I")

    def test_registered_methods_lists_mean_first(self):
        methods = registered_methods()
        assert methods[0] == "1"
        assert {"sum", "prod"} <= set(methods)

    def test_register_and_use_custom_method(self):
        register_aggregation("range", lambda a: float(np.max(a) - np.min(a)))
        try:
            assert aggregate([2, 7, 4], "range").score == Numeric(5.0)
        finally:
            unregister_aggregation("range")
        with pytest.raises(UnknownAggregationError):
            resolve_method("range")

    def test_register_existing_requires_replace(self):
        with pytest.raises(ScoringConfigError, match="already registered"):
            register_aggregation("sum", np.sum)

    @pytest.mark.parametrize("tag", ["1", "I", "i", "0", ""])
    def test_reserved_tags_cannot_be_registered(self, tag):
        with pytest.raises(ScoringConfigError, match="reserved"):
            register_aggregation(tag, np.sum)


# ---------------------------------------------------------------------------
# Class: resolve_group_method
# ---------------------------------------------------------------------------

class TestResolveGroupMethod:

    def test_single_tag(self):
        assert resolve_group_method(["sum", "sum"], ("s", "a", "a", 1)) == "sum"

    def test_mixed_tags_raise_with_group_key(self):
        key = ("baseline", "anxiety", "total", "S01")
        with pytest.raises(InconsistentDirectiveError) as excinfo:
            resolve_group_method(["1", "sum", "1"], key)
        assert excinfo.value.group_key == key
        assert excinfo.value.values == ["1", "sum"]
