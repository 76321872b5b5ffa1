"""
Unit tests for src/scoring/reversal.py.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from src.scoring.errors import MissingBoundsError
from src.scoring.reversal import apply_reversal, reverse_code


def _rows(values, reverse, lo=1.0, hi=4.0):
    n = len(values)
    return pd.DataFrame({
        "item_id": [f"q{i}" for i in range(1, n + 1)],
        "value": [float(v) for v in values],
        "reverse": reverse,
        "min": [lo] * n,
        "max": [hi] * n,
    })


class TestReverseCode:

    def test_spec_example(self):
        assert reverse_code(2, 1, 4) == 3

    @pytest.mark.parametrize("value,expected", [(1, 4), (2, 3), (3, 2), (4, 1)])
    def test_every_value_on_scale(self, value, expected):
        assert reverse_code(value, 1, 4) == expected

    def test_reversing_twice_is_identity(self):
        assert reverse_code(reverse_code(3, 0, 10), 0, 10) == 3

    def test_arrays(self):
        result = reverse_code(np.array([0.0, 5.0]), 0.0, 5.0)
        assert result.tolist() == [5.0, 0.0]

    def test_missing_stays_missing(self):
        assert np.isnan(reverse_code(np.nan, 1, 4))


class TestApplyReversal:

    def test_only_flagged_rows_reversed(self):
        df = _rows([1, 2, 3], [True, False, True])
        result = apply_reversal(df)
        assert result["value"].tolist() == [4.0, 2.0, 2.0]

    def test_uses_row_bounds_not_scale_bounds(self):
        df = pd.DataFrame({
            "item_id": ["a", "b"],
            "value": [2.0, 2.0],
            "reverse": [True, True],
            "min": [1.0, 0.0],
            "max": [4.0, 6.0],
        })
        assert apply_reversal(df)["value"].tolist() == [3.0, 4.0]

    def test_input_not_modified(self):
        df = _rows([1], [True])
        apply_reversal(df)
        assert df["value"].tolist() == [1.0]

    def test_missing_bounds_on_flagged_row_raises(self):
        df = _rows([1, 2], [False, True], lo=np.nan)
        with pytest.raises(MissingBoundsError, match="q2"):
            apply_reversal(df)

    def test_missing_bounds_on_unflagged_row_is_fine(self):
        df = _rows([1, 2], [False, False], lo=np.nan, hi=np.nan)
        assert apply_reversal(df)["value"].tolist() == [1.0, 2.0]

    def test_missing_value_on_flagged_row(self):
        df = _rows([np.nan], [True])
        assert np.isnan(apply_reversal(df)["value"].iloc[0])
