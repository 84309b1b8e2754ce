"""Unit tests for parameter conditions."""

import pytest

from logtrigger.engine.params import (
    ComparisonOp,
    Condition,
    evaluate_conditions,
    evaluate_params,
    malformed_segments,
    parse_conditions,
)

pytestmark = pytest.mark.unit


class TestParseConditions:
    """Tests for parse_conditions."""

    def test_single_condition(self):
        """Test one condition."""
        assert parse_conditions("ParamComparisionMatcher1@9.5,GTE,value") == [
            Condition(compare_value=9.5, op=ComparisonOp.GTE, var_name="value")
        ]

    def test_multiple_conditions(self):
        """Test semicolon separated conditions."""
        conditions = parse_conditions("ParamComparisionMatcher2@500,gte,code;3,LT,retries")
        assert [(c.var_name, c.op, c.compare_value) for c in conditions] == [
            ("code", ComparisonOp.GTE, 500.0),
            ("retries", ComparisonOp.LT, 3.0),
        ]

    def test_malformed_segments_dropped(self):
        """Test segments that do not parse are skipped."""
        conditions = parse_conditions("ParamComparisionMatcher2@500,GTE,code;abc,XX,y")
        assert len(conditions) == 1
        assert malformed_segments("ParamComparisionMatcher2@500,GTE,code;abc,XX,y") == ["abc,XX,y"]

    @pytest.mark.parametrize("params", [None, "", "ParameterMatcher1@5,EQ,x", "garbage"])
    def test_no_conditions(self, params):
        """Test empty input and foreign formats yield None."""
        assert parse_conditions(params) is None


class TestEvaluateConditions:
    """Tests for evaluate_conditions."""

    @pytest.mark.parametrize(
        "op, value, expected",
        [
            ("EQ", "10", True),
            ("EQ", "10.5", False),
            ("NEQ", "11", True),
            ("GT", "10", False),
            ("GT", "10.1", True),
            ("GTE", "10", True),
            ("LT", "9", True),
            ("LTE", "10", True),
            ("LTE", "10.01", False),
        ],
    )
    def test_operators(self, op, value, expected):
        """Test each operator against compare value 10."""
        conditions = parse_conditions(f"ParamComparisionMatcher1@10,{op},v")
        assert evaluate_conditions(conditions, {"v": value}) is expected

    def test_no_conditions_always_hold(self):
        """Test empty and missing conditions pass."""
        assert evaluate_conditions(None, {}) is True
        assert evaluate_conditions([], {"v": "1"}) is True

    def test_missing_variable_fails(self):
        """Test a condition on an absent group fails."""
        conditions = parse_conditions("ParamComparisionMatcher1@1,GTE,v")
        assert evaluate_conditions(conditions, {"other": "5"}) is False
        assert evaluate_conditions(conditions, {"v": None}) is False

    def test_non_numeric_variable_fails(self):
        """Test a non-numeric capture fails."""
        conditions = parse_conditions("ParamComparisionMatcher1@1,GTE,v")
        assert evaluate_conditions(conditions, {"v": "abc"}) is False

    def test_leading_number_is_used(self):
        """Test a capture like '12ms' compares as 12."""
        conditions = parse_conditions("ParamComparisionMatcher1@10,GT,v")
        assert evaluate_conditions(conditions, {"v": "12ms"}) is True

    def test_all_conditions_must_hold(self):
        """Test AND semantics."""
        conditions = parse_conditions("ParamComparisionMatcher2@10,GTE,a;5,LT,b")
        assert evaluate_conditions(conditions, {"a": "10", "b": "4"}) is True
        assert evaluate_conditions(conditions, {"a": "10", "b": "5"}) is False


class TestEvaluateParams:
    """Tests for per-condition evaluation detail."""

    def test_details(self):
        """Test the outcome records each condition."""
        conditions = parse_conditions("ParamComparisionMatcher1@10,GTE,val")
        outcome = evaluate_params(conditions, {"val": "15.5"})

        assert outcome.passed is True
        assert len(outcome.details) == 1
        detail = outcome.details[0]
        assert detail.var_name == "val"
        assert detail.extracted_value == 15.5
        assert detail.op == ComparisonOp.GTE
        assert detail.compare_value == 10
        assert detail.passed is True

    def test_failed_conditions(self):
        """Test failing conditions are exposed."""
        conditions = parse_conditions("ParamComparisionMatcher2@10,GTE,a;10,GTE,b")
        outcome = evaluate_params(conditions, {"a": "11", "b": "2"})

        assert outcome.passed is False
        assert [d.var_name for d in outcome.failed_conditions] == ["b"]
