"""Tests for criterion evaluation."""

import math

import pytest

from criteria import (
    evaluate_condition,
    evaluate_criterion,
    is_criterion_complete,
    normalize_operator,
    parse_threshold,
)
from rules_engine import Criterion


class TestParseThreshold:
    @pytest.mark.parametrize("raw, expected", [
        ("0.6", 0.6),
        (".10", 0.1),
        ("5", 5.0),
        (" 300 ", 300.0),
        (7, 7.0),
        (0.25, 0.25),
        ("-1.5", -1.5),
    ])
    def test_numeric_values(self, raw, expected):
        assert parse_threshold(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["", "   ", None, "abc", "1,5", "nan", "inf", True, math.inf])
    def test_unusable_values(self, raw):
        assert parse_threshold(raw) is None


class TestEvaluateCondition:
    @pytest.mark.parametrize("value, operator, threshold, expected", [
        (0.59, '<', 0.6, True),
        (0.6, '<', 0.6, False),
        (0.6, '<=', 0.6, True),
        (0.61, '<=', 0.6, False),
        (5.0, '=', 5.0, True),
        (5.01, '=', 5.0, False),
        (0.6, '>=', 0.6, True),
        (0.59, '>=', 0.6, False),
        (0.61, '>', 0.6, True),
        (0.6, '>', 0.6, False),
    ])
    def test_operators_at_boundaries(self, value, operator, threshold, expected):
        assert evaluate_condition(value, operator, threshold) is expected

    def test_missing_value_never_matches(self):
        assert evaluate_condition(None, '>=', 0) is False
        assert evaluate_condition(float('nan'), '<', 1) is False

    def test_unknown_operator_never_matches(self, caplog):
        assert evaluate_condition(5, '!=', 3) is False
        assert "Unknown operator" in caplog.text


class TestNormalizeOperator:
    @pytest.mark.parametrize("raw, expected", [
        ('≥', '>='),
        ('≤', '<='),
        ('==', '='),
        (' >= ', '>='),
        ('<', '<'),
    ])
    def test_aliases(self, raw, expected):
        assert normalize_operator(raw) == expected

    def test_none_is_empty(self):
        assert normalize_operator(None) == ''


class TestEvaluateCriterion:
    def test_matches_when_condition_holds(self):
        criterion = Criterion(id="c1", metric_type_id=413, operator='>=', value="0.6")
        assert evaluate_criterion(criterion, {413: 0.6}) is True
        assert evaluate_criterion(criterion, {413: 0.5}) is False

    def test_leading_dot_threshold(self):
        criterion = Criterion(id="c1", metric_type_id=411, operator='>', value=".10")
        assert evaluate_criterion(criterion, {411: 0.11}) is True
        assert evaluate_criterion(criterion, {411: 0.10}) is False

    def test_missing_metric_fails(self):
        criterion = Criterion(id="c1", metric_type_id=413, operator='<', value="0.6")
        assert evaluate_criterion(criterion, {407: 1.0}) is False
        assert evaluate_criterion(criterion, None) is False
        assert evaluate_criterion(criterion, {}) is False

    def test_incomplete_criterion_fails(self):
        no_metric = Criterion(id="c1", metric_type_id=None, operator='<', value="0.6")
        no_value = Criterion(id="c2", metric_type_id=413, operator='<', value="")
        assert evaluate_criterion(no_metric, {413: 0.1}) is False
        assert evaluate_criterion(no_value, {413: 0.1}) is False

    def test_completeness(self):
        assert is_criterion_complete(Criterion("c", 413, '<', "0.6")) is True
        assert is_criterion_complete(Criterion("c", 413, '<', "x")) is False
        assert is_criterion_complete(Criterion("c", None, '<', "1")) is False
