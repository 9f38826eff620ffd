"""Tests for rule matching and rule serialization."""

import json

import pytest

from criteria import evaluate_criterion
from predefined_plans import BAU_PLAN, NSP_2026_30_PLAN
from rules_engine import (
    Criterion,
    Rule,
    district_matches_rule,
    find_districts_matching_criteria,
    find_matching_district_ids,
    find_rules_matching_district,
    find_rules_with_district_as_exception,
    generate_rule_report,
    get_exception_candidates,
    has_complete_criteria,
    rule_from_dict,
    rule_to_dict,
    rules_equal,
    rules_key,
    serialize_rule,
)


def make_rule(rule_id="r1", criteria=(), **kwargs):
    kwargs.setdefault('interventions_by_category', {42: 89})
    return Rule(id=rule_id, title=rule_id.upper(), color="#22c55e", criteria=tuple(criteria), **kwargs)


HIGH_SEASONALITY = Criterion(id="c1", metric_type_id=413, operator='>=', value="0.6")
HIGH_MORTALITY = Criterion(id="c2", metric_type_id=407, operator='>=', value="5")


class TestDistrictMatchesRule:
    def test_all_criteria_must_hold(self):
        rule = make_rule(criteria=[HIGH_SEASONALITY, HIGH_MORTALITY])
        assert district_matches_rule("101", rule, {413: 0.8, 407: 10.0}) is True
        assert district_matches_rule("101", rule, {413: 0.8, 407: 1.0}) is False

    def test_rule_without_criteria_matches_nothing(self):
        rule = make_rule(criteria=[])
        assert district_matches_rule("101", rule, {413: 0.8}) is False

    def test_all_districts_rule_ignores_criteria(self):
        rule = make_rule(criteria=[HIGH_SEASONALITY], is_all_districts=True)
        assert district_matches_rule("101", rule, {413: 0.1}) is True
        assert district_matches_rule("101", rule, None) is True

    def test_exception_wins_over_all_districts(self):
        rule = make_rule(is_all_districts=True, excluded_district_ids=("101",))
        assert district_matches_rule("101", rule, {}) is False
        assert district_matches_rule(101, rule, {}) is False
        assert district_matches_rule("102", rule, {}) is True

    def test_exception_wins_over_criteria(self):
        rule = make_rule(criteria=[HIGH_SEASONALITY], excluded_district_ids=("101",))
        assert district_matches_rule("101", rule, {413: 0.9}) is False

    def test_missing_metric_fails_rule(self):
        rule = make_rule(criteria=[HIGH_SEASONALITY])
        assert district_matches_rule("105", rule, None) is False

    def test_incomplete_criterion_blocks_match(self):
        half_typed = Criterion(id="c3", metric_type_id=410, operator='>', value="")
        rule = make_rule(criteria=[HIGH_SEASONALITY, half_typed])
        assert district_matches_rule("101", rule, {413: 0.9, 410: 500.0}) is False


class TestPlanScenarios:
    """Districts described by their metrics against the shipped plans."""

    def test_nsp_rule_1_matches_high_seasonality_high_mortality(self):
        rule = NSP_2026_30_PLAN.rules[1]
        assert district_matches_rule("1", rule, {413: 0.7, 407: 6.0}) is True
        assert district_matches_rule("1", rule, {413: 0.5, 407: 6.0}) is False

    def test_nsp_rule_1_exact_boundary(self):
        rule = NSP_2026_30_PLAN.rules[1]
        assert district_matches_rule("1", rule, {413: 0.6, 407: 5.0}) is True
        assert district_matches_rule("1", rule, {413: 0.8, 407: 10.0}) is True
        assert district_matches_rule("1", rule, {413: 0.5, 407: 10.0}) is False

    def test_strictly_below_excludes_boundary(self):
        rule = NSP_2026_30_PLAN.rules[2]
        low_seasonality = rule.criteria[0]
        assert (low_seasonality.operator, low_seasonality.value) == ('<', "0.6")
        assert evaluate_criterion(low_seasonality, {413: 0.6}) is False
        assert evaluate_criterion(low_seasonality, {413: 0.59}) is True

        metrics = {413: 0.6, 410: 350.0, 407: 5.0, 412: 0.8}
        assert district_matches_rule("1", rule, metrics) is False
        assert district_matches_rule("1", rule, {**metrics, 413: 0.59}) is True

    def test_nsp_rule_2_requires_all_four_criteria(self):
        rule = NSP_2026_30_PLAN.rules[2]
        metrics = {413: 0.4, 410: 350.0, 407: 6.0, 412: 0.8}
        assert district_matches_rule("1", rule, metrics) is True
        assert district_matches_rule("1", rule, {**metrics, 412: 0.5}) is False

    def test_bau_rule_boundaries(self):
        rule = BAU_PLAN.rules[1]
        metrics = {413: 0.69, 410: 500.0, 407: 9.99, 412: 0.75}
        assert district_matches_rule("1", rule, metrics) is True
        assert district_matches_rule("1", rule, {**metrics, 413: 0.7}) is False
        assert district_matches_rule("1", rule, {**metrics, 407: 10.0}) is False

    def test_default_rule_matches_everyone(self, metrics_by_district):
        default = NSP_2026_30_PLAN.rules[0]
        ids = ["101", "102", "103", "104", "105"]
        assert find_matching_district_ids(ids, default, metrics_by_district) == ids


class TestFinders:
    def test_find_matching_district_ids_keeps_input_order(self, metrics_by_district):
        rule = make_rule(criteria=[Criterion("c", 410, '>=', "300")])
        assert find_matching_district_ids([103, 101, 104, 102], rule, metrics_by_district) == ["103", "101", "102"]

    def test_preview_uses_complete_criteria_only(self, metrics_by_district):
        criteria = [Criterion("c1", 410, '>=', "300"), Criterion("c2", 413, '<', "")]
        ids = ["101", "102", "103", "104"]
        assert find_districts_matching_criteria(ids, criteria, metrics_by_district) == ["101", "102", "103"]

    def test_preview_without_complete_criteria_is_empty(self, metrics_by_district):
        criteria = [Criterion("c1", None, '>=', "300")]
        assert find_districts_matching_criteria(["101"], criteria, metrics_by_district) == []
        assert has_complete_criteria(criteria) is False

    def test_rules_matching_district(self, metrics_by_district):
        rules = [
            make_rule("default", is_all_districts=True),
            make_rule("seasonal", criteria=[HIGH_SEASONALITY]),
            make_rule("hidden", is_all_districts=True, is_visible=False),
        ]
        assert find_rules_matching_district("101", rules, metrics_by_district) == ["default", "seasonal"]
        assert find_rules_matching_district("102", rules, metrics_by_district) == ["default"]
        assert find_rules_matching_district(
            "102", rules, metrics_by_district, visible_only=False
        ) == ["default", "hidden"]

    def test_rules_with_district_as_exception(self):
        rules = [
            make_rule("a", excluded_district_ids=("101", "102")),
            make_rule("b"),
            make_rule("c", excluded_district_ids=("101",)),
        ]
        assert find_rules_with_district_as_exception("101", rules) == ["a", "c"]
        assert find_rules_with_district_as_exception(102, rules) == ["a"]

    def test_exception_candidates_skip_excluded(self, metrics_by_district):
        rule = make_rule(is_all_districts=True, excluded_district_ids=("102",))
        assert get_exception_candidates(rule, ["101", "102", "103"], metrics_by_district) == ["101", "103"]


class TestSerialization:
    def test_dict_round_trip_keeps_integer_keys(self):
        rule = make_rule(
            criteria=[HIGH_SEASONALITY],
            interventions_by_category={41: 86, 37: 78},
            coverage_by_category={37: 0.8},
            excluded_district_ids=("9", "3"),
        )
        data = json.loads(json.dumps(rule_to_dict(rule)))

        assert data['interventions_by_category'] == [[37, 78], [41, 86]]
        assert data['excluded_district_ids'] == ["3", "9"]

        restored = rule_from_dict(data)
        assert restored.interventions_by_category == {37: 78, 41: 86}
        assert restored.coverage_by_category == {37: 0.8}
        assert restored.criteria == rule.criteria

    def test_camel_case_input(self):
        rule = rule_from_dict({
            'id': 'x',
            'title': 'Imported',
            'color': '#000000',
            'criteria': [{'id': 'c', 'metricTypeId': 413, 'operator': '≥', 'value': 0.6}],
            'interventionsByCategory': {'42': 89},
            'isAllDistricts': False,
            'excludedDistricts': [101],
            'isVisible': False,
        })
        assert rule.interventions_by_category == {42: 89}
        assert rule.criteria[0].operator == '>='
        assert rule.criteria[0].value == '0.6'
        assert rule.excluded_district_ids == ("101",)
        assert rule.is_visible is False

    def test_missing_id_rejected(self):
        with pytest.raises(ValueError, match="missing an id"):
            rule_from_dict({'title': 'No id'})

    def test_malformed_category_map_rejected(self):
        with pytest.raises(ValueError, match="Malformed"):
            rule_from_dict({'id': 'x', 'interventions_by_category': [["a", 1]]})

    def test_exception_order_does_not_affect_equality(self):
        a = make_rule(excluded_district_ids=("1", "2"))
        b = make_rule(excluded_district_ids=("2", "1"))
        assert serialize_rule(a) == serialize_rule(b)
        assert rules_equal([a], [b]) is True

    def test_rules_equal_detects_order_and_edits(self):
        a, b = make_rule("a"), make_rule("b")
        assert rules_equal([a, b], [a, b]) is True
        assert rules_equal([a, b], [b, a]) is False
        assert rules_equal([a], [a, b]) is False
        assert rules_key([a, b]) != rules_key([b, a])


def test_rule_report(metrics_by_district):
    rules = [
        make_rule("default", is_all_districts=True, excluded_district_ids=("105",)),
        make_rule("seasonal", criteria=[HIGH_SEASONALITY], is_visible=False),
    ]
    report = generate_rule_report(["101", "102", "103", "104", "105"], rules, metrics_by_district)

    assert list(report['rule_id']) == ["default", "seasonal"]
    assert list(report['matched_districts']) == [4, 1]
    assert list(report['exceptions']) == [1, 0]
    assert list(report['visible']) == [True, False]
