"""Tests for the predefined plan catalog."""

import pytest

from colors import hex_to_rgb
from predefined_plans import (
    CATEGORY_IRS,
    INTERVENTION_IRS_ORGANOPHOSPHATE,
    STANDARD_PACKAGE,
    get_default_rules_for_new_plan,
    get_plan_by_id,
    list_plans,
)
from rules_engine import has_complete_criteria


def test_plan_ids_in_order():
    assert [p.id for p in list_plans()] == [
        "bau", "nsp-2026-30", "who-guidelines", "who-guidelines-cumulative", "test"
    ]


def test_unknown_plan(caplog):
    assert get_plan_by_id("does-not-exist") is None
    assert "Unknown plan id" in caplog.text


@pytest.mark.parametrize("plan", list_plans(), ids=lambda p: p.id)
def test_plan_rules_are_well_formed(plan):
    rule_ids = [rule.id for rule in plan.rules]
    assert len(rule_ids) == len(set(rule_ids))

    for rule in plan.rules:
        hex_to_rgb(rule.color)
        assert rule.interventions_by_category
        assert rule.is_all_districts or has_complete_criteria(rule.criteria)
        assert all(c.is_complete() for c in rule.criteria)


@pytest.mark.parametrize("plan_id", ["bau", "nsp-2026-30", "who-guidelines", "who-guidelines-cumulative"])
def test_default_rule_comes_first(plan_id):
    first = get_plan_by_id(plan_id).rules[0]
    assert first.is_all_districts
    assert first.interventions_by_category == STANDARD_PACKAGE


def test_who_irs_rule():
    irs = next(r for r in get_plan_by_id("who-guidelines").rules if r.id == "who-irs")
    assert len(irs.criteria) == 5
    assert irs.interventions_by_category[CATEGORY_IRS] == INTERVENTION_IRS_ORGANOPHOSPHATE


def test_new_plan_rules_are_fresh_copies():
    first = get_default_rules_for_new_plan()
    second = get_default_rules_for_new_plan()
    assert len(first) == 1
    assert first[0].is_all_districts
    assert first is not second
