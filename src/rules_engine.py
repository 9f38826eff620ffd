"""
Rules engine for district intervention targeting.

This module holds the rule and criterion records a planner edits, and the
matching logic that decides which districts a rule applies to. A rule either
targets every district or a set of districts whose metric values satisfy all
of its criteria, minus the districts listed as exceptions.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from criteria import evaluate_criterion, is_criterion_complete, normalize_operator
from intervention_mix import assignments_from_serializable

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Criterion:
    """One metric comparison of a rule."""

    id: str
    metric_type_id: Optional[int]
    operator: str
    value: str

    def is_complete(self) -> bool:
        return is_criterion_complete(self)


@dataclass(frozen=True)
class Rule:
    """
    A targeting rule and the interventions it assigns.

    Attributes:
        id: Unique rule id within a plan
        title: Display title
        color: Hex color used for districts resolved by this rule
        criteria: Criteria combined with AND
        interventions_by_category: category id -> intervention id
        coverage_by_category: category id -> coverage fraction (carried, not used in matching)
        is_all_districts: Rule targets every district regardless of criteria
        excluded_district_ids: Districts removed from the rule's scope
        is_visible: Hidden rules are ignored by resolution
    """

    id: str
    title: str
    color: str
    criteria: Tuple[Criterion, ...] = ()
    interventions_by_category: Dict[int, int] = field(default_factory=dict)
    coverage_by_category: Optional[Dict[int, float]] = None
    is_all_districts: bool = False
    excluded_district_ids: Tuple[str, ...] = ()
    is_visible: bool = True

    def excludes(self, district_id: Any) -> bool:
        return str(district_id) in self.excluded_district_ids


def district_matches_rule(
    district_id: Any,
    rule: Rule,
    metrics_for_district: Optional[Dict[int, float]]
) -> bool:
    """
    Decide whether a rule applies to a district.

    Order of checks:
    1. District listed as an exception -> no match
    2. All-districts rule -> match
    3. Rule without criteria -> no match
    4. Every criterion must hold (AND)

    Args:
        district_id: District identifier
        rule: Rule to test
        metrics_for_district: metric type id -> value for the district

    Returns:
        bool: True if the rule applies
    """
    if rule.excludes(district_id):
        return False

    if rule.is_all_districts:
        return True

    if not rule.criteria:
        return False

    for criterion in rule.criteria:
        if not evaluate_criterion(criterion, metrics_for_district):
            return False

    # All criteria met
    return True


def find_matching_district_ids(
    district_ids: Iterable[Any],
    rule: Rule,
    metric_values_by_district: Dict[str, Dict[int, float]]
) -> List[str]:
    """
    List the districts a rule applies to, in input order.

    Args:
        district_ids: Candidate district ids
        rule: Rule to test
        metric_values_by_district: district id -> metric type id -> value

    Returns:
        list: Matching district ids as strings
    """
    matches = []
    for district_id in district_ids:
        key = str(district_id)
        if district_matches_rule(key, rule, metric_values_by_district.get(key)):
            matches.append(key)

    logger.debug(f"Rule {rule.id} matches {len(matches)} districts")
    return matches


def has_complete_criteria(criteria: Sequence[Criterion]) -> bool:
    """True if at least one criterion can be evaluated."""
    return any(is_criterion_complete(c) for c in criteria)


def find_districts_matching_criteria(
    district_ids: Iterable[Any],
    criteria: Sequence[Criterion],
    metric_values_by_district: Dict[str, Dict[int, float]]
) -> List[str]:
    """
    Preview which districts a set of criteria selects while a rule is being built.

    Only complete criteria take part. With no complete criterion the preview
    is empty rather than "everything".

    Args:
        district_ids: Candidate district ids
        criteria: Criteria as currently edited
        metric_values_by_district: district id -> metric type id -> value

    Returns:
        list: District ids satisfying every complete criterion
    """
    if not has_complete_criteria(criteria):
        return []
    complete = [c for c in criteria if is_criterion_complete(c)]

    matches = []
    for district_id in district_ids:
        key = str(district_id)
        metrics = metric_values_by_district.get(key)
        if all(evaluate_criterion(c, metrics) for c in complete):
            matches.append(key)
    return matches


def find_rules_matching_district(
    district_id: Any,
    rules: Sequence[Rule],
    metric_values_by_district: Dict[str, Dict[int, float]],
    visible_only: bool = True
) -> List[str]:
    """
    List the ids of the rules that apply to a district, in rule-list order.

    Args:
        district_id: District identifier
        rules: Ordered rule list
        metric_values_by_district: district id -> metric type id -> value
        visible_only: Skip hidden rules

    Returns:
        list: Matching rule ids
    """
    key = str(district_id)
    metrics = metric_values_by_district.get(key)
    return [
        rule.id for rule in rules
        if (rule.is_visible or not visible_only)
        and district_matches_rule(key, rule, metrics)
    ]


def find_rules_with_district_as_exception(district_id: Any, rules: Sequence[Rule]) -> List[str]:
    """List the ids of the rules that list the district as an exception."""
    return [rule.id for rule in rules if rule.excludes(district_id)]


def get_exception_candidates(
    rule: Rule,
    district_ids: Iterable[Any],
    metric_values_by_district: Dict[str, Dict[int, float]]
) -> List[str]:
    """
    Districts that currently match a rule and could be excluded from it.

    Excluded districts are already out of scope, so they never show up here.
    """
    return find_matching_district_ids(district_ids, rule, metric_values_by_district)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _int_pairs(mapping: Optional[Dict[int, Any]]) -> Optional[List[List[Any]]]:
    if mapping is None:
        return None
    return [[int(k), v] for k, v in sorted(mapping.items(), key=lambda item: int(item[0]))]


def _int_mapping(raw: Any, field_name: str) -> Optional[Dict[int, Any]]:
    """Accept a list of [key, value] pairs or a string/int keyed object."""
    if raw is None:
        return None
    try:
        if isinstance(raw, dict):
            return {int(k): v for k, v in raw.items()}
        return {int(k): v for k, v in raw}
    except (TypeError, ValueError) as e:
        raise ValueError(f"Malformed {field_name}: {raw!r}") from e


def criterion_to_dict(criterion: Criterion) -> Dict[str, Any]:
    return {
        'id': criterion.id,
        'metric_type_id': criterion.metric_type_id,
        'operator': criterion.operator,
        'value': criterion.value,
    }


def criterion_from_dict(data: Dict[str, Any]) -> Criterion:
    metric_type_id = data.get('metric_type_id', data.get('metricTypeId'))
    value = data.get('value', '')
    return Criterion(
        id=str(data.get('id', '')),
        metric_type_id=int(metric_type_id) if metric_type_id is not None else None,
        operator=normalize_operator(data.get('operator', '')),
        value='' if value is None else str(value),
    )


def rule_to_dict(rule: Rule) -> Dict[str, Any]:
    """
    Convert a rule to a JSON-safe dict.

    Category maps are written as sorted [category_id, value] pairs so the
    integer keys survive a JSON round trip, and exceptions are sorted so two
    equal rules always serialize to the same text.
    """
    return {
        'id': rule.id,
        'title': rule.title,
        'color': rule.color,
        'criteria': [criterion_to_dict(c) for c in rule.criteria],
        'interventions_by_category': _int_pairs(rule.interventions_by_category),
        'coverage_by_category': _int_pairs(rule.coverage_by_category),
        'is_all_districts': rule.is_all_districts,
        'excluded_district_ids': sorted(rule.excluded_district_ids),
        'is_visible': rule.is_visible,
    }


def rule_from_dict(data: Dict[str, Any]) -> Rule:
    """
    Build a rule from a dict produced by ``rule_to_dict`` (or a camelCase export).

    Raises:
        ValueError: If the rule has no id or a category map is malformed
    """
    rule_id = data.get('id')
    if not rule_id:
        raise ValueError("Rule is missing an id")

    interventions = _int_mapping(
        data.get('interventions_by_category', data.get('interventionsByCategory', [])),
        'interventions_by_category'
    )
    coverage = _int_mapping(
        data.get('coverage_by_category', data.get('coverageByCategory')),
        'coverage_by_category'
    )

    return Rule(
        id=str(rule_id),
        title=data.get('title', ''),
        color=data.get('color', ''),
        criteria=tuple(criterion_from_dict(c) for c in data.get('criteria') or []),
        interventions_by_category=assignments_from_serializable(interventions),
        coverage_by_category=coverage,
        is_all_districts=bool(data.get('is_all_districts', data.get('isAllDistricts', False))),
        excluded_district_ids=tuple(
            str(d) for d in data.get('excluded_district_ids', data.get('excludedDistricts', []))
        ),
        is_visible=bool(data.get('is_visible', data.get('isVisible', True))),
    )


def serialize_rule(rule: Rule) -> str:
    """Canonical text form of a rule, used for change detection."""
    return json.dumps(rule_to_dict(rule), sort_keys=True)


def rules_equal(a: Sequence[Rule], b: Sequence[Rule]) -> bool:
    """True if both rule lists have the same rules in the same order."""
    if len(a) != len(b):
        return False
    return all(serialize_rule(x) == serialize_rule(y) for x, y in zip(a, b))


def rules_key(rules: Sequence[Rule]) -> str:
    """Key that changes whenever any rule (or the order of rules) changes."""
    return json.dumps([rule_to_dict(r) for r in rules], sort_keys=True)


def generate_rule_report(
    district_ids: Sequence[Any],
    rules: Sequence[Rule],
    metric_values_by_district: Dict[str, Dict[int, float]]
) -> pd.DataFrame:
    """
    Summarize how many districts each rule matches.

    Args:
        district_ids: Districts in scope
        rules: Ordered rule list
        metric_values_by_district: district id -> metric type id -> value

    Returns:
        pd.DataFrame: One row per rule with match and exception counts
    """
    records = []
    for position, rule in enumerate(rules, 1):
        matched = find_matching_district_ids(district_ids, rule, metric_values_by_district)
        records.append({
            'position': position,
            'rule_id': rule.id,
            'title': rule.title,
            'visible': rule.is_visible,
            'all_districts': rule.is_all_districts,
            'criteria_count': len(rule.criteria),
            'matched_districts': len(matched),
            'exceptions': len(rule.excluded_district_ids),
        })

    report = pd.DataFrame(records, columns=[
        'position', 'rule_id', 'title', 'visible', 'all_districts',
        'criteria_count', 'matched_districts', 'exceptions'
    ])
    logger.info(f"Generated rule report for {len(rules)} rules over {len(district_ids)} districts")
    return report
