"""
Per-rule district exceptions.

An exception removes one district from a rule's scope without touching the
rule's criteria. Rules are immutable records, so every change returns a new
rule; unchanged rules are returned as the same object.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence

from rules_engine import Rule, district_matches_rule

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExceptionUpdate:
    """
    Result of a batch exception change.

    Attributes:
        rules: Updated rule list, same order as the input
        changed_by_rule: rule id -> number of districts newly added or removed
    """

    rules: List[Rule]
    changed_by_rule: Dict[str, int] = field(default_factory=dict)

    @property
    def total_changed(self) -> int:
        return sum(self.changed_by_rule.values())


def add_exception(rule: Rule, district_id) -> Rule:
    """Exclude a district from a rule. Returns the same rule if already excluded."""
    key = str(district_id)
    if key in rule.excluded_district_ids:
        return rule
    return replace(rule, excluded_district_ids=rule.excluded_district_ids + (key,))


def remove_exception(rule: Rule, district_id) -> Rule:
    """Bring a district back into a rule's scope. Returns the same rule if it was not excluded."""
    key = str(district_id)
    if key not in rule.excluded_district_ids:
        return rule
    return replace(
        rule,
        excluded_district_ids=tuple(d for d in rule.excluded_district_ids if d != key)
    )


def add_exceptions(
    rules: Sequence[Rule],
    district_ids: Iterable,
    metric_values_by_district: Optional[Dict[str, Dict[int, float]]] = None,
    only_matching: bool = True
) -> ExceptionUpdate:
    """
    Exclude a set of districts from many rules at once.

    With ``only_matching`` (the default) a district is only added to the
    rules it currently matches, which is what a planner means by "take these
    districts out of their rules". Otherwise every district is added to every
    rule; an exception on a rule the district does not match is allowed and
    has no effect until it starts matching.

    Args:
        rules: Ordered rule list
        district_ids: Districts to exclude
        metric_values_by_district: district id -> metric type id -> value
        only_matching: Restrict to rules each district currently matches

    Returns:
        ExceptionUpdate: New rule list and per-rule counts of newly added exceptions
    """
    district_ids = [str(d) for d in district_ids]
    metric_values_by_district = metric_values_by_district or {}

    updated_rules = []
    changed_by_rule = {}

    for rule in rules:
        new_rule = rule
        for district_id in district_ids:
            if only_matching and not district_matches_rule(
                district_id, rule, metric_values_by_district.get(district_id)
            ):
                continue
            new_rule = add_exception(new_rule, district_id)

        added = len(new_rule.excluded_district_ids) - len(rule.excluded_district_ids)
        changed_by_rule[rule.id] = added
        updated_rules.append(new_rule)

    update = ExceptionUpdate(rules=updated_rules, changed_by_rule=changed_by_rule)
    logger.info(f"Added {update.total_changed} exceptions across {len(rules)} rules")
    return update


def remove_exceptions(rules: Sequence[Rule], district_ids: Iterable) -> ExceptionUpdate:
    """
    Remove a set of districts from the exception lists of every rule.

    Returns:
        ExceptionUpdate: New rule list and per-rule counts of removed exceptions
    """
    district_ids = [str(d) for d in district_ids]

    updated_rules = []
    changed_by_rule = {}

    for rule in rules:
        new_rule = rule
        for district_id in district_ids:
            new_rule = remove_exception(new_rule, district_id)

        changed_by_rule[rule.id] = len(rule.excluded_district_ids) - len(new_rule.excluded_district_ids)
        updated_rules.append(new_rule)

    update = ExceptionUpdate(rules=updated_rules, changed_by_rule=changed_by_rule)
    logger.info(f"Removed {update.total_changed} exceptions across {len(rules)} rules")
    return update


def format_exception_message(count: int, action: str = "added") -> str:
    """
    User-facing summary of a batch exception change.

    Example:
        >>> format_exception_message(1)
        '1 district added to exceptions'
        >>> format_exception_message(3, "removed")
        '3 districts removed from exceptions'
    """
    noun = "district" if count == 1 else "districts"
    preposition = "to" if action == "added" else "from"
    return f"{count} {noun} {action} {preposition} exceptions"
