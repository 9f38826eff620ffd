"""
District resolution: from an ordered rule list to per-district assignments.

Two composition policies share the same rule matcher:

- exclusive: visible rules are applied in list order and each matching rule
  replaces whatever an earlier rule assigned (last match wins)
- cumulative: every matching visible rule contributes, payloads are merged in
  list order and the display color blends the colors of all matching rules

Resolution itself is pure. Writing the result back into the district table
is a separate step (``apply_assignments``) that always starts from a clean
"no assignment" state so nothing from a previous rule set survives.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from colors import blend_colors
from geo_utils import District, filter_districts_by_region
from intervention_mix import (
    InterventionCategory,
    InterventionMix,
    build_intervention_lookup,
    create_intervention_mix,
    display_mix_label,
    merge_intervention_mixes,
)
from rules_engine import Rule, district_matches_rule, find_matching_district_ids

# Configure logging
logger = logging.getLogger(__name__)


class CompositionPolicy(str, Enum):
    EXCLUSIVE = "exclusive"
    CUMULATIVE = "cumulative"

    @classmethod
    def parse(cls, value) -> "CompositionPolicy":
        """
        Accept a policy member or its name/value in any case.

        Raises:
            ValueError: If the value names no policy
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for policy in cls:
            if text in (policy.value, policy.name.lower()):
                return policy
        raise ValueError(f"Unknown composition policy: {value!r} (expected one of {[p.value for p in cls]})")


@dataclass(frozen=True)
class DistrictAssignment:
    """Resolved state for one district."""

    district_id: str
    mix: InterventionMix
    rule_color: str
    matched_rule_ids: Tuple[str, ...] = ()
    color_by_category: Dict[int, str] = field(default_factory=dict)
    color_by_intervention_name: Dict[str, str] = field(default_factory=dict)


def visible_rules(rules: Sequence[Rule]) -> List[Rule]:
    return [rule for rule in rules if rule.is_visible]


def _colors_by_intervention_name(
    assignments: Dict[int, int],
    color_by_category: Dict[int, str],
    categories: Sequence[InterventionCategory]
) -> Dict[str, str]:
    lookup = build_intervention_lookup(categories)
    colors = {}
    for category_id, intervention_id in assignments.items():
        entry = lookup.get(intervention_id)
        if entry is not None and category_id in color_by_category:
            colors[entry[0].short_name] = color_by_category[category_id]
    return colors


def resolve_exclusive(
    district_ids: Iterable[str],
    rules: Sequence[Rule],
    metric_values_by_district: Dict[str, Dict[int, float]],
    categories: Sequence[InterventionCategory]
) -> Dict[str, DistrictAssignment]:
    """
    Resolve districts with the last-match-wins policy.

    Visible rules are processed in list order. An all-districts rule assigns
    its mix to every district it does not exclude; any later rule replaces
    the mix and color of the districts it matches. Rules without an
    intervention payload are skipped.

    Args:
        district_ids: Districts in scope
        rules: Ordered rule list
        metric_values_by_district: district id -> metric type id -> value
        categories: Intervention catalog

    Returns:
        dict: district id -> assignment, for districts at least one rule reached
    """
    district_ids = [str(d) for d in district_ids]
    resolved: Dict[str, DistrictAssignment] = {}

    for rule in visible_rules(rules):
        if not rule.interventions_by_category:
            logger.debug(f"Rule {rule.id} has no interventions, skipped")
            continue

        mix = create_intervention_mix(rule.interventions_by_category, categories)
        color_by_category = {category_id: rule.color for category_id in mix.category_assignments}
        by_name = _colors_by_intervention_name(mix.category_assignments, color_by_category, categories)

        matched = find_matching_district_ids(district_ids, rule, metric_values_by_district)
        for district_id in matched:
            previous = resolved.get(district_id)
            matched_rule_ids = (previous.matched_rule_ids if previous else ()) + (rule.id,)
            resolved[district_id] = DistrictAssignment(
                district_id=district_id,
                mix=mix,
                rule_color=rule.color,
                matched_rule_ids=matched_rule_ids,
                color_by_category=dict(color_by_category),
                color_by_intervention_name=dict(by_name),
            )

        logger.debug(f"Rule {rule.id} assigned '{mix.display_label}' to {len(matched)} districts")

    logger.info(f"Exclusive resolution assigned {len(resolved)} of {len(district_ids)} districts")
    return resolved


def resolve_cumulative(
    district_ids: Iterable[str],
    rules: Sequence[Rule],
    metric_values_by_district: Dict[str, Dict[int, float]],
    categories: Sequence[InterventionCategory]
) -> Dict[str, DistrictAssignment]:
    """
    Resolve districts with the additive policy.

    Every visible rule matching a district contributes. Payloads are merged
    in list order, so a later rule overrides an earlier one only for the
    categories both specify. The color is the blend of all matching rule
    colors. A district whose merged payload is empty gets no assignment.

    Args:
        district_ids: Districts in scope
        rules: Ordered rule list
        metric_values_by_district: district id -> metric type id -> value
        categories: Intervention catalog

    Returns:
        dict: district id -> assignment
    """
    district_ids = [str(d) for d in district_ids]
    rules = visible_rules(rules)
    rule_mixes = {
        rule.id: create_intervention_mix(rule.interventions_by_category, categories)
        for rule in rules
    }
    resolved: Dict[str, DistrictAssignment] = {}

    for district_id in district_ids:
        metrics = metric_values_by_district.get(district_id)
        matching = [rule for rule in rules if district_matches_rule(district_id, rule, metrics)]
        if not matching:
            continue

        mix: Optional[InterventionMix] = None
        color_by_category: Dict[int, str] = {}
        for rule in matching:
            incoming = rule_mixes[rule.id]
            if incoming.is_empty():
                continue
            mix = merge_intervention_mixes(mix, incoming, categories)
            for category_id in incoming.category_assignments:
                color_by_category[category_id] = rule.color

        if mix is None or mix.is_empty():
            logger.debug(f"District {district_id} matched only rules without interventions")
            continue

        resolved[district_id] = DistrictAssignment(
            district_id=district_id,
            mix=mix,
            rule_color=blend_colors([rule.color for rule in matching]) or "",
            matched_rule_ids=tuple(rule.id for rule in matching),
            color_by_category=color_by_category,
            color_by_intervention_name=_colors_by_intervention_name(
                mix.category_assignments, color_by_category, categories
            ),
        )

    logger.info(f"Cumulative resolution assigned {len(resolved)} of {len(district_ids)} districts")
    return resolved


def resolve_districts(
    districts: Sequence[District],
    rules: Sequence[Rule],
    metric_values_by_district: Dict[str, Dict[int, float]],
    categories: Sequence[InterventionCategory],
    policy=CompositionPolicy.CUMULATIVE,
    region_id: Optional[str] = None
) -> Dict[str, DistrictAssignment]:
    """
    Resolve the districts of a region (or all districts) under a policy.

    Example:
        >>> assignments = resolve_districts(districts, plan.rules, metrics, categories, "exclusive")
        >>> assignments["101"].mix.display_label
        'CM + Dual AI'
    """
    policy = CompositionPolicy.parse(policy)
    scoped = filter_districts_by_region(districts, region_id)
    district_ids = [d.district_id for d in scoped]

    if policy is CompositionPolicy.EXCLUSIVE:
        return resolve_exclusive(district_ids, rules, metric_values_by_district, categories)
    return resolve_cumulative(district_ids, rules, metric_values_by_district, categories)


def get_district_interventions(
    district_id: str,
    rules: Sequence[Rule],
    metric_values_by_district: Dict[str, Dict[int, float]],
    cumulative: bool = True
) -> Optional[Tuple[Dict[int, int], List[str]]]:
    """
    Interventions a district would receive, without touching the district table.

    Args:
        district_id: District identifier
        rules: Ordered rule list
        metric_values_by_district: district id -> metric type id -> value
        cumulative: Merge all matching rules (True) or take the last match only

    Returns:
        tuple: (category id -> intervention id, matching rule ids), or None
        when no visible rule matches
    """
    key = str(district_id)
    metrics = metric_values_by_district.get(key)
    matching = [r for r in visible_rules(rules) if district_matches_rule(key, r, metrics)]
    if not matching:
        return None

    if cumulative:
        merged: Dict[int, int] = {}
        for rule in matching:
            merged.update(rule.interventions_by_category)
        return merged, [rule.id for rule in matching]

    last = matching[-1]
    return dict(last.interventions_by_category), [last.id]


def get_last_matching_rule_color(
    district_id: str,
    rules: Sequence[Rule],
    metric_values_by_district: Dict[str, Dict[int, float]]
) -> Optional[str]:
    """Color of the last visible rule that matches the district, or None."""
    key = str(district_id)
    metrics = metric_values_by_district.get(key)
    color = None
    for rule in visible_rules(rules):
        if district_matches_rule(key, rule, metrics):
            color = rule.color
    return color


def get_blended_matching_rule_color(
    district_id: str,
    rules: Sequence[Rule],
    metric_values_by_district: Dict[str, Dict[int, float]]
) -> Optional[str]:
    """Blend of the colors of every visible rule that matches the district, or None."""
    key = str(district_id)
    metrics = metric_values_by_district.get(key)
    colors = [r.color for r in visible_rules(rules) if district_matches_rule(key, r, metrics)]
    return blend_colors(colors)


def reset_district_assignments(
    districts: Sequence[District],
    district_ids: Optional[Iterable[str]] = None
) -> int:
    """
    Clear the derived fields of districts.

    Args:
        districts: District table
        district_ids: Only reset these ids (all districts when None)

    Returns:
        int: Number of districts reset
    """
    targets = None if district_ids is None else {str(d) for d in district_ids}
    count = 0
    for district in districts:
        if targets is None or district.district_id in targets:
            district.clear_assignment()
            count += 1
    return count


def apply_assignments(
    districts: Sequence[District],
    assignments: Dict[str, DistrictAssignment],
    district_ids: Optional[Iterable[str]] = None
) -> int:
    """
    Write a resolution result into the district table.

    The districts in scope (``district_ids``, or all districts) are reset
    first, then every district with an assignment gets its derived fields
    overwritten as a whole.

    Returns:
        int: Number of districts that received an assignment
    """
    reset_district_assignments(districts, district_ids)

    written = 0
    for district in districts:
        assignment = assignments.get(district.district_id)
        if assignment is None:
            continue
        district.intervention_category_assignments = dict(assignment.mix.category_assignments)
        district.intervention_mix_label = assignment.mix.display_label
        district.rule_color = assignment.rule_color
        district.color_by_category = dict(assignment.color_by_category)
        district.color_by_intervention_name = dict(assignment.color_by_intervention_name)
        written += 1

    logger.info(f"Applied assignments to {written} districts")
    return written


def apply_intervention_mix(
    districts: Sequence[District],
    district_ids: Iterable[str],
    selections: Dict[int, int],
    categories: Sequence[InterventionCategory],
    replace: bool = False,
    rule_color: Optional[str] = None
) -> int:
    """
    Apply a one-off intervention selection to chosen districts.

    By default the selection is merged into what each district already has;
    with ``replace=True`` it becomes the district's whole mix.

    Args:
        districts: District table
        district_ids: Districts to update
        selections: category id -> intervention id
        categories: Intervention catalog
        replace: Replace instead of merging
        rule_color: Optional color to set on the updated districts

    Returns:
        int: Number of districts updated
    """
    targets = {str(d) for d in district_ids}
    incoming = create_intervention_mix(selections, categories)
    updated = 0

    for district in districts:
        if district.district_id not in targets:
            continue

        if replace or not district.intervention_category_assignments:
            mix = incoming
        else:
            existing = InterventionMix(
                category_assignments=dict(district.intervention_category_assignments),
                display_label=district.intervention_mix_label,
            )
            mix = merge_intervention_mixes(existing, incoming, categories)

        district.intervention_category_assignments = dict(mix.category_assignments)
        district.intervention_mix_label = mix.display_label

        if replace:
            district.color_by_category = {}
        if rule_color is not None:
            district.rule_color = rule_color
            for category_id in incoming.category_assignments:
                district.color_by_category[category_id] = rule_color
        else:
            for category_id in incoming.category_assignments:
                district.color_by_category.pop(category_id, None)
        district.color_by_intervention_name = _colors_by_intervention_name(
            district.intervention_category_assignments, district.color_by_category, categories
        )
        updated += 1

    logger.info(f"Applied '{display_mix_label(incoming.display_label)}' to {updated} districts")
    return updated
