"""
Planning session: the in-memory state behind one plan being edited.

A session owns the district table, the ordered rule list, the composition
policy and the region filter. Every rule edit produces a new rule list; the
district table is only rewritten by ``apply_rules``, which recomputes the
whole resolution from scratch.
"""

import dataclasses
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from data_loading import transpose_metric_values
from geo_utils import District, build_district_lookup, filter_districts_by_region, get_district_name
from intervention_mix import InterventionCategory
from predefined_plans import PlanDefinition, get_default_rules_for_new_plan
from resolution import (
    CompositionPolicy,
    apply_assignments,
    apply_intervention_mix,
    resolve_districts,
)
from rule_exceptions import (
    ExceptionUpdate,
    add_exceptions,
    format_exception_message,
    remove_exceptions,
)
from rules_engine import (
    Criterion,
    Rule,
    find_districts_matching_criteria,
    find_rules_matching_district,
    find_rules_with_district_as_exception,
    get_exception_candidates,
    has_complete_criteria,
    rules_equal,
    rules_key,
)

# Configure logging
logger = logging.getLogger(__name__)


def resolve_plan_on_copy(
    plan: PlanDefinition,
    districts: Sequence[District],
    categories: Sequence[InterventionCategory],
    metric_values_by_district: Dict[str, Dict[int, float]],
    policy=CompositionPolicy.CUMULATIVE,
    region_id: Optional[str] = None
) -> List[District]:
    """
    Resolve a plan onto copies of the districts, for side-by-side comparison.

    The given district records are never modified. Each copy starts with no
    assignment, so the result depends only on the plan, the metrics and the
    policy.

    Args:
        plan: Plan to resolve
        districts: District table to copy
        categories: Intervention catalog
        metric_values_by_district: district id -> metric type id -> value
        policy: Composition policy
        region_id: Only resolve districts of this region (optional)

    Returns:
        list: Resolved district copies, in input order

    Example:
        >>> bau = resolve_plan_on_copy(BAU_PLAN, session.districts, categories, metrics)
        >>> compute_total_cost(compute_intervention_costs(bau, categories))
    """
    copies = [dataclasses.replace(d) for d in districts]
    assignments = resolve_districts(
        copies, plan.rules, metric_values_by_district, categories, policy, region_id
    )
    written = apply_assignments(copies, assignments)
    logger.info(f"Resolved plan {plan.id} on a copy of {len(copies)} districts: {written} assigned")
    return copies


class PlanSession:
    """
    Editable plan bound to a district table and metric values.

    Example:
        >>> session = PlanSession.from_plan(get_plan_by_id("nsp-2026-30"), districts, categories, metrics)
        >>> assigned = session.apply_rules()
        >>> session.is_edited
        False
    """

    def __init__(
        self,
        districts: Sequence[District],
        categories: Sequence[InterventionCategory],
        metric_values_by_type: Dict[int, Dict[int, float]],
        rules: Optional[Sequence[Rule]] = None,
        policy=CompositionPolicy.CUMULATIVE,
        plan_id: Optional[str] = None
    ):
        self.districts = list(districts)
        self._district_lookup = build_district_lookup(self.districts)
        self.categories = list(categories)
        self.metric_values_by_type = metric_values_by_type
        self.metric_values_by_district = transpose_metric_values(metric_values_by_type)
        self.plan_id = plan_id
        self.policy = CompositionPolicy.parse(policy)
        self.region_id: Optional[str] = None

        initial = list(rules) if rules is not None else get_default_rules_for_new_plan()
        self.original_rules: List[Rule] = list(initial)
        self.rules: List[Rule] = list(initial)
        self._applied_key: Optional[str] = None

    @classmethod
    def from_plan(
        cls,
        plan: PlanDefinition,
        districts: Sequence[District],
        categories: Sequence[InterventionCategory],
        metric_values_by_type: Dict[int, Dict[int, float]],
        policy=CompositionPolicy.CUMULATIVE
    ) -> "PlanSession":
        return cls(districts, categories, metric_values_by_type, plan.rules, policy, plan_id=plan.id)

    # -- rule list -----------------------------------------------------------

    @property
    def visible_rules(self) -> List[Rule]:
        return [rule for rule in self.rules if rule.is_visible]

    @property
    def is_edited(self) -> bool:
        """True when the rule list differs from the one the session started with."""
        return not rules_equal(self.rules, self.original_rules)

    def get_rule(self, rule_id: str) -> Rule:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        raise KeyError(f"No rule with id {rule_id!r}")

    def _index_of(self, rule_id: str) -> int:
        for index, rule in enumerate(self.rules):
            if rule.id == rule_id:
                return index
        raise KeyError(f"No rule with id {rule_id!r}")

    def save_rule(self, rule: Rule) -> None:
        """Replace the rule with the same id in place, or append a new rule."""
        for index, existing in enumerate(self.rules):
            if existing.id == rule.id:
                self.rules[index] = rule
                logger.info(f"Updated rule {rule.id} at position {index + 1}")
                return
        self.rules.append(rule)
        logger.info(f"Added rule {rule.id} at position {len(self.rules)}")

    def delete_rule(self, rule_id: str) -> Rule:
        removed = self.rules.pop(self._index_of(rule_id))
        logger.info(f"Deleted rule {rule_id}")
        return removed

    def toggle_rule_visibility(self, rule_id: str) -> Rule:
        index = self._index_of(rule_id)
        rule = self.rules[index]
        self.rules[index] = dataclasses.replace(rule, is_visible=not rule.is_visible)
        return self.rules[index]

    def reorder_rules(self, rule_ids: Sequence[str]) -> None:
        """
        Put the rules in the given order.

        Raises:
            ValueError: If rule_ids is not a permutation of the current rule ids
        """
        current = [rule.id for rule in self.rules]
        if sorted(current) != sorted(rule_ids):
            raise ValueError(f"Rule order {list(rule_ids)} does not match rules {current}")
        by_id = {rule.id: rule for rule in self.rules}
        self.rules = [by_id[rule_id] for rule_id in rule_ids]

    def move_rule(self, rule_id: str, new_index: int) -> None:
        rule = self.rules.pop(self._index_of(rule_id))
        self.rules.insert(max(0, min(new_index, len(self.rules))), rule)

    # -- scope and policy ----------------------------------------------------

    def set_policy(self, policy) -> None:
        self.policy = CompositionPolicy.parse(policy)

    def set_region(self, region_id: Optional[str]) -> None:
        self.region_id = str(region_id) if region_id else None

    @property
    def filtered_districts(self) -> List[District]:
        return filter_districts_by_region(self.districts, self.region_id)

    def rules_key(self) -> str:
        """Key over everything that affects resolution."""
        return f"{self.policy.value}|{self.region_id or ''}|{rules_key(self.rules)}"

    # -- resolution ----------------------------------------------------------

    def apply_rules(self, force: bool = False) -> Optional[int]:
        """
        Resolve the rules and write the result into the district table.

        Districts in scope are reset before the result is written. Nothing
        happens when rules, policy and region are unchanged since the last
        run, unless ``force`` is set.

        Returns:
            int: Number of districts assigned, or None when skipped
        """
        key = self.rules_key()
        if not force and key == self._applied_key:
            logger.debug("Rules unchanged since last apply, skipped")
            return None

        scoped_ids = [d.district_id for d in self.filtered_districts]
        assignments = resolve_districts(
            self.districts,
            self.rules,
            self.metric_values_by_district,
            self.categories,
            self.policy,
            self.region_id,
        )
        written = apply_assignments(self.districts, assignments, scoped_ids)
        self._applied_key = key

        logger.info(
            f"Applied {len(self.visible_rules)} visible rules ({self.policy.value}) "
            f"to {len(scoped_ids)} districts: {written} assigned"
        )
        return written

    def apply_interventions(
        self,
        district_ids: Iterable[str],
        selections: Dict[int, int],
        replace: bool = False,
        rule_color: Optional[str] = None
    ) -> int:
        """Apply a one-off intervention selection to chosen districts."""
        return apply_intervention_mix(
            self.districts, district_ids, selections, self.categories, replace, rule_color
        )

    def select_mix(self, mix_label: str) -> Tuple[List[str], Dict[int, int]]:
        """
        Districts carrying a mix label and that mix's category assignments.

        Used to edit every district of one legend entry at once.
        """
        district_ids = []
        assignments: Dict[int, int] = {}
        for district in self.districts:
            if district.intervention_mix_label == mix_label:
                district_ids.append(district.district_id)
                if not assignments:
                    assignments = dict(district.intervention_category_assignments)
        return district_ids, assignments

    def compare_plan(self, plan: PlanDefinition, policy=None) -> List[District]:
        """
        Resolve another plan over this session's districts without touching them.

        Uses the session's metrics and region, and its policy unless one is given.
        """
        return resolve_plan_on_copy(
            plan,
            self.districts,
            self.categories,
            self.metric_values_by_district,
            self.policy if policy is None else CompositionPolicy.parse(policy),
            self.region_id,
        )

    # -- district queries ----------------------------------------------------

    def get_district(self, district_id) -> District:
        try:
            return self._district_lookup[str(district_id)]
        except KeyError:
            raise KeyError(f"No district with id {district_id!r}") from None

    def describe_district(self, district_id) -> Dict[str, object]:
        """
        How the current rules treat one district.

        Returns:
            dict: name, the visible rules it matches and the rules that
            list it as an exception
        """
        key = str(district_id)
        return {
            'district_id': key,
            'name': get_district_name(self.districts, key),
            'matching_rule_ids': find_rules_matching_district(key, self.rules, self.metric_values_by_district),
            'excluded_by_rule_ids': find_rules_with_district_as_exception(key, self.rules),
        }

    def exception_candidates(self, rule_id: str) -> List[str]:
        """Districts in scope that a rule matches and could exclude."""
        district_ids = [d.district_id for d in self.filtered_districts]
        return get_exception_candidates(self.get_rule(rule_id), district_ids, self.metric_values_by_district)

    def preview_criteria(self, criteria: Sequence[Criterion]) -> List[str]:
        """Districts in scope selected by criteria still being edited."""
        if not has_complete_criteria(criteria):
            logger.debug("No complete criterion to preview")
            return []
        district_ids = [d.district_id for d in self.filtered_districts]
        return find_districts_matching_criteria(district_ids, criteria, self.metric_values_by_district)

    # -- exceptions ----------------------------------------------------------

    def add_selected_to_exceptions(self, district_ids: Iterable[str]) -> ExceptionUpdate:
        """Exclude the districts from every rule they currently match."""
        update = add_exceptions(self.rules, district_ids, self.metric_values_by_district)
        self.rules = list(update.rules)
        if update.total_changed:
            logger.info(format_exception_message(update.total_changed, "added"))
        else:
            logger.info(format_exception_message(0, "added") + " (no matching rules)")
        return update

    def remove_selected_from_exceptions(self, district_ids: Iterable[str]) -> ExceptionUpdate:
        """Bring the districts back into every rule that excluded them."""
        update = remove_exceptions(self.rules, district_ids)
        self.rules = list(update.rules)
        logger.info(format_exception_message(update.total_changed, "removed"))
        return update
