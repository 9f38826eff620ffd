"""
Plan Execution Script

Applies an intervention plan to the district table and writes the result.

Pipeline Stages:
1. Load org units, the intervention catalog and metric values
2. Build districts and provinces
3. Load the plan rules and resolve them under the chosen policy
4. Report rule matches, intervention mixes and estimated costs
5. Export the plan as CSV (and optionally GeoJSON)

Usage:
    python src/run_plan.py --plan nsp-2026-30 --policy exclusive
    python src/run_plan.py --plan who-guidelines --region 12 --geojson
    python src/run_plan.py --plan guidelines --variation targeted --compare bau
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import config
from aggregation import compute_category_costs, compute_intervention_costs, compute_total_cost, summarize_mixes
from data_loading import load_intervention_categories, load_metric_tables, load_org_units
from export import export_filename, export_plan_csv, export_plan_geojson
from geo_utils import districts_from_org_units, extract_provinces, filter_districts_by_region
from guidelines import GUIDELINE_VARIATIONS, build_guideline_plan
from plan_session import PlanSession
from predefined_plans import PlanDefinition, get_default_rules_for_new_plan, get_plan_by_id, list_plans
from resolution import CompositionPolicy
from rules_engine import generate_rule_report

# Configure logging
logger = logging.getLogger(__name__)


DEFAULT_PLAN_ID = "nsp-2026-30"
GUIDELINES_PLAN_ID = "guidelines"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Resolve an intervention plan over districts and export the result."
    )
    parser.add_argument("--plan", default=DEFAULT_PLAN_ID,
                        help=f"Predefined plan id, 'guidelines' for rules generated from a guideline "
                             f"variation, or 'new' for the default rule only (default: {DEFAULT_PLAN_ID})")
    parser.add_argument("--variation", default=None,
                        choices=[v.id for v in GUIDELINE_VARIATIONS],
                        help="Guideline variation used by --plan guidelines (default: conservative)")
    parser.add_argument("--compare", default=None, metavar="PLAN",
                        help="Also resolve this plan (same ids as --plan) and log a cost and mix comparison")
    parser.add_argument("--explain", action="append", default=[], metavar="DISTRICT_ID",
                        help="Log which rules match or exclude a district (repeatable)")
    parser.add_argument("--policy", default=config.DEFAULT_POLICY,
                        choices=[p.value for p in CompositionPolicy],
                        help="How overlapping rules combine (default: %(default)s)")
    parser.add_argument("--region", default=None,
                        help="Restrict resolution to one region (province) id")
    parser.add_argument("--data-dir", type=Path, default=config.DATA_DIR,
                        help="Reference data directory (default: %(default)s)")
    parser.add_argument("--output", type=Path, default=None,
                        help="CSV output path (default: output/intervention-plan-<plan>-<date>.csv)")
    parser.add_argument("--geojson", action="store_true",
                        help="Also write the resolved districts as GeoJSON next to the CSV")
    parser.add_argument("--list-plans", action="store_true",
                        help="List predefined plans and exit")
    parser.add_argument("--log-level", default=config.LOG_LEVEL,
                        help="Logging level (default: %(default)s)")
    return parser.parse_args(argv)


def log_plans() -> None:
    for plan in list_plans():
        logger.info(f"  {plan.id:<28} {plan.name} ({len(plan.rules)} rules)")
    logger.info(f"  {GUIDELINES_PLAN_ID:<28} Rules generated from a guideline variation:")
    for variation in GUIDELINE_VARIATIONS:
        logger.info(f"    --variation {variation.id:<16} {variation.name}")


def load_plan(plan_id: str, variation_id: Optional[str] = None) -> Optional[PlanDefinition]:
    """
    Resolve a plan id from the command line.

    Returns:
        PlanDefinition, or None for 'new'

    Raises:
        ValueError: If the plan id is unknown
    """
    if plan_id == "new":
        return None
    if plan_id == GUIDELINES_PLAN_ID:
        return build_guideline_plan(variation_id)
    plan = get_plan_by_id(plan_id)
    if plan is None:
        raise ValueError(f"Unknown plan id: {plan_id}")
    return plan


def build_session(args: argparse.Namespace) -> PlanSession:
    """
    Load reference data and create a session for the requested plan.

    Raises:
        ValueError: If the plan id is unknown
        FileNotFoundError: If a required reference file is missing
    """
    logger.info("\n" + "=" * 80)
    logger.info("LOADING REFERENCE DATA")
    logger.info("=" * 80 + "\n")

    org_units = load_org_units(args.data_dir)
    categories = load_intervention_categories(args.data_dir)
    districts = districts_from_org_units(org_units)
    provinces = extract_provinces(org_units)

    org_unit_ids = [int(d.district_id) for d in districts if d.district_id.isdigit()]
    metric_values = load_metric_tables(org_unit_ids=org_unit_ids, data_dir=args.data_dir)

    logger.info(f"✅ {len(districts)} districts in {len(provinces)} provinces")

    if args.region and not any(p.id == str(args.region) for p in provinces):
        logger.warning(f"⚠️  Region {args.region} not found among provinces, no districts will be in scope")

    plan = load_plan(args.plan, args.variation)
    if plan is None:
        session = PlanSession(districts, categories, metric_values, policy=args.policy)
    else:
        logger.info(f"Plan: {plan.name} - {plan.description}")
        session = PlanSession.from_plan(plan, districts, categories, metric_values, policy=args.policy)

    session.set_region(args.region)
    return session


def report_results(session: PlanSession) -> Dict[str, Any]:
    """Log the rule report, the mix legend and cost estimates."""
    logger.info("\n" + "=" * 80)
    logger.info("PLAN SUMMARY")
    logger.info("=" * 80 + "\n")

    district_ids = [d.district_id for d in session.filtered_districts]
    rule_report = generate_rule_report(district_ids, session.rules, session.metric_values_by_district)
    for row in rule_report.itertuples(index=False):
        hidden = "" if row.visible else " (hidden)"
        logger.info(
            f"  [{row.position}] {row.title}{hidden}: "
            f"{row.matched_districts} districts, {row.exceptions} exceptions"
        )

    mixes = summarize_mixes(session.districts, session.region_id)
    logger.info(f"\nIntervention mixes ({len(mixes)}):")
    for row in mixes.itertuples(index=False):
        logger.info(f"  {row.color}  {row.label}: {row.district_count} districts")

    intervention_costs = compute_intervention_costs(session.districts, session.categories, session.region_id)
    category_costs = compute_category_costs(intervention_costs)
    total_cost = compute_total_cost(intervention_costs)

    logger.info("\nEstimated cost by category:")
    for row in category_costs.itertuples(index=False):
        logger.info(f"  {row.category_name}: {row.total_cost:,.0f}")
    logger.info(f"  Total: {total_cost:,.0f}")

    return {
        'rules': rule_report,
        'mixes': mixes,
        'intervention_costs': intervention_costs,
        'category_costs': category_costs,
        'total_cost': total_cost,
    }


def explain_districts(session: PlanSession, district_ids: List[str]) -> List[Dict[str, Any]]:
    """Log the rules matching and excluding each requested district."""
    summaries = []
    for district_id in district_ids:
        try:
            session.get_district(district_id)
        except KeyError:
            logger.warning(f"⚠️  District {district_id} not found, nothing to explain")
            continue

        summary = session.describe_district(district_id)
        matching = ", ".join(summary['matching_rule_ids']) or "none"
        excluded = ", ".join(summary['excluded_by_rule_ids']) or "none"
        logger.info(f"District {summary['name']} ({summary['district_id']}):")
        logger.info(f"  matching rules: {matching}")
        logger.info(f"  excluded by: {excluded}")
        summaries.append(summary)
    return summaries


def compare_plans(session: PlanSession, plan_id: str, variation_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Resolve a second plan on a copy of the districts and log both side by side.

    Raises:
        ValueError: If the plan id is unknown
    """
    plan = load_plan(plan_id, variation_id)
    if plan is None:
        plan = PlanDefinition(id="new", name="New plan", description="",
                              rules=tuple(get_default_rules_for_new_plan()))

    logger.info("\n" + "=" * 80)
    logger.info(f"COMPARISON WITH {plan.name.upper()}")
    logger.info("=" * 80 + "\n")

    other_districts = session.compare_plan(plan)

    current_cost = compute_total_cost(
        compute_intervention_costs(session.districts, session.categories, session.region_id)
    )
    other_cost = compute_total_cost(
        compute_intervention_costs(other_districts, session.categories, session.region_id)
    )
    current_mixes = summarize_mixes(session.districts, session.region_id)
    other_mixes = summarize_mixes(other_districts, session.region_id)

    logger.info(f"  {'':<12} {'current':>16} {plan.id:>16}")
    logger.info(f"  {'total cost':<12} {current_cost:>16,.0f} {other_cost:>16,.0f}")
    logger.info(f"  {'mixes':<12} {len(current_mixes):>16} {len(other_mixes):>16}")

    other_scoped = filter_districts_by_region(other_districts, session.region_id)
    changed = sum(
        1 for current, other in zip(session.filtered_districts, other_scoped)
        if current.intervention_category_assignments != other.intervention_category_assignments
    )
    logger.info(f"  {changed} districts receive a different mix under {plan.id}")

    return {
        'plan_id': plan.id,
        'districts': other_districts,
        'current_total_cost': current_cost,
        'compared_total_cost': other_cost,
        'changed_districts': changed,
    }


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main execution function.

    Returns:
        int: Exit code (0 = success, 1 = failure, 130 = interrupted)
    """
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=config.LOG_FORMAT)

    if args.list_plans:
        log_plans()
        return 0

    start_time = time.time()

    logger.info("=" * 80)
    logger.info("INTERVENTION PLAN EXECUTION")
    logger.info("=" * 80)
    logger.info(f"Plan: {args.plan}")
    logger.info(f"Policy: {args.policy}")
    logger.info(f"Region: {args.region or 'all'}")
    logger.info(f"Data directory: {args.data_dir}")

    try:
        session = build_session(args)

        logger.info("\n" + "=" * 80)
        logger.info("RESOLVING RULES")
        logger.info("=" * 80 + "\n")
        assigned = session.apply_rules()
        logger.info(f"✅ {assigned} of {len(session.filtered_districts)} districts received interventions")

        report_results(session)
        if args.explain:
            explain_districts(session, args.explain)
        if args.compare:
            compare_plans(session, args.compare, args.variation)

        output_path = args.output or config.OUTPUT_DIR / export_filename(session.plan_id)
        export_plan_csv(output_path, session.districts, session.categories)
        if args.geojson:
            export_plan_geojson(Path(output_path).with_suffix(".geojson"), session.districts)

        elapsed = time.time() - start_time
        logger.info("\n" + "=" * 80)
        logger.info(f"✅ PLAN COMPLETE ({elapsed:.2f}s)")
        logger.info("=" * 80)
        return 0

    except KeyboardInterrupt:
        logger.warning("\n⚠️  Execution interrupted by user")
        return 130

    except Exception as e:
        logger.error(f"\n❌ PLAN EXECUTION FAILED: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
