"""
Aggregation module for resolved district plans.

Turns the per-district assignments written by rule resolution into plan-level
tables: per-intervention and per-category budget estimates, and the legend
summary of intervention mixes (which mix, which color, how many districts).
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from colors import get_color_for_intervention_mix
from geo_utils import District, filter_districts_by_region
from intervention_mix import InterventionCategory, build_intervention_lookup, display_mix_label

# Configure logging
logger = logging.getLogger(__name__)


# Cost per district per intervention (procurement / distribution / support)
INTERVENTION_COSTS = {
    78: {'procurement': 50000, 'distribution': 45000, 'support': 30000},
    79: {'procurement': 25000, 'distribution': 15000, 'support': 10000},
    80: {'procurement': 40000, 'distribution': 30000, 'support': 15000},
    81: {'procurement': 35000, 'distribution': 25000, 'support': 12000},
    82: {'procurement': 80000, 'distribution': 50000, 'support': 20000},
    83: {'procurement': 60000, 'distribution': 40000, 'support': 18000},
    84: {'procurement': 100000, 'distribution': 70000, 'support': 35000},
    85: {'procurement': 55000, 'distribution': 35000, 'support': 15000},
    86: {'procurement': 65000, 'distribution': 42000, 'support': 18000},
    87: {'procurement': 85000, 'distribution': 55000, 'support': 22000},
    88: {'procurement': 45000, 'distribution': 28000, 'support': 12000},
    89: {'procurement': 55000, 'distribution': 35000, 'support': 15000},
    90: {'procurement': 75000, 'distribution': 48000, 'support': 20000},
    91: {'procurement': 120000, 'distribution': 60000, 'support': 40000},
}

# Interventions without a cost entry
DEFAULT_COST = {'procurement': 50000, 'distribution': 30000, 'support': 15000}

COST_COLUMNS = ['procurement', 'distribution', 'support']

INTERVENTION_COST_COLUMNS = [
    'intervention_id', 'intervention_name', 'short_name', 'category_id', 'category_name',
    'procurement', 'distribution', 'support', 'total_cost', 'district_count'
]


def get_total_cost(breakdown: Dict[str, float]) -> float:
    return sum(breakdown[column] for column in COST_COLUMNS)


def get_intervention_cost(intervention_id: int) -> Dict[str, float]:
    return INTERVENTION_COSTS.get(intervention_id, DEFAULT_COST)


def build_assignment_frame(
    districts: Sequence[District],
    categories: Sequence[InterventionCategory],
    region_id: Optional[str] = None
) -> pd.DataFrame:
    """
    Flatten district assignments into one row per (district, intervention).

    Interventions the catalog does not know are left out.

    Args:
        districts: District table after resolution
        categories: Intervention catalog
        region_id: Restrict to one region (optional)

    Returns:
        pd.DataFrame: Long-format assignment table
    """
    lookup = build_intervention_lookup(categories)
    records = []

    for district in filter_districts_by_region(districts, region_id):
        for category_id, intervention_id in district.intervention_category_assignments.items():
            entry = lookup.get(intervention_id)
            if entry is None:
                logger.debug(f"District {district.district_id}: intervention {intervention_id} not in catalog")
                continue
            intervention, category = entry
            records.append({
                'district_id': district.district_id,
                'district_name': district.name,
                'region_id': district.region_id,
                'category_id': category.id,
                'category_name': category.name,
                'intervention_id': intervention.id,
                'intervention_name': intervention.name,
                'short_name': intervention.short_name,
            })

    return pd.DataFrame(records, columns=[
        'district_id', 'district_name', 'region_id', 'category_id', 'category_name',
        'intervention_id', 'intervention_name', 'short_name'
    ])


def compute_intervention_costs(
    districts: Sequence[District],
    categories: Sequence[InterventionCategory],
    region_id: Optional[str] = None
) -> pd.DataFrame:
    """
    Estimate the cost of each assigned intervention over the districts in scope.

    Every district receiving an intervention adds that intervention's cost
    breakdown once.

    Returns:
        pd.DataFrame: One row per intervention, in order of first appearance

    Example:
        >>> costs = compute_intervention_costs(districts, categories)
        >>> costs[['short_name', 'district_count', 'total_cost']]
    """
    assignments = build_assignment_frame(districts, categories, region_id)
    if assignments.empty:
        return pd.DataFrame(columns=INTERVENTION_COST_COLUMNS)

    grouped = (
        assignments
        .groupby(
            ['intervention_id', 'intervention_name', 'short_name', 'category_id', 'category_name'],
            sort=False
        )
        .size()
        .reset_index(name='district_count')
    )

    for column in COST_COLUMNS:
        grouped[column] = [
            get_intervention_cost(int(i))[column] * n
            for i, n in zip(grouped['intervention_id'], grouped['district_count'])
        ]
    grouped['total_cost'] = grouped[COST_COLUMNS].sum(axis=1)

    logger.info(
        f"Computed costs for {len(grouped)} interventions: "
        f"total {grouped['total_cost'].sum():,.0f}"
    )
    return grouped[INTERVENTION_COST_COLUMNS]


def compute_category_costs(intervention_costs: pd.DataFrame) -> pd.DataFrame:
    """Total cost per intervention category."""
    if intervention_costs.empty:
        return pd.DataFrame(columns=['category_id', 'category_name', 'total_cost'])

    return (
        intervention_costs
        .groupby(['category_id', 'category_name'], sort=False)['total_cost']
        .sum()
        .reset_index()
    )


def compute_total_cost(intervention_costs: pd.DataFrame) -> float:
    if intervention_costs.empty:
        return 0.0
    return float(intervention_costs['total_cost'].sum())


def summarize_mixes(districts: Sequence[District], region_id: Optional[str] = None) -> pd.DataFrame:
    """
    Legend rows: one per distinct intervention mix.

    Districts without an assignment are grouped under the "None" mix.

    Returns:
        pd.DataFrame: label, color, district_count, district_ids; largest group first
    """
    groups: Dict[str, List[str]] = {}
    for district in filter_districts_by_region(districts, region_id):
        label = display_mix_label(district.intervention_mix_label)
        groups.setdefault(label, []).append(district.district_id)

    rows: List[Dict[str, Any]] = [
        {
            'label': label,
            'color': get_color_for_intervention_mix(label),
            'district_count': len(ids),
            'district_ids': ids,
        }
        for label, ids in groups.items()
    ]

    summary = pd.DataFrame(rows, columns=['label', 'color', 'district_count', 'district_ids'])
    if not summary.empty:
        summary = summary.sort_values(
            ['district_count', 'label'], ascending=[False, True]
        ).reset_index(drop=True)
    return summary
