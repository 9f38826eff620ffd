"""
Export of resolved intervention plans.

Two outputs are produced from the district table:
- a CSV with one row per district and one 1/0 column per intervention
- a GeoJSON FeatureCollection whose feature properties carry the resolved
  mix, label and colors, for map layers
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import pandas as pd

from geo_utils import District
from intervention_mix import InterventionCategory, list_interventions

# Configure logging
logger = logging.getLogger(__name__)


def intervention_column_header(intervention) -> str:
    return f"{intervention.name} - {intervention.code}"


def build_export_frame(
    districts: Sequence[District],
    categories: Sequence[InterventionCategory]
) -> pd.DataFrame:
    """
    Build the plan export table.

    Columns are ``org_unit_id``, ``org_unit_name`` and one column per
    intervention in catalog order, headed "{name} - {code}". A cell is "1"
    when that exact intervention is the one assigned to the district in its
    category, "0" otherwise.

    Args:
        districts: District table after resolution
        categories: Intervention catalog

    Returns:
        pd.DataFrame: One row per district, all values as strings
    """
    columns = list_interventions(categories)
    headers = ['org_unit_id', 'org_unit_name'] + [
        intervention_column_header(intervention) for _, intervention in columns
    ]

    rows = []
    for district in districts:
        assignments = district.intervention_category_assignments
        flags = [
            "1" if assignments.get(category.id) == intervention.id else "0"
            for category, intervention in columns
        ]
        rows.append([district.district_id, district.name] + flags)

    return pd.DataFrame(rows, columns=headers, dtype=str)


def export_filename(plan_id: Optional[str] = None, export_date: Optional[date] = None) -> str:
    """
    File name for a plan export.

    Example:
        >>> export_filename("bau", date(2026, 3, 1))
        'intervention-plan-bau-2026-03-01.csv'
    """
    export_date = export_date or date.today()
    return f"intervention-plan-{plan_id or 'new'}-{export_date.isoformat()}.csv"


def export_plan_csv(
    output_path: Path,
    districts: Sequence[District],
    categories: Sequence[InterventionCategory]
) -> Path:
    """
    Write the plan export CSV.

    Returns:
        Path: The written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    frame = build_export_frame(districts, categories)
    frame.to_csv(output_path, index=False, lineterminator="\n")

    logger.info(f"✅ Exported {len(frame)} districts x {len(frame.columns) - 2} interventions to {output_path}")
    return output_path


def district_properties(district: District) -> Dict[str, Any]:
    """Feature properties for a district, with string keys for every map."""
    return {
        'districtId': district.district_id,
        'districtName': district.name,
        'regionId': district.region_id,
        'regionName': district.region_name,
        'interventionCount': district.intervention_count,
        'interventionCategoryAssignments': {
            str(k): v for k, v in sorted(district.intervention_category_assignments.items())
        },
        'interventionMixLabel': district.intervention_mix_label,
        'ruleColor': district.rule_color,
        'colorByCategory': {str(k): v for k, v in sorted(district.color_by_category.items())},
        'colorByInterventionName': dict(district.color_by_intervention_name),
    }


def districts_to_feature_collection(districts: Sequence[District]) -> Dict[str, Any]:
    return {
        'type': 'FeatureCollection',
        'features': [
            {
                'type': 'Feature',
                'properties': district_properties(district),
                'geometry': district.geometry,
            }
            for district in districts
        ],
    }


def export_plan_geojson(output_path: Path, districts: Sequence[District]) -> Path:
    """Write the resolved districts as a GeoJSON FeatureCollection."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(districts_to_feature_collection(districts), f)

    logger.info(f"✅ Exported {len(districts)} district features to {output_path}")
    return output_path
