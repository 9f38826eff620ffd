"""Pytest configuration and fixtures."""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

# Add src to path for imports
src_path = str(Path(__file__).parent.parent / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

import config  # noqa: E402
from data_loading import transpose_metric_values  # noqa: E402
from geo_utils import District  # noqa: E402
from intervention_mix import Intervention, InterventionCategory  # noqa: E402


# (category id, name, [(intervention id, name, short name, code)])
CATALOG = [
    (37, "Case Management", [
        (78, "Case Management", "CM", "CM"),
        (79, "Case Management Subsidy", "CM Subsidy", "CMS"),
    ]),
    (38, "IPTp", [(80, "IPTp (SP)", "IPTp", "IPTP")]),
    (39, "PMC & SMC", [
        (81, "Perennial Malaria Chemoprevention", "PMC", "PMC"),
        (82, "Seasonal Malaria Chemoprevention", "SMC", "SMC"),
    ]),
    (40, "ITN Campaign", [
        (83, "Dual AI Campaign", "Dual AI", "DAI-C"),
        (84, "PBO Campaign", "PBO", "PBO-C"),
        (85, "Standard Pyrethroid Campaign", "Standard", "STD-C"),
    ]),
    (41, "ITN Routine", [
        (86, "Dual AI Routine", "Dual AI", "DAI-R"),
        (87, "PBO Routine", "PBO", "PBO-R"),
        (88, "Standard Pyrethroid Routine", "Standard", "STD-R"),
    ]),
    (42, "Vaccination", [(89, "R21 Vaccine", "R21", "R21")]),
    (43, "Vector Control", [(90, "Larval Source Management", "LSM", "LSM")]),
    (44, "IRS", [
        (91, "IRS Pyrethroid", "IRS Pyr", "IRS-P"),
        (92, "IRS Organophosphate", "IRS OP", "IRS-O"),
        (93, "IRS Carbamate", "IRS Carb", "IRS-C"),
    ]),
    (45, "MDA", [
        (94, "MDA Single Round", "MDA 1x", "MDA-1"),
        (95, "MDA Multiple Rounds", "MDA", "MDA-M"),
    ]),
]

# district id, name, region id, region name
DISTRICT_ROWS = [
    ("101", "Kasama", "1", "Northern"),
    ("102", "Mbala", "1", "Northern"),
    ("103", "Choma", "2", "Southern"),
    ("104", "Livingstone", "2", "Southern"),
    ("105", "Monze", "2", "Southern"),
]

# metric type id -> org unit id -> value; district 105 has no values
METRIC_VALUES = {
    config.METRIC_SEASONALITY: {101: 0.8, 102: 0.3, 103: 0.3, 104: 0.5},
    config.METRIC_MORTALITY: {101: 10.0, 102: 8.0, 103: 2.0, 104: 1.0},
    config.METRIC_INCIDENCE: {101: 400.0, 102: 500.0, 103: 400.0, 104: 100.0},
    config.METRIC_INSECTICIDE_RESISTANCE: {101: 0.8, 102: 0.9, 103: 0.8, 104: 0.2},
}


def catalog_json() -> List[Dict[str, Any]]:
    """Intervention catalog in the reference file layout."""
    return [
        {
            'id': category_id,
            'name': name,
            'description': '',
            'interventions': [
                {
                    'id': iid,
                    'name': iname,
                    'short_name': short,
                    'code': code,
                    'description': '',
                    'intervention_category': category_id,
                }
                for iid, iname, short, code in interventions
            ],
        }
        for category_id, name, interventions in CATALOG
    ]


def square(lng: float, lat: float, size: float = 1.0) -> Dict[str, Any]:
    return {
        'type': 'Polygon',
        'coordinates': [[
            [lng, lat], [lng + size, lat], [lng + size, lat + size], [lng, lat + size], [lng, lat]
        ]],
    }


def org_units_json() -> List[Dict[str, Any]]:
    """Org units for the fixture districts, plus one unit without a boundary."""
    units = []
    for index, (district_id, name, region_id, region_name) in enumerate(DISTRICT_ROWS):
        units.append({
            'id': int(district_id),
            'name': name,
            'parent_id': int(region_id),
            'parent_name': region_name,
            'has_geo_json': True,
            'geo_json': {
                'type': 'FeatureCollection',
                'features': [{'type': 'Feature', 'properties': {}, 'geometry': square(28 + index, -10 - index)}],
            },
        })
    units.append({
        'id': 199,
        'name': 'Unmapped',
        'parent_id': 2,
        'parent_name': 'Southern',
        'has_geo_json': False,
        'geo_json': None,
    })
    return units


def metric_records(metric_type_id: int) -> List[Dict[str, Any]]:
    return [
        {
            'id': index + 1,
            'metric_type': metric_type_id,
            'org_unit': org_unit,
            'year': 2024,
            'value': value,
            'string_value': '',
        }
        for index, (org_unit, value) in enumerate(METRIC_VALUES[metric_type_id].items())
    ]


@pytest.fixture
def categories() -> List[InterventionCategory]:
    """Intervention catalog, categories 37-45."""
    return [
        InterventionCategory(
            id=category_id,
            name=name,
            interventions=tuple(
                Intervention(id=iid, name=iname, short_name=short, code=code, category_id=category_id)
                for iid, iname, short, code in interventions
            ),
        )
        for category_id, name, interventions in CATALOG
    ]


@pytest.fixture
def districts() -> List[District]:
    """Fresh district table, no assignments."""
    return [
        District(district_id=did, name=name, region_id=rid, region_name=rname, geometry=square(28, -10))
        for did, name, rid, rname in DISTRICT_ROWS
    ]


@pytest.fixture
def metric_values_by_type() -> Dict[int, Dict[int, float]]:
    return {metric: dict(values) for metric, values in METRIC_VALUES.items()}


@pytest.fixture
def metrics_by_district(metric_values_by_type) -> Dict[str, Dict[int, float]]:
    return transpose_metric_values(metric_values_by_type)


@pytest.fixture
def reference_data_dir(tmp_path) -> Path:
    """Data directory with org units, catalog, metric types and two metric value files."""
    data_dir = tmp_path / "data"

    def write(relative: Path, payload: Any) -> None:
        path = data_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding='utf-8')

    write(config.ORG_UNITS_FILE, org_units_json())
    write(config.INTERVENTION_CATEGORIES_FILE, catalog_json())
    write(config.METRIC_TYPES_FILE, [
        {'id': config.METRIC_SEASONALITY, 'name': 'Seasonality', 'category': 'Epidemiology', 'units': 'ratio'},
        {'id': config.METRIC_INCIDENCE, 'name': 'Incidence', 'category': 'Epidemiology',
         'units': 'per 1000', 'unit_symbol': '‰'},
    ])
    for metric in (config.METRIC_SEASONALITY, config.METRIC_INCIDENCE):
        write(config.METRIC_VALUES_DIR / f"{metric}.json", metric_records(metric))

    return data_dir
