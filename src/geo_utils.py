"""
Geospatial utilities for district-level planning.

Handles:
- District records built from org units that carry GeoJSON boundaries
- Province (parent org unit) extraction with bounding boxes
- Region filtering and district lookups
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class District:
    """
    A district and the derived planning fields written by rule resolution.

    The identity fields never change during a session; the derived fields are
    overwritten wholesale on every resolution pass.
    """

    district_id: str
    name: str
    region_id: str = ""
    region_name: str = ""
    geometry: Optional[Dict[str, Any]] = None
    intervention_category_assignments: Dict[int, int] = field(default_factory=dict)
    intervention_mix_label: str = ""
    rule_color: str = ""
    color_by_category: Dict[int, str] = field(default_factory=dict)
    color_by_intervention_name: Dict[str, str] = field(default_factory=dict)

    @property
    def intervention_count(self) -> int:
        return len(self.intervention_category_assignments)

    def clear_assignment(self) -> None:
        self.intervention_category_assignments = {}
        self.intervention_mix_label = ""
        self.rule_color = ""
        self.color_by_category = {}
        self.color_by_intervention_name = {}


@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float


@dataclass(frozen=True)
class Province:
    id: str
    name: str
    bounds: Bounds


def _first_geometry(geo_json: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First feature geometry of an org unit's FeatureCollection, if any."""
    if not geo_json:
        return None
    features = geo_json.get('features') or []
    if not features:
        return None
    return features[0].get('geometry')


def extract_coordinates(geometry: Optional[Dict[str, Any]]) -> List[Tuple[float, float]]:
    """
    Collect every (lng, lat) pair from a GeoJSON geometry.

    Works for any nesting depth, so Polygon and MultiPolygon are handled the
    same way.
    """
    coords: List[Tuple[float, float]] = []
    if not geometry or 'coordinates' not in geometry:
        return coords

    stack = [geometry['coordinates']]
    while stack:
        item = stack.pop()
        if not isinstance(item, (list, tuple)):
            continue
        if (
            len(item) >= 2
            and isinstance(item[0], (int, float))
            and isinstance(item[1], (int, float))
        ):
            coords.append((float(item[0]), float(item[1])))
            continue
        stack.extend(reversed(item))

    return coords


def districts_from_org_units(org_units: Iterable[Dict[str, Any]]) -> List[District]:
    """
    Build district records from org units.

    Only org units with a GeoJSON boundary become districts, since the rest
    cannot be shown or exported per area.

    Args:
        org_units: Org unit dicts (id, name, parent_id, parent_name, has_geo_json, geo_json)

    Returns:
        list: District records in input order
    """
    districts = []
    skipped = 0

    for unit in org_units:
        geometry = _first_geometry(unit.get('geo_json')) if unit.get('has_geo_json', True) else None
        if geometry is None:
            skipped += 1
            continue

        parent_id = unit.get('parent_id')
        districts.append(District(
            district_id=str(unit['id']),
            name=unit.get('name', ''),
            region_id='' if parent_id is None else str(parent_id),
            region_name=unit.get('parent_name') or '',
            geometry=geometry,
        ))

    logger.info(f"Built {len(districts)} districts from org units ({skipped} without boundaries skipped)")
    return districts


def calculate_bounds(geometries: Iterable[Optional[Dict[str, Any]]]) -> Bounds:
    """Bounding box over a set of geometries (infinite when there are no coordinates)."""
    north, south = float('-inf'), float('inf')
    east, west = float('-inf'), float('inf')

    for geometry in geometries:
        for lng, lat in extract_coordinates(geometry):
            north = max(north, lat)
            south = min(south, lat)
            east = max(east, lng)
            west = min(west, lng)

    return Bounds(north=north, south=south, east=east, west=west)


def extract_provinces(org_units: Sequence[Dict[str, Any]]) -> List[Province]:
    """
    Derive provinces from the parent fields of org units.

    Each province's bounds cover the boundaries of its children.

    Returns:
        list: Provinces sorted by name
    """
    children: Dict[Any, List[Optional[Dict[str, Any]]]] = {}
    names: Dict[Any, str] = {}

    for unit in org_units:
        parent_id = unit.get('parent_id')
        if not parent_id:
            continue
        names.setdefault(parent_id, unit.get('parent_name') or '')
        children.setdefault(parent_id, []).append(_first_geometry(unit.get('geo_json')))

    provinces = [
        Province(id=str(parent_id), name=names[parent_id], bounds=calculate_bounds(geoms))
        for parent_id, geoms in children.items()
    ]
    provinces.sort(key=lambda p: p.name.casefold())

    logger.info(f"Extracted {len(provinces)} provinces")
    return provinces


def filter_districts_by_region(districts: Sequence[District], region_id: Optional[str]) -> List[District]:
    """Districts of one region; all districts when region_id is None or empty."""
    if not region_id:
        return list(districts)
    return [d for d in districts if d.region_id == str(region_id)]


def build_district_lookup(districts: Sequence[District]) -> Dict[str, District]:
    """Index districts by id."""
    return {d.district_id: d for d in districts}


def get_district_name(districts: Sequence[District], district_id: Any) -> str:
    """Display name for a district id, falling back to the id itself."""
    key = str(district_id)
    for district in districts:
        if district.district_id == key:
            return district.name
    return key
