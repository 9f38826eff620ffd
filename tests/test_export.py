"""Tests for CSV and GeoJSON plan export."""

import csv
import json
from datetime import date

from export import (
    build_export_frame,
    district_properties,
    export_filename,
    export_plan_csv,
    export_plan_geojson,
)


def test_filename():
    assert export_filename("bau", date(2026, 3, 1)) == "intervention-plan-bau-2026-03-01.csv"
    assert export_filename(None, date(2026, 3, 1)) == "intervention-plan-new-2026-03-01.csv"


def test_export_frame_columns_and_flags(districts, categories):
    districts[0].intervention_category_assignments = {37: 78, 40: 83}

    frame = build_export_frame(districts, categories)

    assert list(frame.columns[:4]) == [
        'org_unit_id', 'org_unit_name', 'Case Management - CM', 'Case Management Subsidy - CMS'
    ]
    assert len(frame.columns) == 2 + 18
    assert len(frame) == 5

    first = frame.iloc[0]
    assert first['Case Management - CM'] == "1"
    assert first['Dual AI Campaign - DAI-C'] == "1"
    assert first['Dual AI Routine - DAI-R'] == "0"
    assert (frame.iloc[1, 2:] == "0").all()


def test_export_csv(tmp_path, districts, categories):
    districts[2].intervention_category_assignments = {42: 89}
    path = export_plan_csv(tmp_path / "out" / "plan.csv", districts, categories)

    with open(path, newline='', encoding='utf-8') as f:
        rows = list(csv.reader(f))

    assert rows[0][:2] == ['org_unit_id', 'org_unit_name']
    assert len(rows) == 6
    choma = rows[3]
    assert choma[0] == "103"
    assert choma[rows[0].index('R21 Vaccine - R21')] == "1"
    assert b"\r\n" not in path.read_bytes()


def test_district_properties(districts):
    district = districts[0]
    district.intervention_category_assignments = {42: 89, 37: 78}
    district.intervention_mix_label = "CM + R21"
    district.color_by_category = {37: "#ff0000"}

    props = district_properties(district)

    assert props['districtId'] == "101"
    assert props['interventionCount'] == 2
    assert props['interventionCategoryAssignments'] == {"37": 78, "42": 89}
    assert props['colorByCategory'] == {"37": "#ff0000"}


def test_export_geojson(tmp_path, districts):
    path = export_plan_geojson(tmp_path / "plan.geojson", districts)
    data = json.loads(path.read_text(encoding='utf-8'))

    assert data['type'] == 'FeatureCollection'
    assert len(data['features']) == 5
    assert data['features'][0]['geometry']['type'] == 'Polygon'
    assert data['features'][4]['properties']['districtName'] == "Monze"
