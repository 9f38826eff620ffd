"""Tests for reference data loading and metric tables."""

import json

import pytest
import requests

import config
import data_loading
from data_loading import (
    build_metric_values_by_type,
    fetch_json,
    generate_mock_metric_values,
    get_reference_data_info,
    load_intervention_categories,
    load_json_file,
    load_metric_tables,
    load_metric_types,
    load_org_units,
    metric_records_to_frame,
    transpose_metric_values,
)


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class TestLocalFiles:
    def test_load_json_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_json_file(tmp_path / "missing.json")

    def test_load_json_invalid(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding='utf-8')
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_json_file(path)

    def test_load_reference_files(self, reference_data_dir):
        org_units = load_org_units(reference_data_dir, api_base_url="")
        categories = load_intervention_categories(reference_data_dir, api_base_url="")
        metric_types = load_metric_types(reference_data_dir, api_base_url="")

        assert len(org_units) == 6
        assert [c.id for c in categories] == list(range(37, 46))
        assert categories[3].interventions[0].short_name == "Dual AI"
        assert categories[3].interventions[0].category_id == 40
        assert metric_types[1].unit_symbol == "‰"

    def test_reference_data_info(self, reference_data_dir):
        info = get_reference_data_info(reference_data_dir)
        assert info['has_org_units'] is True
        assert info['metric_value_files'] == [config.METRIC_INCIDENCE, config.METRIC_SEASONALITY]

    def test_reference_data_info_missing_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_reference_data_info(tmp_path / "nowhere")


class TestFetch:
    def test_fetch_writes_cache(self, tmp_path, monkeypatch):
        calls = []

        def fake_get(url, timeout):
            calls.append((url, timeout))
            return FakeResponse([{'id': 1}])

        monkeypatch.setattr(data_loading.requests, "get", fake_get)
        cache = tmp_path / "cache" / "orgunits.json"

        assert fetch_json("https://api.test/orgunits", cache_file=cache, timeout=5) == [{'id': 1}]
        assert calls == [("https://api.test/orgunits", 5)]
        assert json.loads(cache.read_text(encoding='utf-8')) == [{'id': 1}]

    def test_fetch_falls_back_to_cache(self, tmp_path, monkeypatch):
        cache = tmp_path / "orgunits.json"
        cache.write_text(json.dumps([{'id': 7}]), encoding='utf-8')
        monkeypatch.setattr(data_loading.requests, "get", lambda url, timeout: FakeResponse(status_code=503))

        assert fetch_json("https://api.test/orgunits", cache_file=cache) == [{'id': 7}]

    def test_fetch_without_cache_raises(self, tmp_path, monkeypatch):
        def failing_get(url, timeout):
            raise requests.ConnectionError("down")

        monkeypatch.setattr(data_loading.requests, "get", failing_get)
        with pytest.raises(requests.ConnectionError):
            fetch_json("https://api.test/orgunits", cache_file=tmp_path / "none.json")

    def test_api_mode_uses_endpoint(self, tmp_path, monkeypatch):
        urls = []

        def fake_get(url, timeout):
            urls.append(url)
            return FakeResponse([])

        monkeypatch.setattr(data_loading.requests, "get", fake_get)
        monkeypatch.setattr(config, "DATA_CACHE_DIR", tmp_path)

        load_org_units(api_base_url="https://api.test/")
        assert urls == ["https://api.test/orgunits"]


class TestMetricTables:
    def test_records_to_frame_drops_non_numeric(self):
        frame = metric_records_to_frame([
            {'metric_type': 413, 'org_unit': 1, 'value': 0.5},
            {'metric_type': 413, 'org_unit': 2, 'value': None},
            {'metric_type': 413, 'org_unit': 3, 'value': 'n/a'},
        ])
        assert list(frame['org_unit']) == [1]

    def test_later_record_wins(self):
        by_type = build_metric_values_by_type([
            {'metric_type': 413, 'org_unit': 1, 'value': 0.5},
            {'metric_type': 413, 'org_unit': 1, 'value': 0.9},
        ])
        assert by_type == {413: {1: 0.9}}

    def test_transpose(self):
        result = transpose_metric_values({413: {101: 0.8, 102: 0.3}, 407: {101: 10.0}})
        assert result == {'101': {413: 0.8, 407: 10.0}, '102': {413: 0.3}}

    def test_transpose_empty(self):
        assert transpose_metric_values({}) == {}

    def test_mock_values_are_deterministic_and_in_range(self):
        first = generate_mock_metric_values([101, 102, 103], config.METRIC_SEASONALITY)
        second = generate_mock_metric_values([101, 102, 103], config.METRIC_SEASONALITY)

        assert first == second
        assert [r['org_unit'] for r in first] == [101, 102, 103]
        assert all(0 <= r['value'] <= 1 for r in first)
        assert generate_mock_metric_values([], 413) == []

    def test_mock_default_range(self):
        records = generate_mock_metric_values([5], 999)
        assert 0 <= records[0]['value'] <= 1000

    def test_load_tables_with_generated_fallback(self, reference_data_dir):
        tables = load_metric_tables(
            [config.METRIC_SEASONALITY, config.METRIC_MORTALITY],
            org_unit_ids=[101, 102],
            data_dir=reference_data_dir,
            api_base_url="",
        )
        assert tables[config.METRIC_SEASONALITY] == {101: 0.8, 102: 0.3, 103: 0.3, 104: 0.5}
        assert set(tables[config.METRIC_MORTALITY]) == {101, 102}

    def test_load_tables_skips_missing_without_org_units(self, reference_data_dir):
        tables = load_metric_tables(
            [config.METRIC_INCIDENCE, config.METRIC_MORTALITY],
            data_dir=reference_data_dir,
            api_base_url="",
        )
        assert list(tables) == [config.METRIC_INCIDENCE]
