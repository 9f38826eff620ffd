"""
Reference data loading for the intervention planner.

This module loads the data the rules engine consumes: org units with their
boundaries, the intervention catalog, metric types and per-metric district
values. Data comes from JSON files under the data directory, or from an HTTP
API when one is configured, in which case responses are cached locally.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
import requests

import config
from intervention_mix import Intervention, InterventionCategory

# Configure logging
logger = logging.getLogger(__name__)


# Value ranges used to generate stand-in values for metrics without a data file
METRIC_VALUE_RANGES = {
    404: (50000, 600000),   # population
    406: (0, 100),          # rural population (%)
    407: (0, 50),           # mortality
    410: (50, 1200),        # incidence
    411: (0, 1),            # PfPr2-10 prevalence
    412: (0, 1),            # insecticide resistance
    413: (0, 1),            # seasonality
    416: (0, 100),          # LLIN usage (%)
    417: (0, 1),            # clinical attack rate
    418: (0, 1),            # vector outdoor biting
    419: (0, 1),            # vector indoor resting
    420: (0, 1),            # urban classification
}
DEFAULT_VALUE_RANGE = (0, 1000)


@dataclass(frozen=True)
class MetricType:
    id: int
    name: str
    category: str = ""
    description: str = ""
    units: str = ""
    unit_symbol: str = ""


def load_json_file(path: Path) -> Any:
    """
    Read a JSON document from disk.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        logger.error(f"File not found: {path}")
        raise FileNotFoundError(f"File does not exist: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {path}: {e}")
        raise ValueError(f"Invalid JSON in {path}: {e}") from e


def fetch_json(url: str, cache_file: Optional[Path] = None, timeout: Optional[float] = None) -> Any:
    """
    Fetch a JSON document over HTTP, caching it on success.

    When the request fails and a cached copy exists, the cached copy is
    returned instead.

    Args:
        url: Document URL
        cache_file: Where to keep a local copy (optional)
        timeout: Request timeout in seconds (defaults to config.HTTP_TIMEOUT)

    Returns:
        Parsed JSON document

    Raises:
        requests.RequestException: If the request fails and no cache exists
        ValueError: If the response is not JSON and no cache exists
    """
    timeout = config.HTTP_TIMEOUT if timeout is None else timeout

    try:
        logger.info(f"Fetching {url}")
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        if cache_file is not None and Path(cache_file).exists():
            logger.warning(f"Fetching {url} failed ({e}), using cache {cache_file}")
            return load_json_file(cache_file)
        logger.error(f"Fetching {url} failed: {e}")
        raise

    if cache_file is not None:
        try:
            cache_file = Path(cache_file)
            cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(cache_file, 'w', encoding='utf-8') as f:
                json.dump(data, f)
            logger.debug(f"Cached {url} to {cache_file}")
        except OSError as e:
            logger.warning(f"Failed to cache {url}: {e}")

    return data


def load_reference_json(
    relative_path: Path,
    endpoint: str,
    data_dir: Optional[Path] = None,
    api_base_url: Optional[str] = None
) -> Any:
    """
    Load one reference document from the API (if configured) or the data directory.

    Args:
        relative_path: Location under the data directory, also used as cache key
        endpoint: API path (e.g. "orgunits" or "metricvalues?id=410")
        data_dir: Data directory (defaults to config.DATA_DIR)
        api_base_url: API base URL (defaults to config.API_BASE_URL)
    """
    data_dir = Path(data_dir) if data_dir is not None else config.DATA_DIR
    api_base_url = config.API_BASE_URL if api_base_url is None else api_base_url.rstrip('/')

    if api_base_url:
        return fetch_json(
            f"{api_base_url}/{endpoint}",
            cache_file=config.DATA_CACHE_DIR / relative_path
        )
    return load_json_file(data_dir / relative_path)


def load_org_units(data_dir: Optional[Path] = None, api_base_url: Optional[str] = None) -> List[Dict[str, Any]]:
    """Load org units (districts with parent and GeoJSON boundary)."""
    org_units = load_reference_json(config.ORG_UNITS_FILE, "orgunits", data_dir, api_base_url)
    logger.info(f"Loaded {len(org_units)} org units")
    return org_units


def parse_intervention_categories(raw: Iterable[Dict[str, Any]]) -> List[InterventionCategory]:
    """Convert the catalog JSON into category records, keeping catalog order."""
    categories = []
    for item in raw:
        interventions = tuple(
            Intervention(
                id=int(i['id']),
                name=i.get('name', ''),
                short_name=i.get('short_name') or i.get('name', ''),
                code=i.get('code') or '',
                description=i.get('description') or '',
                category_id=int(i.get('intervention_category', item['id'])),
            )
            for i in item.get('interventions') or []
        )
        categories.append(InterventionCategory(
            id=int(item['id']),
            name=item.get('name', ''),
            description=item.get('description') or '',
            interventions=interventions,
        ))
    return categories


def load_intervention_categories(
    data_dir: Optional[Path] = None,
    api_base_url: Optional[str] = None
) -> List[InterventionCategory]:
    """Load the intervention catalog."""
    raw = load_reference_json(
        config.INTERVENTION_CATEGORIES_FILE, "intervention-categories", data_dir, api_base_url
    )
    categories = parse_intervention_categories(raw)
    logger.info(
        f"Loaded {len(categories)} intervention categories "
        f"({sum(len(c.interventions) for c in categories)} interventions)"
    )
    return categories


def parse_metric_types(raw: Iterable[Dict[str, Any]]) -> List[MetricType]:
    return [
        MetricType(
            id=int(item['id']),
            name=item.get('name', ''),
            category=item.get('category') or '',
            description=item.get('description') or '',
            units=item.get('units') or '',
            unit_symbol=item.get('unit_symbol') or '',
        )
        for item in raw
    ]


def load_metric_types(data_dir: Optional[Path] = None, api_base_url: Optional[str] = None) -> List[MetricType]:
    """Load metric type definitions."""
    metric_types = parse_metric_types(
        load_reference_json(config.METRIC_TYPES_FILE, "metric-types", data_dir, api_base_url)
    )
    logger.info(f"Loaded {len(metric_types)} metric types")
    return metric_types


def load_metric_values(
    metric_type_id: int,
    data_dir: Optional[Path] = None,
    api_base_url: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Load the value records of one metric type.

    Records look like ``{id, metric_type, org_unit, year, value, string_value}``.

    Raises:
        FileNotFoundError: If no values file exists for the metric (local mode)
    """
    return load_reference_json(
        config.METRIC_VALUES_DIR / f"{metric_type_id}.json",
        f"metricvalues?id={metric_type_id}",
        data_dir,
        api_base_url
    )


def generate_mock_metric_values(org_unit_ids: Sequence[int], metric_type_id: int) -> List[Dict[str, Any]]:
    """
    Deterministic stand-in values for a metric without data.

    Each value depends only on the org unit id and metric type id, so the
    same district always gets the same value.

    Example:
        >>> records = generate_mock_metric_values([1, 2], 413)
        >>> [r['org_unit'] for r in records]
        [1, 2]
    """
    if len(org_unit_ids) == 0:
        return []

    low, high = METRIC_VALUE_RANGES.get(metric_type_id, DEFAULT_VALUE_RANGE)
    ids = np.asarray(org_unit_ids, dtype=np.int64)

    seeds = ids * 1000 + metric_type_id
    x = np.sin(seeds * 9999.0) * 10000.0
    fraction = x - np.floor(x)
    values = np.floor((low + fraction * (high - low)) * 100 + 0.5) / 100

    return [
        {
            'id': index + 1,
            'metric_type': metric_type_id,
            'org_unit': int(org_unit),
            'year': None,
            'value': float(value),
            'string_value': '',
        }
        for index, (org_unit, value) in enumerate(zip(ids, values))
    ]


def metric_records_to_frame(records: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """
    Normalize metric value records into a (metric_type, org_unit, value) frame.

    Records without a numeric value are dropped. Later records win over
    earlier ones for the same metric and org unit.
    """
    df = pd.DataFrame(list(records), columns=['metric_type', 'org_unit', 'value'])
    if df.empty:
        return df

    df['value'] = pd.to_numeric(df['value'], errors='coerce')
    df = df.dropna(subset=['metric_type', 'org_unit', 'value']).copy()
    df['metric_type'] = df['metric_type'].astype(int)
    df['org_unit'] = df['org_unit'].astype(int)
    return df.drop_duplicates(subset=['metric_type', 'org_unit'], keep='last')


def build_metric_values_by_type(records: Iterable[Dict[str, Any]]) -> Dict[int, Dict[int, float]]:
    """
    Index value records as metric type id -> org unit id -> value.
    """
    df = metric_records_to_frame(records)
    result: Dict[int, Dict[int, float]] = {}
    for metric_type, group in df.groupby('metric_type', sort=False):
        result[int(metric_type)] = {
            int(org_unit): float(value)
            for org_unit, value in zip(group['org_unit'], group['value'])
        }
    return result


def transpose_metric_values(metric_values_by_type: Dict[int, Dict[int, float]]) -> Dict[str, Dict[int, float]]:
    """
    Turn metric type -> org unit -> value into district id -> metric type -> value.

    District ids are strings, matching the district records; missing
    metric/district pairs are simply absent.

    Example:
        >>> transpose_metric_values({413: {101: 0.8}, 407: {101: 10.0}})
        {'101': {413: 0.8, 407: 10.0}}
    """
    records = [
        {'metric_type': metric_type, 'org_unit': org_unit, 'value': value}
        for metric_type, values in metric_values_by_type.items()
        for org_unit, value in values.items()
    ]
    df = metric_records_to_frame(records)
    if df.empty:
        return {}

    table = df.pivot(index='org_unit', columns='metric_type', values='value')
    table = table.reindex(columns=[m for m in metric_values_by_type if m in table.columns])

    result: Dict[str, Dict[int, float]] = {}
    for org_unit, row in table.iterrows():
        values = row.dropna()
        result[str(org_unit)] = {int(k): float(v) for k, v in values.items()}
    return result


def load_metric_tables(
    metric_type_ids: Optional[Sequence[int]] = None,
    org_unit_ids: Optional[Sequence[int]] = None,
    data_dir: Optional[Path] = None,
    api_base_url: Optional[str] = None
) -> Dict[int, Dict[int, float]]:
    """
    Load values for several metric types.

    Metrics without a values file get generated stand-in values when
    ``org_unit_ids`` is given, and are skipped otherwise.

    Args:
        metric_type_ids: Metrics to load (defaults to config.METRIC_IDS_WITH_DATA)
        org_unit_ids: Org units to generate stand-in values for
        data_dir: Data directory
        api_base_url: API base URL

    Returns:
        dict: metric type id -> org unit id -> value
    """
    metric_type_ids = list(config.METRIC_IDS_WITH_DATA if metric_type_ids is None else metric_type_ids)
    records: List[Dict[str, Any]] = []

    for metric_type_id in metric_type_ids:
        try:
            values = load_metric_values(metric_type_id, data_dir, api_base_url)
            logger.info(f"Loaded {len(values)} values for metric {metric_type_id}")
        except FileNotFoundError:
            if org_unit_ids is None:
                logger.warning(f"No values for metric {metric_type_id}, skipped")
                continue
            values = generate_mock_metric_values(org_unit_ids, metric_type_id)
            logger.warning(f"No values for metric {metric_type_id}, generated {len(values)} stand-in values")
        records.extend(values)

    by_type = build_metric_values_by_type(records)
    logger.info(f"Metric tables ready for {len(by_type)} of {len(metric_type_ids)} metric types")
    return by_type


def get_reference_data_info(data_dir: Optional[Path] = None) -> dict:
    """
    Describe the reference files present in a data directory without parsing them.

    Example:
        >>> info = get_reference_data_info(Path('data'))
        >>> print(info['metric_value_files'])
    """
    data_dir = Path(data_dir) if data_dir is not None else config.DATA_DIR

    if not data_dir.exists():
        logger.error(f"Data directory not found: {data_dir}")
        raise FileNotFoundError(f"Data directory does not exist: {data_dir}")

    metric_files = sorted((data_dir / config.METRIC_VALUES_DIR).glob("*.json"))
    tracked = [
        data_dir / config.ORG_UNITS_FILE,
        data_dir / config.INTERVENTION_CATEGORIES_FILE,
        data_dir / config.METRIC_TYPES_FILE,
    ] + metric_files
    total_size = sum(p.stat().st_size for p in tracked if p.exists())

    info = {
        'data_dir': str(data_dir),
        'has_org_units': (data_dir / config.ORG_UNITS_FILE).exists(),
        'has_intervention_categories': (data_dir / config.INTERVENTION_CATEGORIES_FILE).exists(),
        'has_metric_types': (data_dir / config.METRIC_TYPES_FILE).exists(),
        'metric_value_files': [int(p.stem) for p in metric_files if p.stem.isdigit()],
        'total_size_mb': round(total_size / (1024 * 1024), 2),
    }

    logger.info(
        f"Reference data in {data_dir}: {len(info['metric_value_files'])} metric files, "
        f"{info['total_size_mb']} MB"
    )
    return info
