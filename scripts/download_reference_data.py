"""
Download reference data (org units, intervention catalog, metric types and
metric values) from the planning API into the local data directory.

Usage:
    PLANNER_API_BASE_URL=https://example.org/api python scripts/download_reference_data.py
"""

import json
import logging
import sys
from pathlib import Path

import requests

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import config

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def reference_sources():
    """(endpoint, relative path) pairs to fetch, metric values last."""
    sources = [
        ("orgunits", config.ORG_UNITS_FILE),
        ("intervention-categories", config.INTERVENTION_CATEGORIES_FILE),
        ("metric-types", config.METRIC_TYPES_FILE),
    ]
    sources.extend(
        (f"metricvalues?id={metric_id}", config.METRIC_VALUES_DIR / f"{metric_id}.json")
        for metric_id in config.METRIC_IDS_WITH_DATA
    )
    return sources


def download_json(url: str, output_path: Path) -> bool:
    """Download one JSON document and save it to file."""
    try:
        logger.info(f"Downloading from: {url}")
        response = requests.get(url, timeout=config.HTTP_TIMEOUT)
        response.raise_for_status()

        data = response.json()
        count = len(data) if isinstance(data, list) else 1
        logger.info(f"✓ Downloaded {count} records")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False)

        file_size_kb = output_path.stat().st_size / 1024
        logger.info(f"✓ Saved to {output_path} ({file_size_kb:.1f} KB)")
        return True

    except requests.exceptions.RequestException as e:
        logger.error(f"Download failed: {e}")
        return False
    except ValueError as e:
        logger.error(f"Invalid JSON: {e}")
        return False


def main():
    if not config.API_BASE_URL:
        logger.error("❌ PLANNER_API_BASE_URL is not set")
        return False

    logger.info("=" * 80)
    logger.info("DOWNLOADING REFERENCE DATA")
    logger.info("=" * 80)
    logger.info(f"Source: {config.API_BASE_URL}")
    logger.info(f"Target: {config.DATA_DIR}")

    failed = []
    for endpoint, relative_path in reference_sources():
        if not download_json(f"{config.API_BASE_URL}/{endpoint}", config.DATA_DIR / relative_path):
            failed.append(endpoint)

    if failed:
        logger.error(f"\n❌ {len(failed)} downloads failed: {failed}")
        return False

    logger.info("\n✅ All reference data downloaded")
    return True


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
