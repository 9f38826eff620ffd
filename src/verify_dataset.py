"""
Reference Data Verification Module

Verifies the reference data directory before a planning run so that a missing
or corrupted file is reported up front instead of surfacing as an empty plan.

Checks performed:
1. Data directory exists and is a directory
2. Org units, intervention categories and metric types files are present
3. The metric values folder holds a file for each metric with data
4. Every JSON file parses (optional)
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import config

# Configure logging
logger = logging.getLogger(__name__)


REQUIRED_FILES = [
    config.ORG_UNITS_FILE,
    config.INTERVENTION_CATEGORIES_FILE,
    config.METRIC_TYPES_FILE,
]


def check_directory_exists(path: Path, description: str) -> None:
    """
    Verify that a directory exists.

    Raises:
        RuntimeError: If the directory does not exist or is not a directory
    """
    logger.debug(f"Checking {description}: {path}")

    if not path.exists():
        error_msg = (
            f"❌ {description} does not exist: {path}\n"
            f"Expected location: {path.absolute()}\n"
            f"Set PLANNER_DATA_DIR or pass --data-dir to point at the reference data."
        )
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    if not path.is_dir():
        error_msg = f"❌ {description} exists but is not a directory: {path}"
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    logger.info(f"✅ {description} exists: {path}")


def check_required_file(data_dir: Path, relative_path: Path) -> Path:
    """
    Verify that a required reference file exists.

    Raises:
        RuntimeError: If the file is missing
    """
    file_path = data_dir / relative_path

    if not file_path.is_file():
        error_msg = (
            f"❌ Required file missing: {relative_path}\n"
            f"Expected location: {file_path.absolute()}"
        )
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    logger.info(f"✅ Required file exists: {relative_path}")
    return file_path


def find_metric_value_files(data_dir: Path) -> Dict[int, Path]:
    """Metric values files keyed by metric type id."""
    folder = data_dir / config.METRIC_VALUES_DIR
    if not folder.is_dir():
        return {}
    return {
        int(path.stem): path
        for path in sorted(folder.glob("*.json"))
        if path.stem.isdigit()
    }


def verify_json_readable(path: Path) -> bool:
    """
    Check that a file parses as JSON.

    Returns:
        bool: True if readable, False otherwise
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            json.load(f)
        logger.debug(f"✅ JSON readable: {path.name}")
        return True

    except json.JSONDecodeError as e:
        logger.error(f"❌ Invalid JSON in {path.name}: {e}")
        return False

    except UnicodeDecodeError as e:
        logger.error(f"❌ Encoding error in {path.name}: {e}")
        return False

    except OSError as e:
        logger.error(f"❌ Error reading {path.name}: {e}")
        return False


def verify_reference_data(
    data_dir: Optional[Path] = None,
    metric_type_ids: Optional[List[int]] = None,
    skip_readability: bool = False
) -> Dict[str, Any]:
    """
    Verify the reference data directory.

    Missing metric value files are reported but do not fail verification,
    since those metrics fall back to generated values.

    Args:
        data_dir: Data directory (defaults to config.DATA_DIR)
        metric_type_ids: Metrics expected to have values (defaults to config.METRIC_IDS_WITH_DATA)
        skip_readability: Skip the JSON parse check

    Returns:
        dict: Verification report

    Raises:
        RuntimeError: If any required check fails

    Example:
        >>> report = verify_reference_data(Path("data"))
        >>> report['missing_metric_ids']
        []
    """
    data_dir = Path(data_dir) if data_dir is not None else config.DATA_DIR
    metric_type_ids = list(config.METRIC_IDS_WITH_DATA if metric_type_ids is None else metric_type_ids)

    logger.info("=" * 80)
    logger.info("Reference Data Verification")
    logger.info("=" * 80)

    # Step 1: data directory
    check_directory_exists(data_dir, "Data directory")

    # Step 2: required reference files
    required_paths = [check_required_file(data_dir, rel) for rel in REQUIRED_FILES]

    # Step 3: metric value files
    metric_files = find_metric_value_files(data_dir)
    missing = [m for m in metric_type_ids if m not in metric_files]
    if missing:
        logger.warning(f"⚠️  No values file for metrics {missing}; generated values will be used")
    else:
        logger.info(f"✅ Values files present for all {len(metric_type_ids)} metrics")

    # Step 4: readability
    if not skip_readability:
        unreadable = [
            path.name for path in required_paths + list(metric_files.values())
            if not verify_json_readable(path)
        ]
        if unreadable:
            error_msg = (
                "❌ Some reference files are not valid JSON:\n" +
                "\n".join(f"   - {name}" for name in unreadable)
            )
            logger.error(error_msg)
            raise RuntimeError(error_msg)
        logger.info("✅ All reference files are readable")
    else:
        logger.info("⏭️  Skipping JSON readability checks")

    report = {
        'data_dir': str(data_dir.absolute()),
        'required_files': [str(rel) for rel in REQUIRED_FILES],
        'metric_ids_found': sorted(metric_files),
        'missing_metric_ids': missing,
        'verification_status': 'PASSED',
    }

    logger.info("=" * 80)
    logger.info(f"Status: ✅ {report['verification_status']}")
    logger.info("=" * 80)
    return report


def main(argv: Optional[List[str]] = None) -> int:
    """
    Verify the configured data directory.

    Usage:
        python src/verify_dataset.py
        python src/verify_dataset.py --skip-readability
    """
    argv = sys.argv[1:] if argv is None else argv
    skip_readability = '--skip-readability' in argv

    try:
        verify_reference_data(skip_readability=skip_readability)
        return 0

    except RuntimeError as e:
        logger.error(f"\n❌ VERIFICATION FAILED\n{e}")
        return 1


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    sys.exit(main())
