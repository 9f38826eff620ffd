"""Shared configuration for the intervention planner.

This module centralizes environment variable access, reference constants
and default values so the loaders, the engine and the entry scripts agree.
"""

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent

# Reference data locations
DATA_DIR = Path(os.getenv("PLANNER_DATA_DIR", str(PROJECT_ROOT / "data")))
OUTPUT_DIR = Path(os.getenv("PLANNER_OUTPUT_DIR", str(PROJECT_ROOT / "output")))
DATA_CACHE_DIR = Path(os.getenv("PLANNER_CACHE_DIR", str(PROJECT_ROOT / "data_cache")))

# Optional HTTP source for reference data (empty = local files only)
API_BASE_URL = os.getenv("PLANNER_API_BASE_URL", "").rstrip("/")
HTTP_TIMEOUT = float(os.getenv("PLANNER_HTTP_TIMEOUT", "30"))

# Logging
LOG_LEVEL = os.getenv("PLANNER_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Rule composition policy used when a plan does not say otherwise
DEFAULT_POLICY = os.getenv("PLANNER_DEFAULT_POLICY", "cumulative")

# Reference data layout under DATA_DIR
ORG_UNITS_FILE = Path("orgunits") / "data.json"
INTERVENTION_CATEGORIES_FILE = Path("intervention_categories") / "data.json"
METRIC_TYPES_FILE = Path("metric_types") / "data.json"
METRIC_VALUES_DIR = Path("metricvalues")

# Metric types that ship a values file
METRIC_IDS_WITH_DATA = [404, 406, 407, 410, 411, 412, 413, 417, 418, 419, 420]

# Named metric type ids used by the predefined plans
METRIC_SEASONALITY = 413
METRIC_MORTALITY = 407
METRIC_INCIDENCE = 410
METRIC_INSECTICIDE_RESISTANCE = 412
METRIC_PREVALENCE = 411
METRIC_LLIN_USAGE = 416
METRIC_CLINICAL_ATTACK_RATE = 417
METRIC_VECTOR_OUTDOOR_BITING = 418
METRIC_VECTOR_INDOOR_RESTING = 419
METRIC_URBAN_CLASSIFICATION = 420

# Presentation token for a district with no assignments
NO_INTERVENTION_LABEL = "None"
