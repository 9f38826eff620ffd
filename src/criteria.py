"""
Criterion evaluation for district targeting rules.

A criterion compares one metric value of a district against a threshold that
was typed in by a planner. Thresholds are kept as raw text on the rule and
parsed at evaluation time, so a half-typed criterion never matches anything.
"""

import logging
import math
from typing import Any, Dict, Optional

import pandas as pd

# Configure logging
logger = logging.getLogger(__name__)


OPERATORS = ('<', '<=', '=', '>=', '>')

# Glyphs and aliases accepted from guideline documents
OPERATOR_ALIASES = {
    '≥': '>=',
    '≤': '<=',
    '==': '=',
    '=>': '>=',
    '=<': '<=',
}


def normalize_operator(operator: str) -> str:
    """
    Map an operator onto the canonical set ('<', '<=', '=', '>=', '>').

    Unknown operators are returned stripped but otherwise unchanged, and
    will simply never match during evaluation.
    """
    if operator is None:
        return ''
    operator = operator.strip()
    return OPERATOR_ALIASES.get(operator, operator)


def parse_threshold(value: Any) -> Optional[float]:
    """
    Parse a raw threshold into a finite number.

    Args:
        value: Threshold as authored (e.g. "0.6", ".10", "5") or a number

    Returns:
        float, or None when the value is empty, not numeric or not finite

    Example:
        >>> parse_threshold(".10")
        0.1
        >>> parse_threshold("") is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None

    if not math.isfinite(number):
        return None
    return number


def evaluate_condition(value: Any, operator: str, threshold: float) -> bool:
    """
    Evaluate a single comparison between a metric value and a threshold.

    Args:
        value: Metric value for the district
        operator: One of '<', '<=', '=', '>=', '>'
        threshold: Parsed threshold

    Returns:
        bool: True if the comparison holds, False otherwise (including for
        missing values and unknown operators)
    """
    # Handle missing values
    if value is None or pd.isna(value):
        return False

    if operator == '<':
        return value < threshold
    elif operator == '<=':
        return value <= threshold
    elif operator == '=':
        return value == threshold
    elif operator == '>=':
        return value >= threshold
    elif operator == '>':
        return value > threshold
    else:
        logger.warning(f"Unknown operator: {operator}")
        return False


def is_criterion_complete(criterion) -> bool:
    """
    Check that a criterion names a metric and carries a usable threshold.

    Args:
        criterion: Object with ``metric_type_id`` and ``value`` attributes

    Returns:
        bool: True if the criterion can be evaluated
    """
    if criterion.metric_type_id is None:
        return False
    return parse_threshold(criterion.value) is not None


def evaluate_criterion(criterion, metrics_for_district: Optional[Dict[int, float]]) -> bool:
    """
    Evaluate one criterion against the metric values of a single district.

    An incomplete criterion, or a district without a value for the metric,
    never matches.

    Args:
        criterion: Criterion with ``metric_type_id``, ``operator`` and ``value``
        metrics_for_district: metric type id -> value for the district

    Returns:
        bool: True if the district satisfies the criterion
    """
    threshold = parse_threshold(criterion.value)
    if criterion.metric_type_id is None or threshold is None:
        return False

    if not metrics_for_district or criterion.metric_type_id not in metrics_for_district:
        logger.debug(f"Metric {criterion.metric_type_id} missing for district, criterion fails")
        return False

    value = metrics_for_district[criterion.metric_type_id]
    return evaluate_condition(value, criterion.operator, threshold)
