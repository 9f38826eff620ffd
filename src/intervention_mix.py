"""
Intervention catalog and intervention mix construction.

An intervention mix is the set of interventions a district receives, at most
one per category, together with a display label built from the short names
of the chosen interventions ("CM + Dual AI + R21").
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import NO_INTERVENTION_LABEL

# Configure logging
logger = logging.getLogger(__name__)


MIX_LABEL_SEPARATOR = " + "


@dataclass(frozen=True)
class Intervention:
    id: int
    name: str
    short_name: str
    code: str = ""
    description: str = ""
    category_id: Optional[int] = None


@dataclass(frozen=True)
class InterventionCategory:
    id: int
    name: str
    description: str = ""
    interventions: Tuple[Intervention, ...] = ()


@dataclass(frozen=True)
class InterventionMix:
    """
    Interventions assigned to a district and their display label.

    An empty mix has an empty label; use ``display_mix_label`` to render it.
    """

    category_assignments: Dict[int, int] = field(default_factory=dict)
    display_label: str = ""

    def is_empty(self) -> bool:
        return not self.category_assignments

    def to_serializable(self) -> Dict[str, int]:
        """Category map with string keys, as stored in JSON documents."""
        return {str(k): v for k, v in sorted(self.category_assignments.items())}


EMPTY_MIX = InterventionMix()


def build_intervention_lookup(
    categories: Sequence[InterventionCategory]
) -> Dict[int, Tuple[Intervention, InterventionCategory]]:
    """
    Index the catalog by intervention id.

    Args:
        categories: Intervention categories with their interventions

    Returns:
        dict: intervention id -> (intervention, category)
    """
    lookup = {}
    for category in categories:
        for intervention in category.interventions:
            lookup[intervention.id] = (intervention, category)
    return lookup


def build_mix_label(
    assignments: Dict[int, int],
    categories: Sequence[InterventionCategory]
) -> str:
    """
    Build the display label for a category -> intervention map.

    Category ids are walked in ascending order so the label never depends on
    insertion order. Intervention ids the catalog does not know are skipped.

    Example:
        >>> build_mix_label({41: 86, 37: 78}, categories)
        'CM + Dual AI'
    """
    lookup = build_intervention_lookup(categories)

    names = []
    for category_id in sorted(assignments):
        entry = lookup.get(assignments[category_id])
        if entry is None:
            logger.debug(f"Intervention {assignments[category_id]} not in catalog, omitted from label")
            continue
        names.append(entry[0].short_name)

    return MIX_LABEL_SEPARATOR.join(names)


def create_intervention_mix(
    selections: Dict[int, int],
    categories: Sequence[InterventionCategory]
) -> InterventionMix:
    """
    Build an intervention mix from a category -> intervention selection.

    Args:
        selections: category id -> intervention id
        categories: Intervention catalog

    Returns:
        InterventionMix: The same assignments plus their label
    """
    assignments = {int(k): int(v) for k, v in selections.items()}
    return InterventionMix(
        category_assignments=assignments,
        display_label=build_mix_label(assignments, categories)
    )


def merge_intervention_mixes(
    existing: Optional[InterventionMix],
    incoming: InterventionMix,
    categories: Sequence[InterventionCategory]
) -> InterventionMix:
    """
    Merge a new mix onto an existing one.

    Categories in ``incoming`` override the same categories in ``existing``;
    other categories are kept. The label is rebuilt from the merged map.

    Args:
        existing: Current mix, or None
        incoming: Mix to apply on top
        categories: Intervention catalog

    Returns:
        InterventionMix: Merged mix (``incoming`` itself when nothing exists)
    """
    if existing is None:
        return incoming

    merged = dict(existing.category_assignments)
    merged.update(incoming.category_assignments)
    return InterventionMix(
        category_assignments=merged,
        display_label=build_mix_label(merged, categories)
    )


def display_mix_label(label: str) -> str:
    """Label for display, with the empty mix shown as "None"."""
    return label if label else NO_INTERVENTION_LABEL


def assignments_from_serializable(mapping: Optional[Dict[Any, Any]]) -> Dict[int, int]:
    """Convert a string-keyed category map back to integer keys."""
    if not mapping:
        return {}
    return {int(k): int(v) for k, v in mapping.items()}


def list_interventions(categories: Sequence[InterventionCategory]) -> List[Tuple[InterventionCategory, Intervention]]:
    """Flatten the catalog into (category, intervention) pairs in catalog order."""
    return [
        (category, intervention)
        for category in categories
        for intervention in category.interventions
    ]
