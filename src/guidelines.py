"""
WHO intervention guidelines and rule generation.

A guideline names one intervention and the metric thresholds under which it
is recommended. Guidelines come in variations (conservative, targeted, ...)
that share the same interventions but use different thresholds. A variation
can be turned into an ordered rule list: a default rule for every district,
then one rule per mapped intervention. Stacking is left to the cumulative
composition policy.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from config import (
    METRIC_CLINICAL_ATTACK_RATE,
    METRIC_INCIDENCE,
    METRIC_INSECTICIDE_RESISTANCE,
    METRIC_LLIN_USAGE,
    METRIC_PREVALENCE,
    METRIC_SEASONALITY,
    METRIC_VECTOR_INDOOR_RESTING,
    METRIC_VECTOR_OUTDOOR_BITING,
)
from criteria import normalize_operator
from predefined_plans import (
    CATEGORY_CHEMOPREVENTION,
    CATEGORY_CM,
    CATEGORY_IPTP,
    CATEGORY_NETS_CAMPAIGN,
    CATEGORY_NETS_ROUTINE,
    CATEGORY_VACCINATION,
    INTERVENTION_CM,
    INTERVENTION_IPTP,
    INTERVENTION_PBO_CAMPAIGN,
    INTERVENTION_PBO_ROUTINE,
    INTERVENTION_PMC,
    INTERVENTION_R21,
    INTERVENTION_SMC,
    INTERVENTION_STANDARD_PYRETHROID_CAMPAIGN,
    INTERVENTION_STANDARD_PYRETHROID_ROUTINE,
    PlanDefinition,
)
from rules_engine import Criterion, Rule

# Configure logging
logger = logging.getLogger(__name__)


METRIC_DATA_SOURCES = {
    METRIC_INCIDENCE: "DHIS",
    METRIC_PREVALENCE: "MAP",
    METRIC_SEASONALITY: "DHIS",
    METRIC_INSECTICIDE_RESISTANCE: "MAP",
    METRIC_CLINICAL_ATTACK_RATE: "MIS",
    METRIC_VECTOR_OUTDOOR_BITING: "MAP",
    METRIC_VECTOR_INDOOR_RESTING: "MAP",
    METRIC_LLIN_USAGE: "DHS",
}

METRIC_DISPLAY_NAMES = {
    METRIC_INCIDENCE: "Incidence Rate",
    METRIC_PREVALENCE: "PfPr2-10 (Prevalence)",
    METRIC_SEASONALITY: "Seasonality Index",
    METRIC_INSECTICIDE_RESISTANCE: "Insecticide Resistance",
    METRIC_CLINICAL_ATTACK_RATE: "Clinical Attack Rate",
    METRIC_VECTOR_OUTDOOR_BITING: "Vector Outdoor Biting",
    METRIC_VECTOR_INDOOR_RESTING: "Vector Indoor Resting",
    METRIC_LLIN_USAGE: "LLIN Usage",
}

DATA_SOURCE_NAMES = {
    "DHIS": "District Health Information System",
    "MAP": "Malaria Atlas Project",
    "MIS": "Malaria Indicator Survey",
    "DHS": "Demographic and Health Surveys",
}

# Metrics stored as 0-1 fractions, shown as percentages
FRACTION_METRICS = {
    METRIC_PREVALENCE,
    METRIC_SEASONALITY,
    METRIC_INSECTICIDE_RESISTANCE,
    METRIC_VECTOR_OUTDOOR_BITING,
    METRIC_VECTOR_INDOOR_RESTING,
    METRIC_LLIN_USAGE,
}

# guideline id -> (category id, intervention id); guidelines not listed produce no rule
GUIDELINE_INTERVENTION_MAP = {
    "itns-llins": (CATEGORY_NETS_CAMPAIGN, INTERVENTION_PBO_CAMPAIGN),
    "smc": (CATEGORY_CHEMOPREVENTION, INTERVENTION_SMC),
    "pmc": (CATEGORY_CHEMOPREVENTION, INTERVENTION_PMC),
    "iptp": (CATEGORY_IPTP, INTERVENTION_IPTP),
    "rtss": (CATEGORY_VACCINATION, INTERVENTION_R21),
}

GUIDELINE_RULE_COLORS = {
    "default": "#B0BEC5",
    "itns-llins": "#FFB74D",
    "rtss": "#FFD54F",
    "smc": "#81C784",
    "pmc": "#B39DDB",
    "iptp": "#4DD0E1",
}

FALLBACK_RULE_COLOR = "#9ca3af"


@dataclass(frozen=True)
class GuidelineCriterion:
    id: str
    indicator_name: str
    metric_type_id: int
    operator: str
    threshold: str
    data_source: str


@dataclass(frozen=True)
class InterventionGuideline:
    id: str
    name: str
    description: str
    criteria: Tuple[GuidelineCriterion, ...]


@dataclass(frozen=True)
class GuidelineVariation:
    """A named set of guidelines sharing one strategic focus."""

    id: str
    name: str
    description: str
    focus: str
    guidelines: Tuple[InterventionGuideline, ...]


def _guideline(
    guideline_id: str,
    name: str,
    description: str,
    *specs: Tuple[str, int, str, str]
) -> InterventionGuideline:
    """Guideline from (criterion id suffix, metric id, operator, threshold) tuples."""
    return InterventionGuideline(
        id=guideline_id,
        name=name,
        description=description,
        criteria=tuple(
            GuidelineCriterion(
                id=f"{guideline_id.split('-')[0]}-{suffix}",
                indicator_name=METRIC_DISPLAY_NAMES.get(metric, str(metric)),
                metric_type_id=metric,
                operator=op,
                threshold=threshold,
                data_source=METRIC_DATA_SOURCES.get(metric, ""),
            )
            for suffix, metric, op, threshold in specs
        ),
    )


CONSERVATIVE_VARIATION = GuidelineVariation(
    id="conservative",
    name="Conservative (Standard WHO)",
    description="Standard WHO-recommended thresholds with all interventions included",
    focus="Most restrictive criteria following official WHO guidelines",
    guidelines=(
        _guideline(
            "itns-llins", "ITNs/LLINS",
            "Long-lasting insecticidal nets for malaria prevention in areas with indoor-biting vectors",
            ("incidence", METRIC_INCIDENCE, ">", "100"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.01"),
            ("indoor-biting", METRIC_VECTOR_OUTDOOR_BITING, "<", "0.5"),
        ),
        _guideline(
            "smc", "SMC (4 cycles)",
            "Seasonal Malaria Chemoprevention for high-burden seasonal areas",
            ("seasonality", METRIC_SEASONALITY, "≥", "0.6"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.10"),
            ("attack-rate", METRIC_CLINICAL_ATTACK_RATE, ">", "0.1"),
        ),
        _guideline(
            "pmc", "PMC",
            "Perennial Malaria Chemoprevention for high-burden non-seasonal areas",
            ("incidence", METRIC_INCIDENCE, ">", "250"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.10"),
            ("low-seasonality", METRIC_SEASONALITY, "<", "0.6"),
        ),
        _guideline(
            "iptp", "IPTp",
            "Intermittent Preventive Treatment in Pregnancy for moderate-to-high transmission areas",
            ("incidence", METRIC_INCIDENCE, ">", "250"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.10"),
        ),
        _guideline(
            "rtss", "RTS,S Vaccination",
            "Malaria vaccine for areas with moderate-to-high transmission",
            ("incidence", METRIC_INCIDENCE, ">", "250"),
        ),
    ),
)

MODERATE_VARIATION = GuidelineVariation(
    id="moderate",
    name="Moderate (Resource-Constrained)",
    description="Focus on most cost-effective interventions with higher thresholds",
    focus="Optimized for resource-constrained settings",
    guidelines=(
        _guideline(
            "itns-llins", "ITNs/LLINS", "Long-lasting insecticidal nets for malaria prevention",
            ("incidence", METRIC_INCIDENCE, ">", "150"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.02"),
        ),
        _guideline(
            "smc", "SMC (4 cycles)", "Seasonal Malaria Chemoprevention for high-burden seasonal areas",
            ("seasonality", METRIC_SEASONALITY, "≥", "0.6"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.15"),
        ),
        _guideline(
            "pmc", "PMC", "Perennial Malaria Chemoprevention for high-burden non-seasonal areas",
            ("incidence", METRIC_INCIDENCE, ">", "300"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.15"),
            ("low-seasonality", METRIC_SEASONALITY, "<", "0.6"),
        ),
        _guideline(
            "iptp", "IPTp", "Intermittent Preventive Treatment in Pregnancy",
            ("incidence", METRIC_INCIDENCE, ">", "300"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.15"),
        ),
        _guideline(
            "rtss", "RTS,S Vaccination", "Malaria vaccine for areas with moderate-to-high transmission",
            ("incidence", METRIC_INCIDENCE, ">", "300"),
        ),
    ),
)

AGGRESSIVE_VARIATION = GuidelineVariation(
    id="aggressive",
    name="Aggressive (High-Risk Areas)",
    description="Lower thresholds for maximum coverage in high-burden areas",
    focus="Cast a wider net to maximize intervention coverage",
    guidelines=(
        _guideline(
            "itns-llins", "ITNs/LLINS", "Long-lasting insecticidal nets for malaria prevention",
            ("incidence", METRIC_INCIDENCE, ">", "50"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.005"),
        ),
        _guideline(
            "smc", "SMC (4 cycles)", "Seasonal Malaria Chemoprevention for seasonal areas",
            ("seasonality", METRIC_SEASONALITY, "≥", "0.5"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.05"),
        ),
        _guideline(
            "pmc", "PMC", "Perennial Malaria Chemoprevention for non-seasonal areas",
            ("incidence", METRIC_INCIDENCE, ">", "150"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.05"),
            ("low-seasonality", METRIC_SEASONALITY, "<", "0.6"),
        ),
        _guideline(
            "iptp", "IPTp", "Intermittent Preventive Treatment in Pregnancy",
            ("incidence", METRIC_INCIDENCE, ">", "150"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.05"),
        ),
        _guideline(
            "rtss", "RTS,S Vaccination", "Malaria vaccine for transmission areas",
            ("incidence", METRIC_INCIDENCE, ">", "150"),
        ),
    ),
)

TARGETED_VARIATION = GuidelineVariation(
    id="targeted",
    name="Targeted (Seasonal Focus)",
    description="Emphasis on seasonal interventions with stricter seasonality requirements",
    focus="Optimized for areas with strong seasonal transmission patterns",
    guidelines=(
        _guideline(
            "itns-llins", "ITNs/LLINS", "Long-lasting insecticidal nets for malaria prevention",
            ("incidence", METRIC_INCIDENCE, ">", "100"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.01"),
        ),
        _guideline(
            "smc", "SMC (4 cycles)",
            "Seasonal Malaria Chemoprevention with stricter seasonality requirements",
            ("seasonality", METRIC_SEASONALITY, "≥", "0.7"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.15"),
            ("attack-rate", METRIC_CLINICAL_ATTACK_RATE, ">", "0.15"),
        ),
        _guideline(
            "iptp", "IPTp", "Intermittent Preventive Treatment in Pregnancy",
            ("incidence", METRIC_INCIDENCE, ">", "250"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.10"),
        ),
        _guideline(
            "rtss", "RTS,S Vaccination", "Malaria vaccine for moderate-to-high transmission areas",
            ("incidence", METRIC_INCIDENCE, ">", "250"),
        ),
    ),
)

ELIMINATION_VARIATION = GuidelineVariation(
    id="elimination",
    name="Elimination Focus (Low Transmission)",
    description="Lower thresholds for areas moving toward malaria elimination",
    focus="Targets low-transmission settings with elimination goals",
    guidelines=(
        _guideline(
            "itns-llins", "ITNs/LLINS", "Long-lasting insecticidal nets for low transmission prevention",
            ("incidence", METRIC_INCIDENCE, ">", "50"),
            ("prevalence", METRIC_PREVALENCE, ">", "0.005"),
        ),
        _guideline(
            "smc", "SMC (4 cycles)", "Seasonal Malaria Chemoprevention for elimination",
            ("seasonality", METRIC_SEASONALITY, "≥", "0.6"),
            ("attack-rate", METRIC_CLINICAL_ATTACK_RATE, ">", "0.05"),
        ),
        _guideline(
            "pmc", "PMC", "Perennial Malaria Chemoprevention for elimination",
            ("incidence", METRIC_INCIDENCE, ">", "100"),
        ),
        _guideline(
            "iptp", "IPTp", "Intermittent Preventive Treatment in Pregnancy",
            ("incidence", METRIC_INCIDENCE, ">", "100"),
        ),
        _guideline(
            "rtss", "RTS,S Vaccination", "Malaria vaccine for elimination settings",
            ("incidence", METRIC_INCIDENCE, ">", "100"),
        ),
    ),
)

# The first variation is the default
GUIDELINE_VARIATIONS = [
    CONSERVATIVE_VARIATION,
    TARGETED_VARIATION,
    MODERATE_VARIATION,
    AGGRESSIVE_VARIATION,
    ELIMINATION_VARIATION,
]


def get_variation(variation_id: Optional[str] = None) -> GuidelineVariation:
    """Look up a variation; unknown or missing ids give the first (conservative) one."""
    if variation_id:
        for variation in GUIDELINE_VARIATIONS:
            if variation.id == variation_id:
                return variation
        logger.warning(f"Unknown guideline variation {variation_id!r}, using {GUIDELINE_VARIATIONS[0].id}")
    return GUIDELINE_VARIATIONS[0]


def format_threshold(criterion: GuidelineCriterion) -> str:
    """
    Display form of a guideline threshold.

    Example:
        >>> format_threshold(GuidelineCriterion("x", "", METRIC_SEASONALITY, "≥", "0.6", "DHIS"))
        '≥ 60%'
    """
    value = criterion.threshold
    try:
        number = float(value)
    except ValueError:
        return f"{criterion.operator} {value}"

    if criterion.metric_type_id in FRACTION_METRICS and number < 1:
        return f"{criterion.operator} {number * 100:.0f}%"
    if criterion.metric_type_id == METRIC_CLINICAL_ATTACK_RATE:
        return f"{criterion.operator} {value} episodes/child/year"
    if criterion.metric_type_id == METRIC_INCIDENCE:
        return f"{criterion.operator} {value}/1,000/year"
    return f"{criterion.operator} {value}"


def _rule_criteria(guideline: InterventionGuideline) -> Tuple[Criterion, ...]:
    return tuple(
        Criterion(
            id=c.id,
            metric_type_id=c.metric_type_id,
            operator=normalize_operator(c.operator),
            value=c.threshold,
        )
        for c in guideline.criteria
    )


def generate_rules_from_guidelines(variation_id: Optional[str] = None) -> List[Rule]:
    """
    Turn a guideline variation into an ordered rule list.

    The first rule gives every district case management and standard
    pyrethroid nets. Each guideline with a known intervention then becomes one
    rule carrying only that intervention (ITN guidelines also assign routine
    PBO nets). Guidelines without a mapped intervention are skipped.

    Args:
        variation_id: Variation to use (default: the first variation)

    Returns:
        list: Rules, default rule first
    """
    variation = get_variation(variation_id)

    rules = [
        Rule(
            id="generated-default",
            title="Default - Standard Prevention",
            color=GUIDELINE_RULE_COLORS["default"],
            interventions_by_category={
                CATEGORY_NETS_CAMPAIGN: INTERVENTION_STANDARD_PYRETHROID_CAMPAIGN,
                CATEGORY_NETS_ROUTINE: INTERVENTION_STANDARD_PYRETHROID_ROUTINE,
                CATEGORY_CM: INTERVENTION_CM,
            },
            is_all_districts=True,
        )
    ]

    for guideline in variation.guidelines:
        mapping = GUIDELINE_INTERVENTION_MAP.get(guideline.id)
        if mapping is None:
            logger.debug(f"Guideline {guideline.id} has no intervention mapping, skipped")
            continue

        category_id, intervention_id = mapping
        interventions: Dict[int, int] = {category_id: intervention_id}
        if guideline.id == "itns-llins":
            interventions[CATEGORY_NETS_ROUTINE] = INTERVENTION_PBO_ROUTINE

        rules.append(Rule(
            id=f"generated-{guideline.id}",
            title=guideline.name,
            color=GUIDELINE_RULE_COLORS.get(guideline.id, FALLBACK_RULE_COLOR),
            criteria=_rule_criteria(guideline),
            interventions_by_category=interventions,
        ))

    logger.info(f"Generated {len(rules)} rules from guideline variation '{variation.id}'")
    return rules


def build_guideline_plan(variation_id: Optional[str] = None) -> PlanDefinition:
    """Plan wrapping the rules generated from one guideline variation."""
    variation = get_variation(variation_id)
    return PlanDefinition(
        id=f"guidelines-{variation.id}",
        name=f"Guidelines: {variation.name}",
        description=variation.description,
        rules=tuple(generate_rules_from_guidelines(variation.id)),
    )
