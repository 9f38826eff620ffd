"""
Predefined intervention plans.

Each plan is an ordered rule list. The first rule of a plan is usually an
all-districts default that gives every district the standard package, and the
later rules target districts by their metric values.

Intervention ids by category:
- 37 Case Management: 78 CM, 79 CM Subsidy
- 38 IPTp: 80 IPTp (SP)
- 39 PMC & SMC: 81 PMC, 82 SMC
- 40 ITN Campaign: 83 Dual AI, 84 PBO, 85 Standard Pyrethroid
- 41 ITN Routine: 86 Dual AI, 87 PBO, 88 Standard Pyrethroid
- 42 Vaccination: 89 R21
- 43 Vector Control: 90 LSM
- 44 IRS: 91 Pyrethroid, 92 Organophosphate, 93 Carbamate
- 45 MDA: 94 Single Round, 95 Multiple Rounds
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from config import (
    METRIC_CLINICAL_ATTACK_RATE,
    METRIC_INCIDENCE,
    METRIC_INSECTICIDE_RESISTANCE,
    METRIC_LLIN_USAGE,
    METRIC_MORTALITY,
    METRIC_PREVALENCE,
    METRIC_SEASONALITY,
    METRIC_VECTOR_INDOOR_RESTING,
    METRIC_VECTOR_OUTDOOR_BITING,
)
from rules_engine import Criterion, Rule

# Configure logging
logger = logging.getLogger(__name__)


# Category ids
CATEGORY_CM = 37
CATEGORY_IPTP = 38
CATEGORY_CHEMOPREVENTION = 39   # PMC & SMC
CATEGORY_NETS_CAMPAIGN = 40
CATEGORY_NETS_ROUTINE = 41
CATEGORY_VACCINATION = 42
CATEGORY_VECTOR_CONTROL = 43    # LSM
CATEGORY_IRS = 44
CATEGORY_MDA = 45

# Intervention ids
INTERVENTION_CM = 78
INTERVENTION_CM_SUBSIDY = 79
INTERVENTION_IPTP = 80
INTERVENTION_PMC = 81
INTERVENTION_SMC = 82
INTERVENTION_DUAL_AI_CAMPAIGN = 83
INTERVENTION_PBO_CAMPAIGN = 84
INTERVENTION_STANDARD_PYRETHROID_CAMPAIGN = 85
INTERVENTION_DUAL_AI_ROUTINE = 86
INTERVENTION_PBO_ROUTINE = 87
INTERVENTION_STANDARD_PYRETHROID_ROUTINE = 88
INTERVENTION_R21 = 89
INTERVENTION_LSM = 90
INTERVENTION_IRS_PYRETHROID = 91
INTERVENTION_IRS_ORGANOPHOSPHATE = 92
INTERVENTION_IRS_CARBAMATE = 93
INTERVENTION_MDA_SINGLE = 94
INTERVENTION_MDA_MULTIPLE = 95

RULE_COLORS = [
    "#22c55e",  # green
    "#3b82f6",  # blue
    "#f97316",  # orange
    "#a855f7",  # purple
    "#9ca3af",  # gray, default rule
]
DEFAULT_RULE_COLOR = RULE_COLORS[4]

# Standard package given to every district by the default rules
STANDARD_PACKAGE = {
    CATEGORY_NETS_CAMPAIGN: INTERVENTION_STANDARD_PYRETHROID_CAMPAIGN,
    CATEGORY_NETS_ROUTINE: INTERVENTION_STANDARD_PYRETHROID_ROUTINE,
    CATEGORY_CM: INTERVENTION_CM,
}

PBO_NETS_WITH_CM = {
    CATEGORY_NETS_CAMPAIGN: INTERVENTION_PBO_CAMPAIGN,
    CATEGORY_NETS_ROUTINE: INTERVENTION_PBO_ROUTINE,
    CATEGORY_CM: INTERVENTION_CM,
}

DUAL_AI_NETS_WITH_CM = {
    CATEGORY_NETS_CAMPAIGN: INTERVENTION_DUAL_AI_CAMPAIGN,
    CATEGORY_NETS_ROUTINE: INTERVENTION_DUAL_AI_ROUTINE,
    CATEGORY_CM: INTERVENTION_CM,
}


@dataclass(frozen=True)
class PlanDefinition:
    id: str
    name: str
    description: str
    rules: Tuple[Rule, ...]


def _criteria(*specs: Tuple[str, int, str, str]) -> Tuple[Criterion, ...]:
    return tuple(
        Criterion(id=cid, metric_type_id=metric, operator=op, value=value)
        for cid, metric, op, value in specs
    )


def _default_rule(rule_id: str, title: str = "Default", color: str = DEFAULT_RULE_COLOR) -> Rule:
    return Rule(
        id=rule_id,
        title=title,
        color=color,
        interventions_by_category=dict(STANDARD_PACKAGE),
        is_all_districts=True,
    )


def _with(base: Dict[int, int], *extra: Tuple[int, int]) -> Dict[int, int]:
    """Payload made of extra (category, intervention) pairs plus a base package."""
    payload = dict(extra)
    payload.update(base)
    return payload


NSP_2026_30_PLAN = PlanDefinition(
    id="nsp-2026-30",
    name="NSP 2026-30",
    description="National Strategic Plan 2026-2030",
    rules=(
        _default_rule("nsp-default"),
        Rule(
            id="nsp-rule-1",
            title="High Seasonality, High Mortality",
            color=RULE_COLORS[0],
            criteria=_criteria(
                ("nsp-r1-c1", METRIC_SEASONALITY, ">=", "0.6"),
                ("nsp-r1-c2", METRIC_MORTALITY, ">=", "5"),
            ),
            interventions_by_category={
                CATEGORY_NETS_CAMPAIGN: INTERVENTION_DUAL_AI_CAMPAIGN,
                CATEGORY_NETS_ROUTINE: INTERVENTION_DUAL_AI_ROUTINE,
                CATEGORY_CHEMOPREVENTION: INTERVENTION_SMC,
                CATEGORY_VACCINATION: INTERVENTION_R21,
            },
        ),
        Rule(
            id="nsp-rule-2",
            title="Low Seasonality, High Incidence, High Mortality, High Resistance",
            color=RULE_COLORS[1],
            criteria=_criteria(
                ("nsp-r2-c1", METRIC_SEASONALITY, "<", "0.6"),
                ("nsp-r2-c2", METRIC_INCIDENCE, ">=", "300"),
                ("nsp-r2-c3", METRIC_MORTALITY, ">=", "5"),
                ("nsp-r2-c4", METRIC_INSECTICIDE_RESISTANCE, ">=", "0.75"),
            ),
            interventions_by_category={
                CATEGORY_NETS_CAMPAIGN: INTERVENTION_DUAL_AI_CAMPAIGN,
                CATEGORY_NETS_ROUTINE: INTERVENTION_DUAL_AI_ROUTINE,
                CATEGORY_CHEMOPREVENTION: INTERVENTION_PMC,
                CATEGORY_VACCINATION: INTERVENTION_R21,
            },
        ),
        Rule(
            id="nsp-rule-3",
            title="Low Seasonality, High Incidence, Low Mortality, High Resistance",
            color=RULE_COLORS[2],
            criteria=_criteria(
                ("nsp-r3-c1", METRIC_SEASONALITY, "<", "0.6"),
                ("nsp-r3-c2", METRIC_INCIDENCE, ">=", "300"),
                ("nsp-r3-c3", METRIC_MORTALITY, "<", "5"),
                ("nsp-r3-c4", METRIC_INSECTICIDE_RESISTANCE, ">=", "0.75"),
            ),
            interventions_by_category={
                CATEGORY_NETS_CAMPAIGN: INTERVENTION_DUAL_AI_CAMPAIGN,
                CATEGORY_NETS_ROUTINE: INTERVENTION_DUAL_AI_ROUTINE,
                CATEGORY_CHEMOPREVENTION: INTERVENTION_PMC,
            },
        ),
    ),
)


BAU_PLAN = PlanDefinition(
    id="bau",
    name="BAU",
    description="Business As Usual baseline plan",
    rules=(
        _default_rule("bau-default"),
        Rule(
            id="bau-rule-1",
            title="Low Seasonality, High Incidence, Low Mortality, High Resistance",
            color=RULE_COLORS[0],
            criteria=_criteria(
                ("bau-r1-c1", METRIC_SEASONALITY, "<", "0.7"),
                ("bau-r1-c2", METRIC_INCIDENCE, ">=", "500"),
                ("bau-r1-c3", METRIC_MORTALITY, "<", "10"),
                ("bau-r1-c4", METRIC_INSECTICIDE_RESISTANCE, ">=", "0.75"),
            ),
            interventions_by_category={
                CATEGORY_NETS_CAMPAIGN: INTERVENTION_DUAL_AI_CAMPAIGN,
                CATEGORY_NETS_ROUTINE: INTERVENTION_DUAL_AI_ROUTINE,
                CATEGORY_CHEMOPREVENTION: INTERVENTION_PMC,
                CATEGORY_CM: INTERVENTION_CM,
            },
        ),
    ),
)


WHO_GUIDELINES_PLAN = PlanDefinition(
    id="who-guidelines",
    name="WHO Guidelines",
    description=(
        "WHO-recommended intervention criteria for malaria control (2024). "
        "All interventions fully implemented."
    ),
    rules=(
        _default_rule("who-default", "Default - Standard Prevention"),
        Rule(
            id="who-itns",
            title="ITNs/LLINS",
            color="#f97316",
            criteria=_criteria(
                ("itns-incidence", METRIC_INCIDENCE, ">", "100"),
                ("itns-prevalence", METRIC_PREVALENCE, ">", "0"),
                # under half of biting happens outdoors
                ("itns-indoor-biting", METRIC_VECTOR_OUTDOOR_BITING, "<", "0.5"),
            ),
            interventions_by_category=dict(PBO_NETS_WITH_CM),
        ),
        Rule(
            id="who-irs",
            title="IRS",
            color="#3b82f6",
            criteria=_criteria(
                ("irs-incidence", METRIC_INCIDENCE, ">", "250"),
                ("irs-prevalence", METRIC_PREVALENCE, ">", ".10"),
                ("irs-llin-low", METRIC_LLIN_USAGE, "<", "0.4"),
                ("irs-resistance", METRIC_INSECTICIDE_RESISTANCE, ">", "0.5"),
                ("irs-indoor-resting", METRIC_VECTOR_INDOOR_RESTING, ">", "0.5"),
            ),
            interventions_by_category=_with(PBO_NETS_WITH_CM, (CATEGORY_IRS, INTERVENTION_IRS_ORGANOPHOSPHATE)),
        ),
        Rule(
            id="who-smc",
            title="SMC (4 cycles)",
            color="#22c55e",
            criteria=_criteria(
                ("smc-seasonality", METRIC_SEASONALITY, ">=", "0.6"),
                ("smc-prevalence", METRIC_PREVALENCE, ">", ".10"),
                ("smc-attack-rate", METRIC_CLINICAL_ATTACK_RATE, ">", "0.1"),
            ),
            interventions_by_category=_with(PBO_NETS_WITH_CM, (CATEGORY_CHEMOPREVENTION, INTERVENTION_SMC)),
        ),
        Rule(
            id="who-pmc",
            title="PMC",
            color="#a855f7",
            criteria=_criteria(
                ("pmc-incidence", METRIC_INCIDENCE, ">", "250"),
                ("pmc-prevalence", METRIC_PREVALENCE, ">", ".10"),
                ("pmc-low-seasonality", METRIC_SEASONALITY, "<", "0.6"),
            ),
            interventions_by_category=_with(PBO_NETS_WITH_CM, (CATEGORY_CHEMOPREVENTION, INTERVENTION_PMC)),
        ),
        Rule(
            id="who-iptp",
            title="IPTp",
            color="#06b6d4",
            criteria=_criteria(
                ("iptp-incidence", METRIC_INCIDENCE, ">", "250"),
                ("iptp-prevalence", METRIC_PREVALENCE, ">", ".10"),
            ),
            interventions_by_category=_with(PBO_NETS_WITH_CM, (CATEGORY_IPTP, INTERVENTION_IPTP)),
        ),
        Rule(
            id="who-mda",
            title="MDA",
            color="#ec4899",
            criteria=_criteria(
                ("mda-incidence", METRIC_INCIDENCE, ">", "450"),
                ("mda-prevalence", METRIC_PREVALENCE, ">", ".35"),
            ),
            interventions_by_category=_with(DUAL_AI_NETS_WITH_CM, (CATEGORY_MDA, INTERVENTION_MDA_MULTIPLE)),
        ),
        Rule(
            id="who-rtss",
            title="RTS,S Vaccination",
            color="#f59e0b",
            criteria=_criteria(
                ("rtss-incidence", METRIC_INCIDENCE, ">", "250"),
            ),
            interventions_by_category=_with(PBO_NETS_WITH_CM, (CATEGORY_VACCINATION, INTERVENTION_R21)),
        ),
    ),
)


WHO_GUIDELINES_CUMULATIVE_PLAN = PlanDefinition(
    id="who-guidelines-cumulative",
    name="WHO Guidelines (Cumulative)",
    description=(
        "WHO-recommended interventions with cumulative stacking - higher burden "
        "areas receive all applicable interventions."
    ),
    rules=(
        _default_rule("who-cum-default", "Default - Standard Prevention"),
        Rule(
            id="who-cum-itns",
            title="ITNs/LLINS",
            color="#f97316",
            criteria=_criteria(
                ("itns-incidence", METRIC_INCIDENCE, ">", "100"),
                ("itns-prevalence", METRIC_PREVALENCE, ">", "0.01"),
                ("itns-indoor-biting", METRIC_VECTOR_OUTDOOR_BITING, "<", "0.5"),
            ),
            interventions_by_category=dict(PBO_NETS_WITH_CM),
        ),
        Rule(
            id="who-cum-rtss",
            title="RTS,S Vaccination",
            color="#f59e0b",
            criteria=_criteria(
                ("rtss-incidence", METRIC_INCIDENCE, ">", "250"),
            ),
            interventions_by_category=_with(PBO_NETS_WITH_CM, (CATEGORY_VACCINATION, INTERVENTION_R21)),
        ),
        Rule(
            id="who-cum-irs",
            title="IRS + R21",
            color="#3b82f6",
            criteria=_criteria(
                ("irs-incidence", METRIC_INCIDENCE, ">", "250"),
                ("irs-prevalence", METRIC_PREVALENCE, ">", "0.10"),
                ("irs-resistance", METRIC_INSECTICIDE_RESISTANCE, ">", "0.5"),
                ("irs-indoor-resting", METRIC_VECTOR_INDOOR_RESTING, ">", "0.5"),
            ),
            interventions_by_category=_with(
                PBO_NETS_WITH_CM,
                (CATEGORY_IRS, INTERVENTION_IRS_ORGANOPHOSPHATE),
                (CATEGORY_VACCINATION, INTERVENTION_R21),
            ),
        ),
        Rule(
            id="who-cum-smc",
            title="SMC + R21",
            color="#22c55e",
            criteria=_criteria(
                ("smc-seasonality", METRIC_SEASONALITY, ">=", "0.6"),
                ("smc-prevalence", METRIC_PREVALENCE, ">", "0.10"),
                ("smc-attack-rate", METRIC_CLINICAL_ATTACK_RATE, ">", "0.1"),
            ),
            interventions_by_category=_with(
                PBO_NETS_WITH_CM,
                (CATEGORY_CHEMOPREVENTION, INTERVENTION_SMC),
                (CATEGORY_VACCINATION, INTERVENTION_R21),
            ),
        ),
        Rule(
            id="who-cum-pmc-iptp",
            title="PMC + IPTp + R21",
            color="#a855f7",
            criteria=_criteria(
                ("pmc-incidence", METRIC_INCIDENCE, ">", "250"),
                ("pmc-prevalence", METRIC_PREVALENCE, ">", "0.10"),
                ("pmc-low-seasonality", METRIC_SEASONALITY, "<", "0.6"),
            ),
            interventions_by_category=_with(
                PBO_NETS_WITH_CM,
                (CATEGORY_CHEMOPREVENTION, INTERVENTION_PMC),
                (CATEGORY_IPTP, INTERVENTION_IPTP),
                (CATEGORY_VACCINATION, INTERVENTION_R21),
            ),
        ),
        Rule(
            id="who-cum-mda",
            title="MDA + R21",
            color="#ec4899",
            criteria=_criteria(
                ("mda-incidence", METRIC_INCIDENCE, ">", "450"),
                ("mda-prevalence", METRIC_PREVALENCE, ">", "0.35"),
            ),
            interventions_by_category=_with(
                DUAL_AI_NETS_WITH_CM,
                (CATEGORY_MDA, INTERVENTION_MDA_MULTIPLE),
                (CATEGORY_VACCINATION, INTERVENTION_R21),
            ),
        ),
    ),
)


TEST_PLAN = PlanDefinition(
    id="test",
    name="Test",
    description="Simple test plan with two rules for verifying cumulative mode",
    rules=(
        Rule(
            id="test-rule-1",
            title="High Incidence → R21",
            color=RULE_COLORS[0],
            criteria=_criteria(("test-r1-c1", METRIC_INCIDENCE, ">", "250")),
            interventions_by_category={CATEGORY_VACCINATION: INTERVENTION_R21},
        ),
        Rule(
            id="test-rule-2",
            title="High Seasonality → LSM",
            color=RULE_COLORS[1],
            criteria=_criteria(("test-r2-c1", METRIC_SEASONALITY, ">", "0.6")),
            interventions_by_category={CATEGORY_VECTOR_CONTROL: INTERVENTION_LSM},
        ),
    ),
)


PREDEFINED_PLANS = [
    BAU_PLAN,
    NSP_2026_30_PLAN,
    WHO_GUIDELINES_PLAN,
    WHO_GUIDELINES_CUMULATIVE_PLAN,
    TEST_PLAN,
]


def list_plans() -> List[PlanDefinition]:
    return list(PREDEFINED_PLANS)


def get_plan_by_id(plan_id: str) -> Optional[PlanDefinition]:
    """Look up a predefined plan; None when the id is unknown."""
    for plan in PREDEFINED_PLANS:
        if plan.id == plan_id:
            return plan
    logger.warning(f"Unknown plan id: {plan_id}")
    return None


def get_default_rules_for_new_plan() -> List[Rule]:
    """Starting rule list for a plan created from scratch."""
    return [
        Rule(
            id="default-rule",
            title="Default",
            color=DEFAULT_RULE_COLOR,
            interventions_by_category={
                CATEGORY_CM: INTERVENTION_CM,
                CATEGORY_NETS_CAMPAIGN: INTERVENTION_STANDARD_PYRETHROID_CAMPAIGN,
                CATEGORY_NETS_ROUTINE: INTERVENTION_STANDARD_PYRETHROID_ROUTINE,
            },
            is_all_districts=True,
        )
    ]
