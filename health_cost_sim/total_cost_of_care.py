"""
Total cost of care (TCC) across metal tiers.

Total annual cost is what a household actually pays: twelve months of premium
plus the out-of-pocket spending implied by a utilization scenario under each
tier's cost-sharing rules. A low-premium tier is not necessarily the cheapest
once expected care is included.
"""

import logging
from dataclasses import asdict, dataclass, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd
import xarray as xr

from .errors import InvalidInputError, coerce_conditions, parse_enum, require_finite, require_non_negative
from .numeric import round_currency
from .reference_tables import (
    DEFAULT_TABLES,
    RANKED_TIERS,
    HealthStatus,
    MetalTier,
    PrescriptionCount,
    ReferenceTables,
    UtilizationScenario,
    lookup_age_bracket,
    normalize_condition_code,
)

logger = logging.getLogger(__name__)

TierKey = Union[MetalTier, str]


@dataclass(frozen=True)
class OutOfPocketBreakdown:
    deductible: int
    copays: int
    coinsurance: int
    prescriptions: int


@dataclass(frozen=True)
class OutOfPocketEstimate:
    """
    Deterministic out-of-pocket estimate for one tier and scenario.

    Attributes:
        estimated_oop: Total patient cost after the OOP maximum cap
        deductible_met: Expected medical cost reaches the deductible
        oop_max_reached: Uncapped total reaches the OOP maximum
        breakdown: Rounded components before the cap
    """
    estimated_oop: int
    deductible_met: bool
    oop_max_reached: bool
    breakdown: OutOfPocketBreakdown


@dataclass(frozen=True)
class TCCAnalysis:
    metal_tier: MetalTier
    annual_premium: float
    estimated_oop: int
    total_annual_cost: float
    deductible: float
    oop_maximum: float
    ranking: int = 0

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["metal_tier"] = self.metal_tier.value
        return data


def calculate_out_of_pocket_costs(metal_tier: TierKey,
                                  scenario: Union[UtilizationScenario, str],
                                  expected_medical_cost: float,
                                  tables: ReferenceTables = DEFAULT_TABLES) -> OutOfPocketEstimate:
    """
    Estimate a year's out-of-pocket cost under one tier.

    Args:
        metal_tier: Tier whose cost-sharing rules apply
        scenario: Utilization scenario supplying visit and prescription counts
        expected_medical_cost: Expected annual medical cost before insurance
        tables: Reference tables (cost sharing, actuarial values, utilization)

    Returns:
        OutOfPocketEstimate
    """
    metal_tier = parse_enum(MetalTier, metal_tier, "metal tier")
    scenario = parse_enum(UtilizationScenario, scenario, "utilization scenario")
    expected_medical_cost = require_non_negative("expected_medical_cost", expected_medical_cost)

    sharing = tables.cost_sharing[metal_tier]
    usage = tables.utilization_patterns[scenario]
    actuarial_value = tables.actuarial_values[metal_tier]

    copays = (usage.primary_care_visits * sharing.primary_care_copay
              + usage.specialist_visits * sharing.specialist_copay
              + usage.er_visits * sharing.emergency_room_copay
              + usage.urgent_care_visits * sharing.urgent_care_copay)
    prescriptions = (usage.generic_rx_months * sharing.generic_rx_copay
                     + usage.brand_rx_months * sharing.brand_rx_copay)

    # After the deductible the patient pays the share the tier does not cover
    subject_to_coinsurance = max(0.0, expected_medical_cost - sharing.deductible - copays)
    coinsurance = subject_to_coinsurance * (1 - actuarial_value)
    deductible_portion = min(sharing.deductible, expected_medical_cost)

    total = deductible_portion + copays + coinsurance + prescriptions
    capped = min(total, sharing.oop_maximum)

    return OutOfPocketEstimate(
        estimated_oop=round_currency(capped),
        deductible_met=expected_medical_cost >= sharing.deductible,
        oop_max_reached=total >= sharing.oop_maximum,
        breakdown=OutOfPocketBreakdown(
            deductible=round_currency(deductible_portion),
            copays=round_currency(copays),
            coinsurance=round_currency(coinsurance),
            prescriptions=round_currency(prescriptions),
        ),
    )


def parse_tier_premiums(premiums_by_tier: Mapping[TierKey, float]) -> Dict[MetalTier, float]:
    """Validate monthly premiums; every ranked tier must be present."""
    premiums = {}
    for key, value in premiums_by_tier.items():
        tier = parse_enum(MetalTier, key, "metal tier")
        premiums[tier] = require_non_negative(f"{tier.value} premium", value)
    missing = [tier.value for tier in RANKED_TIERS if tier not in premiums]
    if missing:
        raise InvalidInputError(f"Missing monthly premiums for tiers: {', '.join(missing)}")
    return premiums


def analyze_total_cost_of_care(premiums_by_tier: Mapping[TierKey, float],
                               expected_medical_cost: float,
                               scenario: Union[UtilizationScenario, str] = UtilizationScenario.MEDIUM,
                               tables: ReferenceTables = DEFAULT_TABLES) -> List[TCCAnalysis]:
    """
    Rank Bronze, Silver, Gold and Platinum by total annual cost.

    Catastrophic plans are priced elsewhere and never ranked here; a premium
    supplied for them is ignored.

    Args:
        premiums_by_tier: Monthly premium per tier (enum members or tier names)
        expected_medical_cost: Expected annual medical cost before insurance
        scenario: Utilization scenario
        tables: Reference tables

    Returns:
        Four TCCAnalysis entries sorted ascending by total cost, ranked 1-4;
        ties keep Bronze, Silver, Gold, Platinum order
    """
    premiums = parse_tier_premiums(premiums_by_tier)
    scenario = parse_enum(UtilizationScenario, scenario, "utilization scenario")

    analyses = []
    for tier in RANKED_TIERS:
        annual_premium = premiums[tier] * 12
        oop = calculate_out_of_pocket_costs(tier, scenario, expected_medical_cost, tables)
        sharing = tables.cost_sharing[tier]
        analyses.append(TCCAnalysis(
            metal_tier=tier,
            annual_premium=annual_premium,
            estimated_oop=oop.estimated_oop,
            total_annual_cost=annual_premium + oop.estimated_oop,
            deductible=sharing.deductible,
            oop_maximum=sharing.oop_maximum,
        ))

    ranked = [replace(analysis, ranking=rank)
              for rank, analysis in enumerate(sorted(analyses, key=lambda a: a.total_annual_cost), start=1)]
    logger.debug("TCC (%s, cost %.0f): %s", scenario.value, expected_medical_cost,
                 ", ".join(f"{a.metal_tier.value}={a.total_annual_cost:,.0f}" for a in ranked))
    return ranked


def determine_utilization_scenario(age: int,
                                   chronic_conditions: Optional[Sequence[str]],
                                   prescription_count: Union[PrescriptionCount, str]) -> UtilizationScenario:
    """
    Map a health profile to a utilization scenario with an additive score.

    Age contributes 0-4 points, each chronic condition 2 and prescriptions
    0, 1 (1-3) or 3 (4 or more). 0 is minimal, up to 2 low, up to 5 medium,
    up to 8 high and anything above very-high.
    """
    age = require_finite("age", age)
    prescription_count = parse_enum(PrescriptionCount, prescription_count, "prescription count")
    chronic_conditions = coerce_conditions(chronic_conditions)

    if age < 30:
        score = 0
    elif age < 45:
        score = 1
    elif age < 55:
        score = 2
    elif age < 65:
        score = 3
    else:
        score = 4

    score += 2 * len(chronic_conditions)

    if prescription_count is PrescriptionCount.FOUR_OR_MORE:
        score += 3
    elif prescription_count is PrescriptionCount.ONE_TO_THREE:
        score += 1

    if score == 0:
        return UtilizationScenario.MINIMAL
    if score <= 2:
        return UtilizationScenario.LOW
    if score <= 5:
        return UtilizationScenario.MEDIUM
    if score <= 8:
        return UtilizationScenario.HIGH
    return UtilizationScenario.VERY_HIGH


def get_expected_annual_costs(age: int,
                              health_status: Union[HealthStatus, str] = HealthStatus.GOOD,
                              tables: ReferenceTables = DEFAULT_TABLES) -> int:
    """Average annual medical cost for the age bracket, scaled by health status."""
    age = require_finite("age", age)
    health_status = parse_enum(HealthStatus, health_status, "health status")
    _, base_cost = lookup_age_bracket(tables.expected_utilization_by_age, age)
    return round_currency(base_cost * tables.expected_cost_health_multipliers[health_status])


def get_chronic_condition_costs(conditions: Optional[Iterable[str]],
                                tables: ReferenceTables = DEFAULT_TABLES) -> int:
    """
    Additional annual cost from chronic conditions.

    Unknown conditions add nothing. With more than one condition the sum is
    scaled by the multi-condition factor, since treatments overlap.
    """
    codes = coerce_conditions(conditions)
    total = sum(tables.chronic_condition_costs.get(normalize_condition_code(code), 0) for code in codes)
    if len(codes) > 1:
        total *= tables.multi_condition_cost_factor
    return round_currency(total)


def analyses_to_frame(analyses: Iterable[TCCAnalysis]) -> pd.DataFrame:
    """Tabulate an analysis list, one row per tier indexed by metal tier name."""
    rows = [analysis.to_dict() for analysis in analyses]
    columns = ["metal_tier", "ranking", "annual_premium", "estimated_oop",
               "total_annual_cost", "deductible", "oop_maximum"]
    return pd.DataFrame(rows, columns=columns).set_index("metal_tier")


def total_cost_grid(premiums_by_tier: Mapping[TierKey, float],
                    expected_medical_cost: float,
                    scenarios: Optional[Sequence[Union[UtilizationScenario, str]]] = None,
                    tables: ReferenceTables = DEFAULT_TABLES) -> xr.Dataset:
    """
    Evaluate every ranked tier under several utilization scenarios.

    Args:
        premiums_by_tier: Monthly premium per tier
        expected_medical_cost: Expected annual medical cost before insurance
        scenarios: Scenarios to evaluate (defaults to all five)
        tables: Reference tables

    Returns:
        xr.Dataset with dims (scenario, metal_tier) holding annual_premium,
        estimated_oop, total_annual_cost and ranking
    """
    scenarios = [parse_enum(UtilizationScenario, s, "utilization scenario")
                 for s in (scenarios if scenarios is not None else list(UtilizationScenario))]
    tier_names = [tier.value for tier in RANKED_TIERS]

    fields = ("annual_premium", "estimated_oop", "total_annual_cost", "ranking")
    grid = {name: [] for name in fields}
    for scenario in scenarios:
        by_tier = {a.metal_tier: a for a in
                   analyze_total_cost_of_care(premiums_by_tier, expected_medical_cost, scenario, tables)}
        for name in fields:
            grid[name].append([getattr(by_tier[tier], name) for tier in RANKED_TIERS])

    return xr.Dataset(
        data_vars={name: (("scenario", "metal_tier"), values) for name, values in grid.items()},
        coords={
            "scenario": [s.value for s in scenarios],
            "metal_tier": tier_names,
        },
        attrs={"expected_medical_cost": expected_medical_cost},
    )
