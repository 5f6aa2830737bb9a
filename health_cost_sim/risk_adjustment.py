"""
Risk adjustment model.

Combines age, gender, health status and chronic-condition codes into a single
multiplicative risk adjustment factor (RAF), where 1.0 is population-average
risk, and bundles the factor with the cost distribution and claims profile
into an actuarial risk profile.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Tuple, Union

from .claims_profile import ClaimsProfile, model_claims_profile
from .cost_distribution import CostDistribution, generate_cost_distribution
from .errors import InvalidInputError, coerce_conditions, parse_enum, require_finite, require_non_negative
from .numeric import round_half_up
from .reference_tables import DEFAULT_TABLES, Gender, HealthStatus, ReferenceTables, lookup_age_bracket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskInput:
    """
    Demographic and health inputs for one person.

    Attributes:
        age: Age in years (ages outside the table clamp to the nearest bracket)
        gender: Gender used for actuarial cost factors
        health_status: Self-reported overall health
        chronic_conditions: Condition codes, matched case-insensitively
        baseline_cost: Expected annual cost of a healthy 40-year-old
    """
    age: int
    gender: Gender
    health_status: HealthStatus
    chronic_conditions: Tuple[str, ...] = field(default_factory=tuple)
    baseline_cost: float = 0.0

    def __post_init__(self):
        require_finite("age", self.age)
        object.__setattr__(self, "gender", parse_enum(Gender, self.gender, "gender"))
        object.__setattr__(self, "health_status", parse_enum(HealthStatus, self.health_status, "health status"))
        object.__setattr__(self, "chronic_conditions", coerce_conditions(self.chronic_conditions))
        require_non_negative("baseline_cost", self.baseline_cost)


@dataclass(frozen=True)
class ActuarialRiskProfile:
    risk_adjustment_factor: float
    cost_distribution: CostDistribution
    claims_profile: ClaimsProfile
    risk_category: str
    recommended_reserve: int
    confidence_level: str


def age_risk_factor(age: float, tables: ReferenceTables = DEFAULT_TABLES) -> float:
    _, factor = lookup_age_bracket(tables.age_risk_factors, age)
    return factor


def gender_age_band(age: float) -> str:
    """Only three bands exist; children fall in the youngest one."""
    if age < 45:
        return "18-44"
    if age < 65:
        return "45-64"
    return "65+"


def gender_risk_factor(age: float, gender: Gender, tables: ReferenceTables = DEFAULT_TABLES) -> float:
    return tables.gender_cost_factors[gender][gender_age_band(age)]


def condition_risk_factor(health_status: HealthStatus,
                          chronic_conditions: Iterable[str],
                          tables: ReferenceTables = DEFAULT_TABLES) -> float:
    """
    Condition component of the RAF.

    With no conditions the health-status multiplier applies. Otherwise the
    highest condition factor is the base and every other condition adds half
    of its excess over 1.0, since comorbidities overlap in the care they drive.
    """
    codes = list(chronic_conditions)
    if not codes:
        return tables.health_status_risk_factors[health_status]

    factors = sorted((tables.condition_factor(code) for code in codes), reverse=True)
    combined = factors[0]
    for factor in factors[1:]:
        combined += (factor - 1.0) * tables.secondary_condition_weight
    return combined


def compute_risk_factor(age: int,
                        gender: Union[Gender, str],
                        health_status: Union[HealthStatus, str],
                        chronic_conditions: Iterable[str] = (),
                        tables: ReferenceTables = DEFAULT_TABLES) -> float:
    """
    Compute the combined risk adjustment factor.

    RAF = age factor x gender factor x condition factor. The product is not
    clamped: values above ~15 are legitimate catastrophic-risk signals.

    Args:
        age: Age in years
        gender: Gender enum or its string value
        health_status: Health status enum or its string value
        chronic_conditions: Condition codes; unknown codes count as 1.5
        tables: Reference tables to read

    Returns:
        Positive, finite risk factor
    """
    age = require_finite("age", age)
    gender = parse_enum(Gender, gender, "gender")
    health_status = parse_enum(HealthStatus, health_status, "health status")
    codes = coerce_conditions(chronic_conditions)

    age_factor = age_risk_factor(age, tables)
    gender_factor = gender_risk_factor(age, gender, tables)
    condition_factor = condition_risk_factor(health_status, codes, tables)
    raf = age_factor * gender_factor * condition_factor

    logger.debug("RAF age=%s gender=%s status=%s conditions=%d -> %.4f (%.2f x %.2f x %.2f)",
                 age, gender.value, health_status.value, len(codes),
                 raf, age_factor, gender_factor, condition_factor)

    if not math.isfinite(raf) or raf <= 0:
        raise InvalidInputError(f"Reference tables produced an invalid risk factor: {raf}")
    return raf


def classify_risk(risk_factor: float) -> str:
    if risk_factor < 0.8:
        return "low"
    if risk_factor < 1.5:
        return "moderate"
    if risk_factor < 2.5:
        return "high"
    return "very-high"


def _confidence_level(health_status: HealthStatus, condition_count: int) -> str:
    if condition_count == 0 and health_status is HealthStatus.EXCELLENT:
        return "high"
    if condition_count <= 1 and health_status is not HealthStatus.POOR:
        return "moderate"
    return "lower"


def assess_actuarial_risk(risk_input: RiskInput,
                          tables: ReferenceTables = DEFAULT_TABLES) -> ActuarialRiskProfile:
    """
    Full actuarial picture for one person.

    The recommended reserve is the 90th-percentile annual cost, i.e. savings
    sized for a bad but realistic year.
    """
    raf = compute_risk_factor(risk_input.age, risk_input.gender, risk_input.health_status,
                              risk_input.chronic_conditions, tables)
    distribution = generate_cost_distribution(risk_input.baseline_cost, raf, tables)
    claims = model_claims_profile(risk_input.age, risk_input.health_status,
                                  len(risk_input.chronic_conditions) > 0, tables)

    return ActuarialRiskProfile(
        risk_adjustment_factor=round_half_up(raf, 2),
        cost_distribution=distribution,
        claims_profile=claims,
        risk_category=classify_risk(raf),
        recommended_reserve=distribution.p90,
        confidence_level=_confidence_level(risk_input.health_status, len(risk_input.chronic_conditions)),
    )
