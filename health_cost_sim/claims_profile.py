"""
Claims frequency and severity model.

An independent, qualitative view of risk used for narrative output: how many
claims a person files per year, how large they are, and the chance of a
high-cost (>$50k) or catastrophic (>$250k) year.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Union

from .errors import parse_enum, require_finite
from .numeric import round_currency, round_half_up
from .reference_tables import DEFAULT_TABLES, HealthStatus, ReferenceTables

BASE_EXPECTED_CLAIMS = 5.0
BASE_AVG_CLAIM_SIZE = 800.0
BASE_PROBABILITY_HIGH_COST = 0.05
BASE_PROBABILITY_CATASTROPHIC = 0.01

# Caps keep narrative claims plausible; they are policy, not statistics
MAX_PROBABILITY_HIGH_COST = 0.30
MAX_PROBABILITY_CATASTROPHIC = 0.10

CHRONIC_CLAIMS_BOOST = 1.6
CHRONIC_SIZE_BOOST = 1.3
CHRONIC_HIGH_COST_BOOST = 1.8
CHRONIC_CATASTROPHIC_BOOST = 1.5


@dataclass(frozen=True)
class ClaimsProfile:
    expected_claims: float
    avg_claim_size: int
    probability_high_cost: float
    probability_catastrophic: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def model_claims_profile(age: int,
                         health_status: Union[HealthStatus, str],
                         has_chronic_conditions: bool,
                         tables: ReferenceTables = DEFAULT_TABLES) -> ClaimsProfile:
    """
    Apply age, health-status and chronic-condition adjustments to the baselines.

    Args:
        age: Age in years
        health_status: Health status enum or its string value
        has_chronic_conditions: Whether any chronic condition is present
        tables: Reference tables supplying the health-status multipliers

    Returns:
        ClaimsProfile with probabilities capped at 0.30 / 0.10
    """
    age = require_finite("age", age)
    health_status = parse_enum(HealthStatus, health_status, "health status")

    expected_claims = BASE_EXPECTED_CLAIMS
    avg_claim_size = BASE_AVG_CLAIM_SIZE
    probability_high_cost = BASE_PROBABILITY_HIGH_COST
    probability_catastrophic = BASE_PROBABILITY_CATASTROPHIC

    # Stage 1: age bracket
    if age < 25:
        expected_claims *= 0.6
        avg_claim_size *= 0.7
    elif age >= 60:
        expected_claims *= 1.8
        avg_claim_size *= 1.6
        probability_high_cost *= 2.5
        probability_catastrophic *= 2.0
    elif age >= 45:
        expected_claims *= 1.3
        avg_claim_size *= 1.2
        probability_high_cost *= 1.5

    # Stage 2: health status
    multiplier = tables.claims_health_multipliers[health_status]
    expected_claims *= multiplier.claims
    avg_claim_size *= multiplier.size
    probability_high_cost *= multiplier.high_cost
    probability_catastrophic *= multiplier.catastrophic

    # Stage 3: chronic conditions raise both frequency and severity
    if has_chronic_conditions:
        expected_claims *= CHRONIC_CLAIMS_BOOST
        avg_claim_size *= CHRONIC_SIZE_BOOST
        probability_high_cost *= CHRONIC_HIGH_COST_BOOST
        probability_catastrophic *= CHRONIC_CATASTROPHIC_BOOST

    return ClaimsProfile(
        expected_claims=round_half_up(expected_claims, 1),
        avg_claim_size=round_currency(avg_claim_size),
        probability_high_cost=min(MAX_PROBABILITY_HIGH_COST, round_half_up(probability_high_cost, 3)),
        probability_catastrophic=min(MAX_PROBABILITY_CATASTROPHIC, round_half_up(probability_catastrophic, 3)),
    )
