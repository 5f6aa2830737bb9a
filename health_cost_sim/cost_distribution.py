"""
Analytic cost distribution.

Healthcare costs are strongly right-skewed: the top 5% of people account for
about half of all spending while the bottom half accounts for ~3%. Rather than
inverting a lognormal, each percentile is a fixed multiple of the
risk-adjusted mean.
"""

from dataclasses import asdict, dataclass
from typing import Dict

from .errors import require_non_negative, require_positive
from .numeric import round_currency
from .reference_tables import DEFAULT_TABLES, ReferenceTables

PERCENTILE_FIELDS = ("p10", "p25", "p50", "p75", "p90", "p95", "p99")


@dataclass(frozen=True)
class CostDistribution:
    """
    Annual cost percentiles in whole currency units.

    Attributes:
        p10: Optimistic year (minimal care)
        p25: 25th percentile
        p50: Median, the most common experience
        p75: 75th percentile
        p90: Bad but realistic year
        p95: Very high cost year
        p99: Catastrophic year
        mean: Average, above the median because of the skew
    """
    p10: int
    p25: int
    p50: int
    p75: int
    p90: int
    p95: int
    p99: int
    mean: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def generate_cost_distribution(baseline_cost: float,
                               risk_factor: float = 1.0,
                               tables: ReferenceTables = DEFAULT_TABLES) -> CostDistribution:
    """
    Scale the baseline cost by the risk factor and derive the percentiles.

    Each field is rounded on its own rather than derived from one rounded
    mean. For adjusted means below ~10 neighbouring percentiles collapse onto
    the same integer, and at an adjusted mean of 1 the median (0.6 -> 1)
    equals the mean, so the strict p50 < mean skew no longer shows.
    Downstream figures depend on these exact values, so the rounding is left
    as is.

    Args:
        baseline_cost: Expected cost for a reference (healthy 40-year-old) person
        risk_factor: Combined risk adjustment factor

    Returns:
        CostDistribution with non-negative integer fields
    """
    baseline_cost = require_non_negative("baseline_cost", baseline_cost)
    risk_factor = require_positive("risk_factor", risk_factor)

    adjusted_mean = baseline_cost * risk_factor
    multipliers = tables.cost_distribution_multipliers
    return CostDistribution(**{
        name: round_currency(adjusted_mean * multipliers[name])
        for name in PERCENTILE_FIELDS + ("mean",)
    })
