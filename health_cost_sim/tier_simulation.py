"""
Simulated total annual cost for every ranked metal tier.

All tiers are evaluated against the same lognormal expense draws, so for each
simulated year the only difference between tiers is their premium and
cost-sharing. That makes "how often is each tier the cheapest" a fair
comparison even with modest iteration counts.
"""

import logging
from typing import Mapping, Optional

import numpy as np
import pandas as pd
import xarray as xr

from .errors import require_non_negative
from .monte_carlo import SimulationConfig, out_of_pocket_from_expenses, sample_medical_expenses
from .reference_tables import DEFAULT_TABLES, RANKED_TIERS, ReferenceTables
from .total_cost_of_care import TierKey, parse_tier_premiums

logger = logging.getLogger(__name__)


def simulate_tier_costs(premiums_by_tier: Mapping[TierKey, float],
                        baseline_cost: float,
                        config: Optional[SimulationConfig] = None,
                        tables: ReferenceTables = DEFAULT_TABLES) -> xr.Dataset:
    """
    Simulate out-of-pocket and total annual cost for Bronze through Platinum.

    Each tier's deductible and OOP maximum come from `tables.cost_sharing`;
    spending between them is charged 20% coinsurance as in run_monte_carlo.

    Args:
        premiums_by_tier: Monthly premium per tier
        baseline_cost: Median annual medical expense
        config: Iterations, seed and sigma
        tables: Reference tables supplying cost sharing

    Returns:
        xr.Dataset with
            medical_expense (simulation)
            out_of_pocket (simulation, metal_tier)
            annual_premium (metal_tier)
            total_cost (simulation, metal_tier)
    """
    premiums = parse_tier_premiums(premiums_by_tier)
    baseline_cost = require_non_negative("baseline_cost", baseline_cost)
    config = (config or SimulationConfig()).with_resolved_seed()

    expenses = sample_medical_expenses(baseline_cost, config)

    out_of_pocket = np.empty((config.iterations, len(RANKED_TIERS)))
    for idx, tier in enumerate(RANKED_TIERS):
        sharing = tables.cost_sharing[tier]
        out_of_pocket[:, idx] = out_of_pocket_from_expenses(expenses, sharing.deductible, sharing.oop_maximum)
    annual_premium = np.array([premiums[tier] * 12 for tier in RANKED_TIERS])

    result = xr.Dataset(
        data_vars={
            "medical_expense": (("simulation",), expenses),
            "out_of_pocket": (("simulation", "metal_tier"), out_of_pocket),
            "annual_premium": (("metal_tier",), annual_premium),
        },
        coords={
            "simulation": np.arange(config.iterations),
            "metal_tier": [tier.value for tier in RANKED_TIERS],
        },
        attrs={"seed": config.seed, "sigma": config.sigma, "baseline_cost": baseline_cost},
    )
    result["total_cost"] = result.out_of_pocket + result.annual_premium

    logger.info("Simulated %d years across %d tiers (seed %d)",
                config.iterations, len(RANKED_TIERS), config.seed)
    return result


def cheapest_tier_frequency(tier_costs: xr.Dataset) -> pd.Series:
    """
    Percentage of simulated years in which each tier has the lowest total cost.

    Ties go to the tier listed first (Bronze before Silver, and so on).

    Args:
        tier_costs: Output of simulate_tier_costs

    Returns:
        Series of percentages indexed by metal tier, summing to 100
    """
    n_sims = tier_costs.sizes["simulation"]
    n_tiers = tier_costs.sizes["metal_tier"]
    cheapest = tier_costs.total_cost.argmin(dim="metal_tier").values
    counts = np.bincount(cheapest, minlength=n_tiers)

    frequency = pd.Series(counts / n_sims * 100, index=tier_costs.metal_tier.values, name="percent_cheapest")
    for tier, pct in frequency.items():
        logger.debug("%s cheapest in %.1f%% of %d simulations", tier, pct, n_sims)
    return frequency


def summarize_tier_costs(tier_costs: xr.Dataset) -> pd.DataFrame:
    """Minimum, maximum, mean, standard deviation and tail percentiles of total cost per tier."""
    total = tier_costs.total_cost
    return pd.DataFrame({
        "minimum": total.min(dim="simulation").to_pandas(),
        "maximum": total.max(dim="simulation").to_pandas(),
        "mean": total.mean(dim="simulation").to_pandas(),
        "std_dev": total.std(dim="simulation").to_pandas(),
        "p50": total.quantile(0.50, dim="simulation").drop_vars("quantile").to_pandas(),
        "p95": total.quantile(0.95, dim="simulation").drop_vars("quantile").to_pandas(),
    })
