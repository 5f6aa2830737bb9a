"""
Validation and visualization suite for the Monte Carlo simulator.

Checks the sampled medical expenses against the analytic lognormal they are
drawn from, compares simulated out-of-pocket percentiles with the exact
percentiles implied by the plan's cost-sharing, and draws diagnostic figures.
Figures are returned to the caller rather than shown.
"""

import logging
from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
import xarray as xr
from scipy import stats

from .errors import require_positive
from .monte_carlo import (
    REPORTED_PERCENTILES,
    SimulationConfig,
    out_of_pocket_from_expenses,
    simulate_outcomes,
    summarize_outcomes,
)
from .reference_tables import DEFAULT_TABLES, Gender, HealthStatus, ReferenceTables
from .risk_adjustment import compute_risk_factor

logger = logging.getLogger(__name__)


class SimulationValidator:
    """
    Statistical validation of one simulated plan.

    Args:
        baseline_cost: Median annual medical expense (must be positive)
        deductible: Plan deductible
        oop_max: Plan out-of-pocket maximum
        config: Simulation settings; the seed is resolved once so every check
            looks at the same draws
    """

    def __init__(self,
                 baseline_cost: float,
                 deductible: float,
                 oop_max: float,
                 config: Optional[SimulationConfig] = None):
        # A zero baseline has no lognormal to validate against
        require_positive("baseline_cost", baseline_cost)
        self.config = (config or SimulationConfig()).with_resolved_seed()
        logger.debug("Validating %d simulations with seed %d", self.config.iterations, self.config.seed)
        self.draws = simulate_outcomes(baseline_cost, deductible, oop_max, self.config)
        self.result = summarize_outcomes(self.draws, deductible, oop_max)
        self.baseline_cost = baseline_cost
        self.deductible = deductible
        self.oop_max = oop_max

    def analytic_expense_distribution(self):
        """Frozen scipy lognormal matching the sampler (shape sigma, median baseline)."""
        return stats.lognorm(s=self.config.sigma, scale=self.baseline_cost)

    def compute_expense_statistics(self) -> pd.DataFrame:
        """
        Compare sampled expenses with the analytic lognormal.

        Returns:
            Single-row DataFrame with the sample and expected mean, z-score and
            p-value of the mean, and a Kolmogorov-Smirnov statistic and p-value
        """
        expenses = self.draws.medical_expense
        dist = self.analytic_expense_distribution()

        expected_mean = dist.mean()
        sample_mean = np.mean(expenses)
        std_error = np.std(expenses) / np.sqrt(len(expenses))
        z_score = (sample_mean - expected_mean) / std_error if std_error > 0 else 0.0
        p_value = 2 * (1 - stats.norm.cdf(abs(z_score)))

        ks = stats.kstest(expenses, dist.cdf)

        return pd.DataFrame([{
            "Expected_Mean": expected_mean,
            "Simulated_Mean": sample_mean,
            "Expected_Median": dist.median(),
            "Simulated_Median": np.median(expenses),
            "Std_Error": std_error,
            "Z_Score": z_score,
            "P_Value": p_value,
            "KS_Statistic": ks.statistic,
            "KS_P_Value": ks.pvalue,
            "Within_95CI": p_value > 0.05,
        }])

    def compute_outcome_statistics(self) -> pd.DataFrame:
        """
        Simulated vs exact out-of-pocket percentiles.

        Out-of-pocket cost is a non-decreasing function of expense, so its
        exact p-th percentile is that function applied to the lognormal's
        p-th percentile.

        Returns:
            DataFrame indexed by percentile label
        """
        dist = self.analytic_expense_distribution()
        rows = []
        for p in REPORTED_PERCENTILES:
            label = f"p{p}"
            exact = float(out_of_pocket_from_expenses(np.array([dist.ppf(p / 100)]),
                                                      self.deductible, self.oop_max)[0])
            simulated = self.result.percentiles[label]
            rows.append({
                "Percentile": label,
                "Exact": exact,
                "Simulated": simulated,
                "Abs_Error": abs(simulated - exact),
            })

        expected_exceed = 100 * dist.sf(self.deductible)
        rows.append({
            "Percentile": "P(expense > deductible) %",
            "Exact": expected_exceed,
            "Simulated": self.result.probability_of_exceeding_deductible,
            "Abs_Error": abs(self.result.probability_of_exceeding_deductible - expected_exceed),
        })
        return pd.DataFrame(rows).set_index("Percentile")

    def print_validation_report(self) -> None:
        """
        Print a human-readable validation report comparing expected and simulated results.
        """
        expense_df = self.compute_expense_statistics()
        outcome_df = self.compute_outcome_statistics()
        row = expense_df.iloc[0]

        print("SIMULATION VALIDATION REPORT")
        print("=" * 80)
        print(f"Number of Simulations: {self.result.simulation_count}  (seed {self.result.seed})")
        print(f"Baseline: ${self.baseline_cost:,.0f}  Deductible: ${self.deductible:,.0f}  "
              f"OOP max: ${self.oop_max:,.0f}  Sigma: {self.config.sigma}")
        print("-" * 80)
        print("\nMedical expense:")
        print(f"  Expected mean:    ${row['Expected_Mean']:,.0f}")
        print(f"  Simulated mean:   ${row['Simulated_Mean']:,.0f} +/- {1.96 * row['Std_Error']:,.0f}")
        print(f"  Expected median:  ${row['Expected_Median']:,.0f}")
        print(f"  Simulated median: ${row['Simulated_Median']:,.0f}")
        print(f"  KS statistic:     {row['KS_Statistic']:.4f} (p={row['KS_P_Value']:.4f})")
        print(f"  Within 95% CI?    {'Yes' if row['Within_95CI'] else 'No'}")
        if not row["Within_95CI"]:
            print(f"  WARNING: Significant deviation (p={row['P_Value']:.4f})")

        print("\nOut-of-pocket:")
        for label, outcome in outcome_df.iterrows():
            print(f"  {label:<28} exact {outcome['Exact']:>10,.1f}   simulated {outcome['Simulated']:>10,.1f}")

    def plot_outcome_distribution(self, figsize: Tuple[int, int] = (15, 6)) -> plt.Figure:
        """
        Histogram of expenses with the analytic density, and of out-of-pocket
        outcomes with the reported percentiles marked.

        Args:
            figsize: Figure size in inches
        """
        fig, (ax1, ax2) = plt.subplots(1, 2, figsize=figsize)

        expenses = self.draws.medical_expense
        ax1.hist(expenses, bins=50, density=True, alpha=0.6, label="Simulated")
        grid = np.linspace(expenses.min(), np.percentile(expenses, 99.5), 400)
        ax1.plot(grid, self.analytic_expense_distribution().pdf(grid), color="black", label="Lognormal pdf")
        ax1.set_title("Simulated Annual Medical Expense")
        ax1.set_xlabel("Expense ($)")
        ax1.set_ylabel("Density")
        ax1.legend()
        ax1.grid(True, alpha=0.3)

        ax2.hist(self.draws.out_of_pocket, bins=30, alpha=0.6, color="tab:orange")
        for label in ("p50", "p90", "p95"):
            value = self.result.percentiles[label]
            ax2.axvline(value, linestyle="--", alpha=0.8, label=f"{label} ${value:,}")
        ax2.axvline(self.oop_max, color="red", label=f"OOP max ${self.oop_max:,.0f}")
        ax2.set_title("Out-of-Pocket Outcomes")
        ax2.set_xlabel("Out-of-pocket cost ($)")
        ax2.set_ylabel("Simulations")
        ax2.legend()
        ax2.grid(True, alpha=0.3)

        fig.tight_layout()
        return fig


def plot_risk_heatmap(ages: Sequence[int] = (20, 30, 40, 50, 60, 70, 80),
                      gender: Gender = Gender.OTHER,
                      tables: ReferenceTables = DEFAULT_TABLES,
                      figsize: Tuple[int, int] = (10, 5)) -> plt.Figure:
    """
    Heatmap of the risk adjustment factor by health status and age
    (no chronic conditions).
    """
    data = pd.DataFrame(
        [[compute_risk_factor(age, gender, status, (), tables) for age in ages] for status in HealthStatus],
        index=[status.value for status in HealthStatus],
        columns=list(ages),
    )

    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(data, annot=True, fmt=".2f", cmap="YlOrRd", ax=ax)
    ax.set_title(f"Risk Adjustment Factor ({gender.value})")
    ax.set_xlabel("Age")
    ax.set_ylabel("Health Status")
    fig.tight_layout()
    return fig


def plot_tier_distributions(tier_costs: xr.Dataset, figsize: Tuple[int, int] = (15, 6)) -> plt.Figure:
    """
    Histograms and cumulative distributions of total annual cost per tier.

    Args:
        tier_costs: Output of simulate_tier_costs
    """
    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=figsize)

    tiers = list(tier_costs.metal_tier.values)
    colors = plt.cm.tab10(np.linspace(0, 1, len(tiers)))

    for tier, color in zip(tiers, colors):
        totals = tier_costs.total_cost.sel(metal_tier=tier).values
        mean = totals.mean()
        std = totals.std()

        ax1.hist(totals, bins=15, alpha=0.6, color=color,
                 density=True, label=f"{tier}\nμ=${mean:,.0f}, σ=${std:,.0f}")
        ax2.hist(totals, bins=30, alpha=0.3, density=True, cumulative=True,
                 histtype="stepfilled", color=color, label=tier)

    ax1.set_title("Distribution of Yearly Total Costs")
    ax1.set_xlabel("Total Cost ($)")
    ax1.set_ylabel("Density")
    ax1.legend()
    ax1.grid(True, alpha=0.3)

    ax2.set_title("Cumulative Distribution of Yearly Total Costs")
    ax2.set_xlabel("Total Cost ($)")
    ax2.set_ylabel("Cumulative Probability")
    ax2.legend()
    ax2.grid(True, alpha=0.3)

    fig.tight_layout()
    return fig


def plot_cheapest_frequency(frequency: pd.Series, figsize: Tuple[int, int] = (10, 6)) -> plt.Figure:
    """Bar chart of how often each tier has the lowest total cost."""
    fig, ax = plt.subplots(figsize=figsize)
    bars = ax.bar(frequency.index.astype(str), frequency.values)

    for bar in bars:
        height = bar.get_height()
        ax.text(bar.get_x() + bar.get_width() / 2., height, f"{height:.1f}%", ha="center", va="bottom")

    ax.set_title("Frequency of Each Tier Having Lowest Total Cost")
    ax.set_xlabel("Metal Tier")
    ax.set_ylabel("Percentage of Simulations")
    ax.grid(True, alpha=0.3, axis="y")
    fig.tight_layout()
    return fig
