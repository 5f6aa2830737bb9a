"""
Actuarial risk and cost simulation engine.

Turns demographic and health inputs into a risk adjustment factor, derives an
analytic cost distribution and claims profile, simulates out-of-pocket cost
under a plan with a seeded Monte Carlo model, and ranks metal tiers by total
annual cost.
"""

from .claims_profile import ClaimsProfile, model_claims_profile
from .cost_distribution import CostDistribution, generate_cost_distribution
from .errors import InvalidInputError, ReferenceDataError
from .monte_carlo import (
    HistogramBucket,
    MonteCarloAnalysis,
    MonteCarloRequest,
    MonteCarloResult,
    PlanComparison,
    PlanOption,
    SimulationConfig,
    compare_plans_with_monte_carlo,
    generate_monte_carlo_analysis,
    run_monte_carlo,
    run_monte_carlo_batch,
    run_monte_carlo_offloaded,
    simulate_outcomes,
    simulate_plan_costs,
)
from .reference_tables import (
    DEFAULT_TABLES,
    CostSharingStructure,
    Gender,
    HealthStatus,
    MetalTier,
    PrescriptionCount,
    ReferenceTables,
    UtilizationScenario,
    load_cost_sharing_table,
)
from .risk_adjustment import ActuarialRiskProfile, RiskInput, assess_actuarial_risk, compute_risk_factor
from .tier_simulation import cheapest_tier_frequency, simulate_tier_costs, summarize_tier_costs
from .total_cost_of_care import (
    OutOfPocketEstimate,
    TCCAnalysis,
    analyses_to_frame,
    analyze_total_cost_of_care,
    calculate_out_of_pocket_costs,
    determine_utilization_scenario,
    get_chronic_condition_costs,
    get_expected_annual_costs,
    total_cost_grid,
)

__version__ = "0.1.0"
