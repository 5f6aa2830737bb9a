"""
Monte Carlo simulation of annual out-of-pocket healthcare cost.

Medical expense is drawn from a lognormal distribution (strictly positive and
right-skewed, like real claims) whose median is the baseline cost. Each draw is
run through a plan's deductible, 20% coinsurance and out-of-pocket maximum,
and the capped outcomes are summarised into percentiles, moments and
threshold-crossing probabilities.

The uniform stream comes from a seeded Mulberry32 generator so that a given
seed reproduces identical results on every platform and in every worker.
"""

import logging
import math
import os
import time
from dataclasses import asdict, dataclass, field, replace
from pickle import PicklingError
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from joblib import Parallel, delayed
from joblib.externals.loky.process_executor import TerminatedWorkerError

from .errors import InvalidInputError, require_non_negative
from .numeric import round_currency, round_half_up

logger = logging.getLogger(__name__)

COINSURANCE_RATE = 0.20
# Outcomes within 5% of the OOP maximum count as hitting it
OOP_MAX_HIT_THRESHOLD = 0.95
REPORTED_PERCENTILES = (5, 10, 25, 50, 75, 90, 95, 99)

DEFAULT_ITERATIONS = 1000
DEFAULT_SIGMA = 0.5
PRACTICAL_MIN_ITERATIONS = 10
PRACTICAL_MAX_ITERATIONS = 10000

MULBERRY32_INCREMENT = 0x6D2B79F5
UINT32_MASK = 0xFFFFFFFF
UINT32_RANGE = 4294967296.0

HISTOGRAM_BUCKETS = 5

# Deductible / OOP maximum presets used by simulate_plan_costs
PLAN_PRESETS: Dict[str, Dict[str, float]] = {
    "bronze": {"deductible": 7000, "oop_maximum": 9450},
    "silver": {"deductible": 5000, "oop_maximum": 9450},
    "gold": {"deductible": 1500, "oop_maximum": 8700},
    "platinum": {"deductible": 500, "oop_maximum": 4000},
    "hdhp": {"deductible": 3200, "oop_maximum": 8050},
}


def time_derived_seed() -> int:
    return int(time.time() * 1000) & UINT32_MASK


@dataclass(frozen=True)
class SimulationConfig:
    """
    Monte Carlo settings.

    Attributes:
        iterations: Number of simulated years (practical range 10-10000)
        seed: Integer seed; None draws a time-derived seed (not reproducible)
        sigma: Standard deviation of log medical expense
    """
    iterations: int = DEFAULT_ITERATIONS
    seed: Optional[int] = None
    sigma: float = DEFAULT_SIGMA

    def __post_init__(self):
        if isinstance(self.iterations, bool) or not isinstance(self.iterations, (int, np.integer)):
            raise InvalidInputError(f"iterations must be an integer, got {self.iterations!r}")
        if self.iterations <= 0:
            raise InvalidInputError(f"iterations must be positive, got {self.iterations}")
        if not PRACTICAL_MIN_ITERATIONS <= self.iterations <= PRACTICAL_MAX_ITERATIONS:
            logger.warning("iterations=%d is outside the practical range %d-%d",
                           self.iterations, PRACTICAL_MIN_ITERATIONS, PRACTICAL_MAX_ITERATIONS)
        if self.seed is not None and (isinstance(self.seed, bool)
                                      or not isinstance(self.seed, (int, np.integer))):
            raise InvalidInputError(f"seed must be an integer or None, got {self.seed!r}")
        object.__setattr__(self, "sigma", require_non_negative("sigma", self.sigma))
        object.__setattr__(self, "iterations", int(self.iterations))
        if self.seed is not None:
            object.__setattr__(self, "seed", int(self.seed))

    def with_resolved_seed(self) -> "SimulationConfig":
        """Return a config whose seed is fixed, drawing one from the clock if needed."""
        if self.seed is not None:
            return self
        seed = time_derived_seed()
        logger.debug("No seed supplied; using time-derived seed %d", seed)
        return replace(self, seed=seed)


@dataclass(frozen=True)
class MonteCarloRequest:
    """Parameters for one simulation, as sent across a worker boundary."""
    baseline_cost: float
    deductible: float
    oop_max: float
    config: SimulationConfig = field(default_factory=SimulationConfig)

    def __post_init__(self):
        object.__setattr__(self, "baseline_cost", require_non_negative("baseline_cost", self.baseline_cost))
        object.__setattr__(self, "deductible", require_non_negative("deductible", self.deductible))
        object.__setattr__(self, "oop_max", require_non_negative("oop_max", self.oop_max))
        if self.config is None:
            object.__setattr__(self, "config", SimulationConfig())
        elif not isinstance(self.config, SimulationConfig):
            raise InvalidInputError(f"config must be a SimulationConfig, got {type(self.config).__name__}")

    def with_resolved_seed(self) -> "MonteCarloRequest":
        return replace(self, config=self.config.with_resolved_seed())


@dataclass(frozen=True)
class SimulationDraws:
    """Raw per-iteration draws produced by simulate_outcomes."""
    medical_expense: np.ndarray
    out_of_pocket: np.ndarray
    seed: int


@dataclass(frozen=True)
class MonteCarloResult:
    median: int
    mean: int
    standard_deviation: int
    percentiles: Dict[str, int]
    probability_of_exceeding_deductible: int
    probability_of_hitting_oop_max: int
    expected_value_at_risk: int
    simulation_count: int
    execution_time_ms: float
    seed: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HistogramBucket:
    label: str
    min: int
    max: int
    percentage: int


@dataclass(frozen=True)
class MonteCarloAnalysis:
    result: MonteCarloResult
    risk_level: str
    histogram: List[HistogramBucket]
    input_parameters: Dict[str, float]


@dataclass(frozen=True)
class PlanOption:
    name: str
    deductible: float
    oop_maximum: float
    monthly_premium: float


@dataclass(frozen=True)
class PlanComparison:
    plan_a: MonteCarloResult
    plan_b: MonteCarloResult
    expected_total_cost_difference: int
    better_plan_for_low_utilization: str
    better_plan_for_high_utilization: str
    break_even_cost: int


def mulberry32_uniforms(seed: int, count: int) -> np.ndarray:
    """
    Generate `count` uniforms in [0, 1) from the Mulberry32 generator.

    Mulberry32 advances its state by a fixed increment and mixes each state
    independently, so the whole stream can be produced at once with uint32
    arithmetic (multiplication wraps modulo 2**32).

    Args:
        seed: Integer seed (reduced modulo 2**32)
        count: Number of values

    Returns:
        float64 array of shape (count,)
    """
    steps = np.arange(1, count + 1, dtype=np.uint64)
    states = ((seed & UINT32_MASK) + steps * np.uint64(MULBERRY32_INCREMENT)) & np.uint64(UINT32_MASK)
    t = states.astype(np.uint32)
    t = (t ^ (t >> np.uint32(15))) * (t | np.uint32(1))
    t = t ^ (t + (t ^ (t >> np.uint32(7))) * (t | np.uint32(61)))
    t = t ^ (t >> np.uint32(14))
    return t.astype(np.float64) / UINT32_RANGE


def standard_normal_draws(seed: int, count: int) -> np.ndarray:
    """
    Box-Muller transform of consecutive uniform pairs.

    Draw i uses uniforms 2i and 2i+1. The first uniform is reflected to
    (0, 1] so its logarithm is always finite.
    """
    uniforms = mulberry32_uniforms(seed, 2 * count)
    u1 = 1.0 - uniforms[0::2]
    u2 = uniforms[1::2]
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)


def out_of_pocket_from_expenses(medical_expense: np.ndarray, deductible: float, oop_max: float) -> np.ndarray:
    """
    Household exposure for each expense draw.

    Full cost up to the deductible, 20% coinsurance beyond it, capped at the
    OOP maximum. A deductible above the OOP maximum is tolerated: outcomes
    simply cap.
    """
    below_deductible = np.minimum(medical_expense, deductible)
    coinsurance = COINSURANCE_RATE * np.maximum(0.0, medical_expense - deductible)
    return np.minimum(below_deductible + coinsurance, oop_max)


def simulate_outcomes(baseline_cost: float,
                      deductible: float,
                      oop_max: float,
                      config: Optional[SimulationConfig] = None) -> SimulationDraws:
    """
    Core sampling loop shared by the synchronous and worker paths.

    Args:
        baseline_cost: Median annual medical expense
        deductible: Plan deductible
        oop_max: Plan out-of-pocket maximum
        config: Simulation settings (seed resolved from the clock if absent)

    Returns:
        SimulationDraws with pre-cap expenses, capped outcomes and the seed used
    """
    request = MonteCarloRequest(baseline_cost, deductible, oop_max, config).with_resolved_seed()
    expenses = sample_medical_expenses(request.baseline_cost, request.config)
    outcomes = out_of_pocket_from_expenses(expenses, request.deductible, request.oop_max)
    return SimulationDraws(medical_expense=expenses, out_of_pocket=outcomes, seed=request.config.seed)


def sample_medical_expenses(baseline_cost: float, config: SimulationConfig) -> np.ndarray:
    """
    Lognormal annual medical expenses with median baseline_cost.

    `config` must carry a seed (see SimulationConfig.with_resolved_seed).
    """
    if config.seed is None:
        raise InvalidInputError("sample_medical_expenses needs a config with a resolved seed")
    if baseline_cost == 0:
        # ln(0) is -inf; every draw is exactly zero
        return np.zeros(config.iterations)
    mu = math.log(baseline_cost)
    return np.exp(mu + config.sigma * standard_normal_draws(config.seed, config.iterations))


def nearest_rank(sorted_values: np.ndarray, percentile: float) -> float:
    """Value at index floor(p/100 * (N-1)) of an ascending array."""
    if sorted_values.size == 0:
        return 0.0
    index = int(math.floor(percentile / 100.0 * (sorted_values.size - 1)))
    return float(sorted_values[index])


def summarize_outcomes(draws: SimulationDraws,
                       deductible: float,
                       oop_max: float,
                       execution_time_ms: float = 0.0) -> MonteCarloResult:
    """
    Reduce raw draws to the reported statistics.

    `standard_deviation` is the population value (ddof=0, divided by the
    iteration count), not the sample standard deviation.
    """
    outcomes = np.sort(draws.out_of_pocket)
    n = outcomes.size

    mean = float(outcomes.mean())
    # Population standard deviation of the simulated outcomes
    standard_deviation = float(outcomes.std())

    percentiles = {f"p{p}": round_currency(nearest_rank(outcomes, p)) for p in REPORTED_PERCENTILES}

    exceeds_deductible = int(np.count_nonzero(draws.medical_expense > deductible))
    hits_oop_max = int(np.count_nonzero(draws.out_of_pocket >= oop_max * OOP_MAX_HIT_THRESHOLD))

    return MonteCarloResult(
        median=percentiles["p50"],
        mean=round_currency(mean),
        standard_deviation=round_currency(standard_deviation),
        percentiles=percentiles,
        probability_of_exceeding_deductible=int(round_half_up(exceeds_deductible / n * 100)),
        probability_of_hitting_oop_max=int(round_half_up(hits_oop_max / n * 100)),
        expected_value_at_risk=percentiles["p95"],
        simulation_count=n,
        execution_time_ms=execution_time_ms,
        seed=draws.seed,
    )


def run_monte_carlo(baseline_cost: float,
                    deductible: float,
                    oop_max: float,
                    config: Optional[SimulationConfig] = None) -> MonteCarloResult:
    """
    Simulate annual out-of-pocket cost under one plan (synchronous path).

    With an explicit seed, identical arguments reproduce identical statistics.

    Args:
        baseline_cost: Median annual medical expense
        deductible: Plan deductible
        oop_max: Plan out-of-pocket maximum
        config: Iterations, seed and sigma

    Returns:
        MonteCarloResult
    """
    start = time.perf_counter()
    draws = simulate_outcomes(baseline_cost, deductible, oop_max, config)
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    result = summarize_outcomes(draws, deductible, oop_max, execution_time_ms=elapsed_ms)
    logger.debug("Simulated %d years (seed %d) in %.1f ms: mean OOP %d, p95 %d",
                 result.simulation_count, result.seed, elapsed_ms, result.mean, result.expected_value_at_risk)
    return result


def _simulate_request(request: MonteCarloRequest) -> MonteCarloResult:
    """Worker entry point: one request message in, one result out."""
    return run_monte_carlo(request.baseline_cost, request.deductible, request.oop_max, request.config)


def run_monte_carlo_batch(requests: Sequence[MonteCarloRequest],
                          n_jobs: Optional[int] = None,
                          backend: str = "loky") -> List[MonteCarloResult]:
    """
    Run several simulations, offloading them to joblib workers.

    Seeds are resolved before dispatch so a worker and the in-process path
    produce the same numbers. If the worker pool cannot be used, every request
    is re-run synchronously; partial results are never returned.

    Args:
        requests: Simulation requests
        n_jobs: Worker count (defaults to one per request, up to the CPU count)
        backend: joblib backend ("loky", "threading", ...)

    Returns:
        One MonteCarloResult per request, in request order
    """
    resolved = [request.with_resolved_seed() for request in requests]
    if not resolved:
        return []

    if n_jobs is None:
        n_jobs = min(len(resolved), os.cpu_count() or 1)
    if n_jobs == 1:
        return [_simulate_request(request) for request in resolved]

    start = time.perf_counter()
    logger.info("Dispatching %d simulations to %s workers (n_jobs=%s)", len(resolved), backend, n_jobs)
    try:
        results = Parallel(n_jobs=n_jobs, backend=backend)(
            delayed(_simulate_request)(request) for request in resolved
        )
    except (TerminatedWorkerError, OSError, PicklingError) as exc:
        logger.warning("Worker pool failed (%s); running %d simulations in-process", exc, len(resolved))
        return [_simulate_request(request) for request in resolved]

    logger.info("Completed %d simulations in %.2fs", len(resolved), time.perf_counter() - start)
    return list(results)


def run_monte_carlo_offloaded(request: MonteCarloRequest, backend: str = "loky") -> MonteCarloResult:
    """Run a single simulation in a background worker, falling back to in-process."""
    # joblib runs n_jobs=1 in the calling process; two slots keep the task in a worker
    return run_monte_carlo_batch([request], n_jobs=2, backend=backend)[0]


def classify_simulation_risk(result: MonteCarloResult) -> str:
    if result.probability_of_hitting_oop_max >= 30:
        return "very-high"
    if result.probability_of_hitting_oop_max >= 15:
        return "high"
    if result.probability_of_exceeding_deductible >= 50:
        return "moderate"
    return "low"


def build_histogram(out_of_pocket: np.ndarray, oop_max: float,
                    bucket_count: int = HISTOGRAM_BUCKETS) -> List[HistogramBucket]:
    """
    Share of simulated outcomes in equal-width buckets from 0 to the OOP maximum.

    Outcomes never exceed the OOP maximum, so the buckets cover every draw.
    """
    upper = oop_max if oop_max > 0 else 1.0
    edges = np.linspace(0.0, upper, bucket_count + 1)
    counts, _ = np.histogram(out_of_pocket, bins=edges)
    total = max(int(out_of_pocket.size), 1)

    buckets = []
    for i, count in enumerate(counts):
        low, high = round_currency(edges[i]), round_currency(edges[i + 1])
        buckets.append(HistogramBucket(
            label=f"${low:,}-${high:,}",
            min=low,
            max=high,
            percentage=int(round_half_up(count / total * 100)),
        ))
    return buckets


def generate_monte_carlo_analysis(baseline_cost: float,
                                  deductible: float,
                                  oop_max: float,
                                  config: Optional[SimulationConfig] = None) -> MonteCarloAnalysis:
    """Simulation result plus risk level, outcome histogram and the inputs used."""
    config = (config or SimulationConfig()).with_resolved_seed()
    start = time.perf_counter()
    draws = simulate_outcomes(baseline_cost, deductible, oop_max, config)
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    result = summarize_outcomes(draws, deductible, oop_max, execution_time_ms=elapsed_ms)

    return MonteCarloAnalysis(
        result=result,
        risk_level=classify_simulation_risk(result),
        histogram=build_histogram(draws.out_of_pocket, oop_max),
        input_parameters={
            "baseline_cost": baseline_cost,
            "deductible": deductible,
            "oop_max": oop_max,
            "iterations": config.iterations,
        },
    )


def simulate_plan_costs(expected_medical_cost: float,
                        plan_type: str,
                        config: Optional[SimulationConfig] = None) -> MonteCarloAnalysis:
    """Analysis for one of the preset plan designs (bronze, silver, gold, platinum, hdhp)."""
    key = plan_type.strip().lower() if isinstance(plan_type, str) else plan_type
    if key not in PLAN_PRESETS:
        raise InvalidInputError(f"Unrecognized plan type {plan_type!r}; expected one of: {', '.join(PLAN_PRESETS)}")
    preset = PLAN_PRESETS[key]
    return generate_monte_carlo_analysis(expected_medical_cost, preset["deductible"], preset["oop_maximum"], config)


def compare_plans_with_monte_carlo(expected_medical_cost: float,
                                   plan_a: PlanOption,
                                   plan_b: PlanOption,
                                   config: Optional[SimulationConfig] = None,
                                   n_jobs: Optional[int] = None,
                                   backend: str = "loky") -> PlanComparison:
    """
    Compare two plans on simulated out-of-pocket cost plus annual premium.

    Both plans see the same seed, so differences come from plan design rather
    than sampling noise. "Low utilization" compares the 25th percentile and
    "high utilization" the 90th.
    """
    expected_medical_cost = require_non_negative("expected_medical_cost", expected_medical_cost)
    for plan in (plan_a, plan_b):
        require_non_negative(f"{plan.name} monthly_premium", plan.monthly_premium)

    config = (config or SimulationConfig()).with_resolved_seed()
    result_a, result_b = run_monte_carlo_batch(
        [
            MonteCarloRequest(expected_medical_cost, plan_a.deductible, plan_a.oop_maximum, config),
            MonteCarloRequest(expected_medical_cost, plan_b.deductible, plan_b.oop_maximum, config),
        ],
        n_jobs=n_jobs,
        backend=backend,
    )

    premium_a = plan_a.monthly_premium * 12
    premium_b = plan_b.monthly_premium * 12

    low_a = result_a.percentiles["p25"] + premium_a
    low_b = result_b.percentiles["p25"] + premium_b
    high_a = result_a.percentiles["p90"] + premium_a
    high_b = result_b.percentiles["p90"] + premium_b

    premium_diff = plan_a.monthly_premium - plan_b.monthly_premium
    deductible_diff = plan_a.deductible - plan_b.deductible
    if deductible_diff != 0 and expected_medical_cost > 0:
        denominator = deductible_diff / expected_medical_cost
    else:
        denominator = 1.0
    break_even = abs(premium_diff * 12 / denominator)

    return PlanComparison(
        plan_a=result_a,
        plan_b=result_b,
        expected_total_cost_difference=round_currency((result_a.mean + premium_a) - (result_b.mean + premium_b)),
        better_plan_for_low_utilization=plan_a.name if low_a < low_b else plan_b.name,
        better_plan_for_high_utilization=plan_a.name if high_a < high_b else plan_b.name,
        break_even_cost=round_currency(break_even),
    )
