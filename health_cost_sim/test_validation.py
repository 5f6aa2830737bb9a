import io
import unittest
from contextlib import redirect_stdout

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402

from health_cost_sim.errors import InvalidInputError  # noqa: E402
from health_cost_sim.monte_carlo import SimulationConfig  # noqa: E402
from health_cost_sim.tier_simulation import cheapest_tier_frequency, simulate_tier_costs  # noqa: E402
from health_cost_sim.validation import (  # noqa: E402
    SimulationValidator,
    plot_cheapest_frequency,
    plot_risk_heatmap,
    plot_tier_distributions,
)


class TestSimulationValidator(unittest.TestCase):
    """Test suite for the statistical checks and diagnostic figures."""

    def setUp(self):
        self.validator = SimulationValidator(5000, 2000, 8000, SimulationConfig(iterations=5000, seed=7))

    def tearDown(self):
        plt.close("all")

    def test_expense_statistics(self):
        stats_df = self.validator.compute_expense_statistics()
        row = stats_df.iloc[0]

        self.assertAlmostEqual(row["Expected_Median"], 5000)
        self.assertLess(row["KS_Statistic"], 0.05)
        self.assertAlmostEqual(row["Simulated_Median"], 5000, delta=250)
        self.assertTrue(0.0 <= row["P_Value"] <= 1.0)

    def test_outcome_statistics(self):
        outcome_df = self.validator.compute_outcome_statistics()

        # median expense 5000 -> 2000 + 20% of 3000
        self.assertAlmostEqual(outcome_df.loc["p50", "Exact"], 2600)
        self.assertLess(outcome_df.loc["p50", "Abs_Error"], 150)
        self.assertLessEqual(outcome_df["Exact"].drop("P(expense > deductible) %").max(), 8000)
        self.assertLess(outcome_df.loc["P(expense > deductible) %", "Abs_Error"], 3)

    def test_report(self):
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            self.validator.print_validation_report()
        report = buffer.getvalue()
        self.assertIn("SIMULATION VALIDATION REPORT", report)
        self.assertIn("seed 7", report)

    def test_figures(self):
        self.assertIsInstance(self.validator.plot_outcome_distribution(), plt.Figure)
        self.assertIsInstance(plot_risk_heatmap(), plt.Figure)

        costs = simulate_tier_costs({"Bronze": 300, "Silver": 450, "Gold": 600, "Platinum": 750}, 6000,
                                    SimulationConfig(iterations=300, seed=3))
        self.assertIsInstance(plot_tier_distributions(costs), plt.Figure)
        self.assertIsInstance(plot_cheapest_frequency(cheapest_tier_frequency(costs)), plt.Figure)

    def test_zero_baseline_rejected(self):
        with self.assertRaises(InvalidInputError):
            SimulationValidator(0, 2000, 8000)


if __name__ == '__main__':
    unittest.main()
