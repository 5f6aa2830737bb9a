import unittest

from health_cost_sim.cost_distribution import PERCENTILE_FIELDS, generate_cost_distribution
from health_cost_sim.errors import InvalidInputError
from health_cost_sim.numeric import round_currency, round_currency_array, round_half_up


class TestCostDistribution(unittest.TestCase):
    """Test suite for the analytic percentile model."""

    def test_reference_distribution(self):
        dist = generate_cost_distribution(5000, 1.0)
        self.assertEqual(dist.to_dict(), {
            "p10": 500, "p25": 1250, "p50": 3000, "p75": 6000,
            "p90": 12500, "p95": 20000, "p99": 50000, "mean": 5000,
        })

    def test_percentiles_ordered_and_right_skewed(self):
        for baseline in (100, 850, 5000, 12345.67):
            for risk_factor in (0.35, 1.0, 2.75, 18.0):
                with self.subTest(baseline=baseline, risk_factor=risk_factor):
                    dist = generate_cost_distribution(baseline, risk_factor)
                    values = [getattr(dist, name) for name in PERCENTILE_FIELDS]
                    self.assertEqual(values, sorted(values))
                    self.assertLess(dist.p50, dist.mean)
                    self.assertAlmostEqual(dist.p50 / dist.mean, 0.60, delta=0.01)

    def test_scaling_risk_factor_scales_every_field(self):
        base = generate_cost_distribution(4200, 1.3)
        for k in (0.5, 1, 2):
            scaled = generate_cost_distribution(4200, 1.3 * k)
            for name, value in base.to_dict().items():
                with self.subTest(k=k, field=name):
                    self.assertAlmostEqual(getattr(scaled, name), value * k, delta=1.5)

    def test_zero_baseline(self):
        dist = generate_cost_distribution(0, 2.2)
        self.assertTrue(all(value == 0 for value in dist.to_dict().values()))

    def test_small_mean_rounding_boundary(self):
        """
        Fields are rounded independently. At tiny adjusted means percentiles
        collapse together and the median can equal the mean; this is kept.
        """
        dist = generate_cost_distribution(1, 1.0)
        self.assertEqual(dist.p10, 0)
        self.assertEqual(dist.p25, 0)
        self.assertEqual(dist.p50, 1)
        self.assertEqual(dist.p50, dist.mean)

        dist = generate_cost_distribution(2, 1.0)
        self.assertEqual([dist.p10, dist.p25, dist.p50, dist.p75], [0, 1, 1, 2])

    def test_invalid_inputs(self):
        with self.assertRaises(InvalidInputError):
            generate_cost_distribution(-1, 1.0)
        with self.assertRaises(InvalidInputError):
            generate_cost_distribution(5000, 0)
        with self.assertRaises(InvalidInputError):
            generate_cost_distribution(5000, -1.2)
        with self.assertRaises(InvalidInputError):
            generate_cost_distribution(float("inf"), 1.0)


class TestRounding(unittest.TestCase):

    def test_half_up(self):
        self.assertEqual(round_currency(2.5), 3)
        self.assertEqual(round_currency(3.5), 4)
        self.assertEqual(round_currency(-2.5), -2)
        self.assertEqual(round_half_up(1.25, 1), 1.3)
        self.assertEqual(list(round_currency_array([0.5, 1.5, 2.4])), [1, 2, 2])


if __name__ == '__main__':
    unittest.main()
