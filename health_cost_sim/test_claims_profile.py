import unittest

from health_cost_sim.claims_profile import (
    MAX_PROBABILITY_CATASTROPHIC,
    MAX_PROBABILITY_HIGH_COST,
    model_claims_profile,
)
from health_cost_sim.errors import InvalidInputError
from health_cost_sim.reference_tables import HealthStatus


class TestClaimsProfile(unittest.TestCase):
    """Test suite for claims frequency and severity."""

    def test_middle_aged_good_health(self):
        """Ages 25-44 leave the baselines untouched before the health stage."""
        profile = model_claims_profile(30, "good", False)
        self.assertAlmostEqual(profile.expected_claims, 4.0)
        self.assertEqual(profile.avg_claim_size, 720)
        self.assertAlmostEqual(profile.probability_high_cost, 0.035, places=6)
        self.assertAlmostEqual(profile.probability_catastrophic, 0.008, places=6)

    def test_age_brackets(self):
        young = model_claims_profile(24, "excellent", False)
        self.assertAlmostEqual(young.expected_claims, 1.5)
        self.assertEqual(young.avg_claim_size, 336)

        older = model_claims_profile(45, "good", False)
        self.assertAlmostEqual(older.expected_claims, 5.2)
        self.assertEqual(older.avg_claim_size, 864)
        self.assertAlmostEqual(older.probability_high_cost, 0.053, places=2)

    def test_chronic_conditions_raise_frequency_and_severity(self):
        without = model_claims_profile(40, "fair", False)
        with_chronic = model_claims_profile(40, "fair", True)
        self.assertGreater(with_chronic.expected_claims, without.expected_claims)
        self.assertGreater(with_chronic.avg_claim_size, without.avg_claim_size)
        self.assertAlmostEqual(with_chronic.expected_claims, 5 * 1.5 * 1.6, places=1)

    def test_worst_case_probabilities_are_capped(self):
        profile = model_claims_profile(80, "poor", True)
        self.assertEqual(profile.probability_high_cost, MAX_PROBABILITY_HIGH_COST)
        self.assertEqual(profile.probability_catastrophic, MAX_PROBABILITY_CATASTROPHIC)

    def test_caps_hold_everywhere(self):
        for age in range(0, 121, 5):
            for status in HealthStatus:
                for chronic in (False, True):
                    profile = model_claims_profile(age, status, chronic)
                    self.assertLessEqual(profile.probability_high_cost, 0.30)
                    self.assertLessEqual(profile.probability_catastrophic, 0.10)
                    self.assertGreaterEqual(profile.probability_high_cost, 0)
                    self.assertGreaterEqual(profile.expected_claims, 0)
                    self.assertGreaterEqual(profile.avg_claim_size, 0)

    def test_invalid_health_status(self):
        with self.assertRaises(InvalidInputError):
            model_claims_profile(40, "terrible", False)
        with self.assertRaises(InvalidInputError):
            model_claims_profile(None, "good", False)


if __name__ == '__main__':
    unittest.main()
