import unittest
from dataclasses import replace

from health_cost_sim.errors import InvalidInputError
from health_cost_sim.reference_tables import DEFAULT_TABLES, MetalTier, UtilizationScenario
from health_cost_sim.total_cost_of_care import (
    analyses_to_frame,
    analyze_total_cost_of_care,
    calculate_out_of_pocket_costs,
    determine_utilization_scenario,
    get_chronic_condition_costs,
    get_expected_annual_costs,
    total_cost_grid,
)

PREMIUMS = {"Bronze": 300, "Silver": 450, "Gold": 600, "Platinum": 750}


class TestOutOfPocketCosts(unittest.TestCase):
    """Test suite for the deterministic per-tier out-of-pocket estimate."""

    def test_bronze_medium_utilization(self):
        estimate = calculate_out_of_pocket_costs(MetalTier.BRONZE, "medium", 10000)

        # copays 4x50 + 3x80 + 2x100 urgent care; Rx 6x20 + 3x60
        self.assertEqual(estimate.breakdown.copays, 640)
        self.assertEqual(estimate.breakdown.prescriptions, 300)
        self.assertEqual(estimate.breakdown.deductible, 7000)
        # (10000 - 7000 - 640) x 40%
        self.assertEqual(estimate.breakdown.coinsurance, 944)
        self.assertEqual(estimate.estimated_oop, 8884)
        self.assertTrue(estimate.deductible_met)
        self.assertFalse(estimate.oop_max_reached)

    def test_capped_at_oop_maximum(self):
        estimate = calculate_out_of_pocket_costs("bronze", "very-high", 100000)
        self.assertEqual(estimate.estimated_oop, 9200)
        self.assertTrue(estimate.oop_max_reached)

    def test_below_deductible(self):
        estimate = calculate_out_of_pocket_costs("Gold", "minimal", 1000)
        self.assertFalse(estimate.deductible_met)
        self.assertEqual(estimate.breakdown.coinsurance, 0)
        self.assertEqual(estimate.estimated_oop, 1000 + 25)

    def test_invalid_inputs(self):
        with self.assertRaises(InvalidInputError):
            calculate_out_of_pocket_costs("Diamond", "low", 1000)
        with self.assertRaises(InvalidInputError):
            calculate_out_of_pocket_costs("Gold", "extreme", 1000)
        with self.assertRaises(InvalidInputError):
            calculate_out_of_pocket_costs("Gold", "low", -1)


class TestTotalCostOfCare(unittest.TestCase):
    """Test suite for tier ranking by total annual cost."""

    def test_four_ranked_tiers(self):
        for scenario in UtilizationScenario:
            for cost in (0, 2000, 15000, 90000):
                with self.subTest(scenario=scenario, cost=cost):
                    analyses = analyze_total_cost_of_care(PREMIUMS, cost, scenario)

                    self.assertEqual(len(analyses), 4)
                    self.assertEqual({a.metal_tier for a in analyses},
                                     {MetalTier.BRONZE, MetalTier.SILVER, MetalTier.GOLD, MetalTier.PLATINUM})
                    totals = [a.total_annual_cost for a in analyses]
                    self.assertEqual(totals, sorted(totals))
                    self.assertEqual([a.ranking for a in analyses], [1, 2, 3, 4])
                    for a in analyses:
                        self.assertEqual(a.total_annual_cost, a.annual_premium + a.estimated_oop)

    def test_minimal_utilization_favors_low_premium(self):
        analyses = analyze_total_cost_of_care(PREMIUMS, 2000, "minimal")
        by_tier = {a.metal_tier: a for a in analyses}

        self.assertIn(by_tier[MetalTier.BRONZE].ranking, (1, 2))
        self.assertEqual(by_tier[MetalTier.BRONZE].total_annual_cost, 3600 + 2050)
        self.assertEqual(by_tier[MetalTier.SILVER].total_annual_cost, 5400 + 2035)
        self.assertEqual(by_tier[MetalTier.GOLD].total_annual_cost, 7200 + 1620)
        self.assertEqual(by_tier[MetalTier.BRONZE].deductible, 7000)
        self.assertEqual(by_tier[MetalTier.BRONZE].oop_maximum, 9200)

    def test_ties_keep_tier_order(self):
        silver = DEFAULT_TABLES.cost_sharing[MetalTier.SILVER]
        flat = replace(DEFAULT_TABLES,
                       cost_sharing={tier: silver for tier in MetalTier},
                       actuarial_values={tier: 0.7 for tier in MetalTier})
        premiums = {tier: 400 for tier in ("Platinum", "Gold", "Silver", "Bronze")}

        analyses = analyze_total_cost_of_care(premiums, 6000, "medium", tables=flat)
        self.assertEqual([a.metal_tier for a in analyses],
                         [MetalTier.BRONZE, MetalTier.SILVER, MetalTier.GOLD, MetalTier.PLATINUM])

    def test_catastrophic_premium_ignored(self):
        premiums = dict(PREMIUMS, Catastrophic=150)
        analyses = analyze_total_cost_of_care(premiums, 2000, "low")
        self.assertNotIn(MetalTier.CATASTROPHIC, [a.metal_tier for a in analyses])

    def test_missing_or_negative_premiums(self):
        with self.assertRaisesRegex(InvalidInputError, "Platinum"):
            analyze_total_cost_of_care({"Bronze": 300, "Silver": 450, "Gold": 600}, 2000)
        with self.assertRaises(InvalidInputError):
            analyze_total_cost_of_care(dict(PREMIUMS, Gold=-5), 2000)
        with self.assertRaises(InvalidInputError):
            analyze_total_cost_of_care(PREMIUMS, 2000, "sometimes")

    def test_frame_and_grid(self):
        analyses = analyze_total_cost_of_care(PREMIUMS, 2000, "minimal")
        frame = analyses_to_frame(analyses)
        self.assertEqual(frame.loc["Bronze", "total_annual_cost"], 5650)
        self.assertEqual(list(frame["ranking"]), [1, 2, 3, 4])

        grid = total_cost_grid(PREMIUMS, 2000)
        self.assertEqual(dict(grid.sizes), {"scenario": 5, "metal_tier": 4})
        self.assertEqual(grid.total_annual_cost.sel(scenario="minimal", metal_tier="Bronze").item(), 5650)
        self.assertEqual(grid.ranking.sel(scenario="minimal", metal_tier="Bronze").item(),
                         frame.loc["Bronze", "ranking"])


class TestUtilizationAndExpectedCosts(unittest.TestCase):

    def test_utilization_scenarios(self):
        self.assertEqual(determine_utilization_scenario(25, [], "none"), UtilizationScenario.MINIMAL)
        self.assertEqual(determine_utilization_scenario(60, ["diabetes", "copd", "hypertension"], "4-or-more"),
                         UtilizationScenario.VERY_HIGH)
        self.assertEqual(determine_utilization_scenario(30, [], "1-3"), UtilizationScenario.LOW)
        self.assertEqual(determine_utilization_scenario(50, ["asthma"], "1-3"), UtilizationScenario.MEDIUM)
        self.assertEqual(determine_utilization_scenario(60, ["asthma"], "1-3"), UtilizationScenario.HIGH)
        with self.assertRaises(InvalidInputError):
            determine_utilization_scenario(40, [], "lots")

    def test_missing_condition_list_means_none(self):
        self.assertEqual(determine_utilization_scenario(25, None, "none"), UtilizationScenario.MINIMAL)
        self.assertEqual(determine_utilization_scenario(40, None, "1-3"),
                         determine_utilization_scenario(40, [], "1-3"))
        self.assertEqual(get_chronic_condition_costs(None), 0)
        with self.assertRaises(InvalidInputError):
            determine_utilization_scenario(40, "diabetes", "none")
        with self.assertRaises(InvalidInputError):
            determine_utilization_scenario(40, [3], "none")

    def test_expected_annual_costs(self):
        self.assertEqual(get_expected_annual_costs(40), 5000)
        self.assertEqual(get_expected_annual_costs(40, "poor"), 12500)
        self.assertEqual(get_expected_annual_costs(2, "excellent"), 2100)
        self.assertEqual(get_expected_annual_costs(100, "good"), 25000)

    def test_chronic_condition_costs(self):
        self.assertEqual(get_chronic_condition_costs([]), 0)
        self.assertEqual(get_chronic_condition_costs(["diabetes"]), 8000)
        self.assertEqual(get_chronic_condition_costs(["Heart Disease"]), 12000)
        self.assertEqual(get_chronic_condition_costs(["diabetes", "hypertension"]), 8500)
        self.assertEqual(get_chronic_condition_costs(["diabetes", "unlisted"]), 6800)
        self.assertEqual(get_chronic_condition_costs(["unlisted"]), 0)


if __name__ == '__main__':
    unittest.main()
