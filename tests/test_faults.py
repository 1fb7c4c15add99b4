"""
Unit tests for the fault/latency simulator.
"""

import random
import unittest

from tracelet import FaultBranch, FaultSimulator, OutcomePolicy

from support import ScriptedRandom


class TestPolicyValidation(unittest.TestCase):
    """Tests for policy construction."""

    def test_probability_out_of_range(self):
        with self.assertRaises(ValueError):
            FaultBranch("boom", 1.5)
        with self.assertRaises(ValueError):
            FaultBranch("boom", -0.1)

    def test_inverted_latency_range(self):
        with self.assertRaises(ValueError):
            OutcomePolicy(latency_ms=(200, 100))
        with self.assertRaises(ValueError):
            OutcomePolicy(latency_ms=(-1, 10))


class TestFaultSimulator(unittest.TestCase):
    """Tests for FaultSimulator."""

    def test_delay_formula(self):
        policy = OutcomePolicy(latency_ms=(100, 400))
        simulator = FaultSimulator({"email": policy}, rng=ScriptedRandom([0.5, 0.0, 0.999]))
        self.assertEqual(simulator.simulate("email").delay_ms, 250)
        self.assertEqual(simulator.simulate("email").delay_ms, 100)
        self.assertEqual(simulator.simulate("email").delay_ms, 399)

    def test_unknown_key_uses_default(self):
        default = OutcomePolicy(latency_ms=(10, 60), stock=100)
        simulator = FaultSimulator({}, default=default, rng=ScriptedRandom([0.0]))
        outcome = simulator.simulate("PROD-XYZ")
        self.assertIs(outcome.policy, default)
        self.assertEqual(outcome.delay_ms, 10)

    def test_independent_branches_draw_once_each(self):
        policy = OutcomePolicy(faults=(FaultBranch("a", 0.5), FaultBranch("b", 0.5)))
        rng = ScriptedRandom([0.1, 0.1, 0.0])
        outcome = FaultSimulator({"k": policy}, rng=rng).simulate("k")
        self.assertTrue(outcome.fired("a"))
        self.assertTrue(outcome.fired("b"))
        self.assertEqual(rng.calls, 3)

    def test_exclusive_stops_at_first_fired(self):
        policy = OutcomePolicy(
            faults=(FaultBranch("total_failure", 0.02), FaultBranch("email_timeout", 0.08)),
            exclusive=True,
        )
        rng = ScriptedRandom([0.01, 0.0])
        outcome = FaultSimulator({"email": policy}, rng=rng).simulate("email")
        self.assertEqual(outcome.faults, frozenset({"total_failure"}))
        # one fault draw, one delay draw
        self.assertEqual(rng.calls, 2)

    def test_exclusive_falls_through(self):
        policy = OutcomePolicy(
            faults=(FaultBranch("total_failure", 0.02), FaultBranch("email_timeout", 0.08)),
            exclusive=True,
        )
        outcome = FaultSimulator({"email": policy}, rng=ScriptedRandom([0.5, 0.05])).simulate("email")
        self.assertEqual(outcome.faults, frozenset({"email_timeout"}))

    def test_seeded_sources_are_deterministic(self):
        policy = OutcomePolicy(latency_ms=(0, 1000), faults=(FaultBranch("x", 0.3),))
        first = FaultSimulator({"k": policy}, rng=random.Random(11))
        second = FaultSimulator({"k": policy}, rng=random.Random(11))
        for _ in range(50):
            self.assertEqual(first.simulate("k"), second.simulate("k"))

    def test_ad_hoc_latency(self):
        simulator = FaultSimulator({}, rng=ScriptedRandom([0.5]))
        self.assertEqual(simulator.latency(10, 30), 20)


if __name__ == "__main__":
    unittest.main()
