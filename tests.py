#!/usr/bin/env python3
"""
RTPCALC — Unit & Integration Test Suite

Run: python tests.py
     python tests.py -v               # verbose
     python tests.py TestCrossover    # run specific class

Test categories:
  TestPopulation     — normalization, initialization, arena capacity
  TestFitness        — expected payout, fitness bound
  TestSelection      — ranking, truncation, tie-break
  TestCrossover      — cut correctness, regrowth, overshoot policy
  TestMutation       — single-locus redraw, elites, invariants
  TestDriver         — convergence, determinism, elitism, stopping policies
  TestRtpCalculator  — public construct / run / accessors
  TestSchema         — WinRange and GAConfig validation
"""

import math
import random
import sys
import unittest
from pathlib import Path

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from pydantic import ValidationError

from config.calibration_schema import GAConfig, OvershootPolicy, StopPolicy, StopReason, WinRange
from sim_engine.errors import InvalidTargetError, InvalidWinRangesError
from sim_engine.ga import (
    CrossoverOperator, FitnessEvaluator, GeneticAlgorithm, Individual,
    MutationOperator, Population, RtpCalculator, SelectionOperator, normalize,
)

TOL = 1e-9


def assert_distribution(case: unittest.TestCase, probabilities, n_tiers: int):
    """Length N, every entry in [0, 1], sum within 1e-9 of 1."""
    case.assertEqual(len(probabilities), n_tiers)
    for p in probabilities:
        case.assertGreaterEqual(p, 0.0)
        case.assertLessEqual(p, 1.0)
    case.assertAlmostEqual(sum(probabilities), 1.0, delta=TOL)


def small_config(**kw) -> GAConfig:
    stop = kw.pop("stop", StopPolicy(max_generations=50))
    return GAConfig(seed=kw.pop("seed", 7), stop=stop, **kw)


# ============================================================
# Population Tests
# ============================================================

class TestPopulation(unittest.TestCase):
    """Individuals, normalization and the fixed-capacity arena."""

    def test_normalize_sums_to_one(self):
        """normalize divides by the vector sum."""
        out = normalize([1.0, 3.0])
        self.assertEqual(out, [0.25, 0.75])

    def test_normalize_all_zero_is_uniform(self):
        """An all-zero vector falls back to uniform instead of dividing by zero."""
        self.assertEqual(normalize([0.0, 0.0, 0.0, 0.0]), [0.25] * 4)

    def test_initialize_invariants(self):
        """Every initialized individual is a valid distribution with fitness 0."""
        rng = random.Random(1)
        pop = Population.initialize(n_tiers=6, size=100, rng=rng)
        self.assertEqual(len(pop), 100)
        for ind in pop:
            assert_distribution(self, ind.probabilities, 6)
            self.assertEqual(ind.fitness, 0.0)

    def test_arena_refuses_beyond_capacity(self):
        """add() returns False once all slots are taken."""
        pop = Population(capacity=2)
        self.assertTrue(pop.add(Individual([1.0])))
        self.assertTrue(pop.add(Individual([1.0])))
        self.assertTrue(pop.is_full())
        self.assertFalse(pop.add(Individual([1.0])))
        self.assertEqual(len(pop), 2)
        self.assertEqual(pop.free_slots, 0)

    def test_from_individuals_rejects_overflow(self):
        with self.assertRaises(ValueError):
            Population.from_individuals([Individual([1.0])] * 3, capacity=2)

    def test_best_prefers_earliest_slot_on_tie(self):
        """best() breaks fitness ties by slot index."""
        a, b = Individual([1.0], fitness=0.9), Individual([1.0], fitness=0.9)
        pop = Population.from_individuals([a, b], capacity=2)
        self.assertIs(pop.best(), a)

    def test_indexing(self):
        a, b = Individual([1.0], 0.1), Individual([1.0], 0.2)
        pop = Population.from_individuals([a, b], capacity=4)
        self.assertIs(pop[0], a)
        self.assertIs(pop[-1], b)
        with self.assertRaises(IndexError):
            pop[2]


# ============================================================
# Fitness Tests
# ============================================================

class TestFitness(unittest.TestCase):
    """fitness = 1 - |target - Σ p·payout|"""

    def test_expected_payout(self):
        ev = FitnessEvaluator([0, 2, 10], target=0.96)
        self.assertAlmostEqual(ev.expected_payout([0.5, 0.25, 0.25]), 3.0)

    def test_exact_match_scores_one(self):
        """Fitness is exactly 1 when the expected payout equals the target."""
        ev = FitnessEvaluator([0, 1], target=0.5)
        self.assertEqual(ev.score([0.5, 0.5]), 1.0)

    def test_fitness_below_one_when_off_target(self):
        ev = FitnessEvaluator([0, 10], target=0.5)
        self.assertAlmostEqual(ev.score([0.5, 0.5]), 1 - 4.5)
        self.assertLess(ev.score([0.9, 0.1]), 1.0)

    def test_fitness_never_exceeds_one(self):
        rng = random.Random(3)
        ev = FitnessEvaluator([0, 0.5, 1, 3, 25], target=0.95)
        for _ in range(200):
            probs = normalize([rng.random() for _ in range(5)])
            self.assertLessEqual(ev.score(probs), 1.0)

    def test_evaluate_assigns_in_place(self):
        ev = FitnessEvaluator([2.0], target=0.5)
        pop = Population.from_individuals([Individual([1.0]), Individual([1.0])], capacity=2)
        ev.evaluate(pop)
        for ind in pop:
            self.assertAlmostEqual(ind.fitness, 1 - 1.5)


# ============================================================
# Selection Tests
# ============================================================

class TestSelection(unittest.TestCase):
    """Rank descending by fitness, keep floor(size / 2)."""

    def _pop(self, fitnesses, capacity=None):
        inds = [Individual([1.0], fitness=f) for f in fitnesses]
        return inds, Population.from_individuals(inds, capacity or len(inds))

    def test_keeps_top_half_in_order(self):
        inds, pop = self._pop([0.1, 0.9, 0.5, 0.7])
        survivors = SelectionOperator(capacity=4).select(pop)
        self.assertEqual(len(survivors), 2)
        self.assertEqual([s.fitness for s in survivors], [0.9, 0.7])

    def test_odd_size_floors(self):
        _, pop = self._pop([0.1, 0.2, 0.3, 0.4, 0.5])
        survivors = SelectionOperator(capacity=5).select(pop)
        self.assertEqual(len(survivors), 2)

    def test_tie_break_by_original_index(self):
        """Equal fitness keeps the original slot order."""
        inds, pop = self._pop([0.5, 0.8, 0.5, 0.8, 0.5, 0.5])
        ranked = SelectionOperator.rank(pop)
        self.assertEqual(ranked, [inds[1], inds[3], inds[0], inds[2], inds[4], inds[5]])
        self.assertIs(ranked[0], inds[1])
        self.assertIs(ranked[2], inds[0])

    def test_survivor_arena_has_configured_capacity(self):
        _, pop = self._pop([0.1, 0.2, 0.3, 0.4])
        survivors = SelectionOperator(capacity=5).select(pop)
        self.assertEqual(survivors.capacity, 5)
        self.assertEqual(survivors.free_slots, 3)


# ============================================================
# Crossover Tests
# ============================================================

class TestCrossover(unittest.TestCase):
    """Single-point crossover and population regrowth."""

    def test_split_is_exact_concatenation(self):
        p1 = [0.1, 0.2, 0.3, 0.4]
        p2 = [0.4, 0.3, 0.2, 0.1]
        for k in range(1, 4):
            a, b = CrossoverOperator.split(p1, p2, k)
            self.assertEqual(a, p1[:k] + p2[k:])
            self.assertEqual(b, p2[:k] + p1[k:])
            self.assertEqual(len(a), 4)
            self.assertEqual(len(b), 4)
            assert_distribution(self, normalize(a), 4)
            assert_distribution(self, normalize(b), 4)

    def test_cut_point_range(self):
        op = CrossoverOperator(target_size=10, rng=random.Random(5))
        points = {op.cut_point(5) for _ in range(500)}
        self.assertEqual(points, {1, 2, 3, 4})

    def test_single_tier_has_no_cut(self):
        op = CrossoverOperator(target_size=10, rng=random.Random(5))
        self.assertEqual(op.cut_point(1), 1)

    def test_regrows_to_target_and_keeps_survivors(self):
        rng = random.Random(11)
        survivors = [Individual(normalize([rng.random() for _ in range(5)])) for _ in range(50)]
        pop = Population.from_individuals(survivors, capacity=100)
        grown = CrossoverOperator(100, rng).crossover(pop)
        self.assertEqual(len(grown), 100)
        for i, ind in enumerate(survivors):
            self.assertIs(grown[i], ind)
        for ind in grown:
            assert_distribution(self, ind.probabilities, 5)

    def test_overshoot_truncate(self):
        """TRUNCATE drops the second child when the arena is full."""
        cfg = GAConfig(population_size=6, overshoot=OvershootPolicy.TRUNCATE)
        rng = random.Random(2)
        survivors = [Individual(normalize([rng.random() for _ in range(3)])) for _ in range(3)]
        pop = Population.from_individuals(survivors, capacity=cfg.capacity)
        grown = CrossoverOperator(cfg.population_size, rng).crossover(pop)
        self.assertEqual(len(grown), 6)

    def test_overshoot_keep(self):
        """KEEP retains both children of the last pair."""
        cfg = GAConfig(population_size=6, overshoot=OvershootPolicy.KEEP)
        rng = random.Random(2)
        survivors = [Individual(normalize([rng.random() for _ in range(3)])) for _ in range(3)]
        pop = Population.from_individuals(survivors, capacity=cfg.capacity)
        grown = CrossoverOperator(cfg.population_size, rng).crossover(pop)
        self.assertEqual(len(grown), 7)


# ============================================================
# Mutation Tests
# ============================================================

class TestMutation(unittest.TestCase):
    """Single-locus redraw with probability = mutation rate."""

    def _pop(self, n=10, tiers=4, seed=9):
        rng = random.Random(seed)
        return Population.initialize(tiers, n, rng)

    def test_zero_rate_changes_nothing(self):
        pop = self._pop()
        before = [list(ind.probabilities) for ind in pop]
        MutationOperator(0.0, random.Random(1)).mutate(pop)
        self.assertEqual([ind.probabilities for ind in pop], before)

    def test_single_locus(self):
        """Only one gene is redrawn: the others keep their mutual ratios."""
        pop = self._pop(n=20)
        before = [list(ind.probabilities) for ind in pop]
        MutationOperator(1.0, random.Random(4)).mutate(pop)
        for old, ind in zip(before, pop):
            new = ind.probabilities
            assert_distribution(self, new, 4)
            scales = [n / o for n, o in zip(new, old)]
            # At least three of the four genes share the renormalization factor
            shared = max(sum(1 for s in scales if math.isclose(s, ref, rel_tol=1e-9)) for ref in scales)
            self.assertGreaterEqual(shared, 3)

    def test_elites_are_exempt(self):
        pop = self._pop()
        before = [list(ind.probabilities) for ind in pop]
        MutationOperator(1.0, random.Random(4), elite_count=2).mutate(pop)
        self.assertEqual(pop[0].probabilities, before[0])
        self.assertEqual(pop[1].probabilities, before[1])
        self.assertNotEqual(pop[2].probabilities, before[2])


# ============================================================
# Driver Tests
# ============================================================

class TestDriver(unittest.TestCase):
    """Generational loop, convergence and stopping policies."""

    def test_two_tier_convergence(self):
        """[0, 10] at RTP 50% converges to ≈ [0.95, 0.05]."""
        calc = RtpCalculator(50, config=GAConfig(seed=42))
        probs = calc.run([WinRange(payout=0), WinRange(payout=10)])
        assert_distribution(self, probs, 2)
        self.assertAlmostEqual(probs[0], 0.95, delta=0.01)
        self.assertAlmostEqual(probs[1], 0.05, delta=0.01)
        self.assertGreater(calc.result.fitness, 0.99)
        self.assertEqual(calc.result.generations_run, 1000)
        self.assertEqual(calc.result.stop_reason, StopReason.MAX_GENERATIONS)

    def test_single_tier_is_always_one(self):
        """One tier forces [1.0] and fitness = 1 - |target - payout|."""
        ga = GeneticAlgorithm([3.0], 0.96, config=small_config())
        result = ga.run()
        self.assertEqual(result.probabilities, [1.0])
        self.assertAlmostEqual(result.fitness, 1 - abs(0.96 - 3.0))

    def test_deterministic_with_seed(self):
        """Same seed and inputs give identical output."""
        payouts = [0, 0.5, 1, 2, 5, 20]
        a = GeneticAlgorithm(payouts, 0.95, config=small_config(seed=123)).run()
        b = GeneticAlgorithm(payouts, 0.95, config=small_config(seed=123)).run()
        self.assertEqual(a.probabilities, b.probabilities)
        self.assertEqual(a.history, b.history)

    def test_injected_rng_is_used(self):
        payouts = [0, 1, 4]
        a = GeneticAlgorithm(payouts, 0.9, config=small_config(), rng=random.Random(77)).run()
        b = GeneticAlgorithm(payouts, 0.9, config=small_config(), rng=random.Random(77)).run()
        self.assertEqual(a.probabilities, b.probabilities)

    def test_best_fitness_never_decreases(self):
        """With elites protected, the best fitness is monotonic across generations."""
        for seed in (1, 2, 3):
            result = GeneticAlgorithm(
                [0, 0.2, 1, 3, 10], 0.96,
                config=small_config(seed=seed, stop=StopPolicy(max_generations=200)),
            ).run()
            self.assertEqual(len(result.history), 201)
            for prev, nxt in zip(result.history, result.history[1:]):
                self.assertGreaterEqual(nxt, prev)

    def test_result_is_valid_distribution(self):
        result = GeneticAlgorithm(
            [0, 0.5, 1.5, 8], 0.94, config=small_config(overshoot=OvershootPolicy.KEEP),
        ).run()
        assert_distribution(self, result.probabilities, 4)
        self.assertLessEqual(result.fitness, 1.0)

    def test_zero_generations(self):
        result = GeneticAlgorithm([0, 2], 0.9, config=small_config(stop=StopPolicy(max_generations=0))).run()
        self.assertEqual(result.generations_run, 0)
        self.assertEqual(len(result.history), 1)
        assert_distribution(self, result.probabilities, 2)

    def test_target_fitness_stops_early(self):
        """A threshold already met ends the run at the first evaluation."""
        stop = StopPolicy(max_generations=1000, target_fitness=-100.0)
        result = GeneticAlgorithm([0, 10], 0.5, config=small_config(stop=stop)).run()
        self.assertEqual(result.stop_reason, StopReason.TARGET_FITNESS)
        self.assertEqual(result.generations_run, 0)

    def test_stagnation_stops(self):
        """A single tier never improves, so stagnation fires after N flat generations."""
        stop = StopPolicy(max_generations=1000, stagnation_generations=5)
        result = GeneticAlgorithm([2.0], 0.9, config=small_config(stop=stop)).run()
        self.assertEqual(result.stop_reason, StopReason.STAGNATION)
        self.assertEqual(result.generations_run, 5)

    def test_deadline_stops(self):
        ticks = iter(range(10_000))
        stop = StopPolicy(max_generations=1000, deadline_seconds=3.5)
        ga = GeneticAlgorithm([0, 5], 0.9, config=small_config(stop=stop), clock=lambda: next(ticks))
        result = ga.run()
        self.assertEqual(result.stop_reason, StopReason.DEADLINE)
        self.assertLess(result.generations_run, 1000)
        assert_distribution(self, result.probabilities, 2)

    def test_cancellation_checked_each_generation(self):
        calls = {"n": 0}

        def cancel():
            calls["n"] += 1
            return calls["n"] > 3

        ga = GeneticAlgorithm([0, 5], 0.9, config=small_config(), should_cancel=cancel)
        result = ga.run()
        self.assertEqual(result.stop_reason, StopReason.CANCELLED)
        self.assertEqual(result.generations_run, 3)
        assert_distribution(self, result.probabilities, 2)

    def test_empty_payouts_rejected(self):
        with self.assertRaises(ValueError):
            GeneticAlgorithm([], 0.9)

    def test_summary_and_dict(self):
        result = GeneticAlgorithm([0, 2], 0.9, config=small_config()).run()
        self.assertIn("RTP Calibration", result.summary())
        data = result.to_dict()
        self.assertEqual(data["stop_reason"], "max_generations")
        self.assertEqual(data["generations_run"], 50)
        self.assertEqual(data["history"]["evaluations"], 51)


# ============================================================
# RtpCalculator Tests
# ============================================================

class TestRtpCalculator(unittest.TestCase):
    """construct / run / accessors."""

    def test_target_is_percent_over_100(self):
        self.assertAlmostEqual(RtpCalculator(96).rtp, 0.96)

    def test_non_finite_target_rejected(self):
        for bad in (float("nan"), float("inf"), float("-inf")):
            with self.assertRaises(InvalidTargetError):
                RtpCalculator(bad)
        with self.assertRaises(ValueError):
            RtpCalculator(float("nan"))

    def test_empty_win_ranges_rejected(self):
        with self.assertRaises(InvalidWinRangesError):
            RtpCalculator(96).run([])

    def test_accessors_after_run(self):
        tiers = [WinRange(payout=0), WinRange(payout=1.5), WinRange(payout=4)]
        calc = RtpCalculator(95, config=small_config())
        self.assertEqual(calc.probabilities, [])
        probs = calc.run(tiers)
        self.assertEqual(calc.get_probabilities(), probs)
        self.assertEqual(calc.get_win_ranges(), tuple(tiers))
        self.assertEqual(len(probs), 3)

    def test_accepts_plain_records(self):
        """Dict records are validated into WinRange, extra fields kept."""
        calc = RtpCalculator(95, config=small_config())
        calc.run([{"payout": 0, "ranges": [0, 0]}, {"payout": 3, "ranges": [1, 2], "label": "3x"}])
        self.assertEqual(calc.win_ranges[1].ranges, [1.0, 2.0])
        self.assertEqual(calc.win_ranges[1].model_extra["label"], "3x")


# ============================================================
# Schema Tests
# ============================================================

class TestSchema(unittest.TestCase):

    def test_win_range_rejects_negative_payout(self):
        with self.assertRaises(ValidationError):
            WinRange(payout=-1)

    def test_win_range_is_frozen(self):
        w = WinRange(payout=2)
        with self.assertRaises(ValidationError):
            w.payout = 3

    def test_reference_defaults(self):
        cfg = GAConfig()
        self.assertEqual(cfg.population_size, 100)
        self.assertEqual(cfg.stop.max_generations, 1000)
        self.assertEqual(cfg.mutation_rate, 0.01)
        self.assertTrue(cfg.stop.is_fixed_count)

    def test_capacity_follows_overshoot(self):
        self.assertEqual(GAConfig(population_size=10).capacity, 10)
        self.assertEqual(GAConfig(population_size=10, overshoot="keep").capacity, 11)

    def test_elites_must_fit_in_survivors(self):
        with self.assertRaises(ValidationError):
            GAConfig(population_size=4, elite_count=3)


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    # Configure logging to suppress noise during tests
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
