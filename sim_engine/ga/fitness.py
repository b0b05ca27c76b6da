"""Fitness scoring against the target return ratio."""

from __future__ import annotations

from typing import Sequence

from sim_engine.ga.population import Population


class FitnessEvaluator:
    """fitness = 1 - |target - Σ p_i · payout_i|

    Maximal (exactly 1.0) when the expected payout equals the target.
    """

    def __init__(self, payouts: Sequence[float], target: float):
        self.payouts = tuple(float(p) for p in payouts)
        self.target = target

    def expected_payout(self, probabilities: Sequence[float]) -> float:
        return sum(p * m for p, m in zip(probabilities, self.payouts))

    def score(self, probabilities: Sequence[float]) -> float:
        return 1 - abs(self.target - self.expected_payout(probabilities))

    def evaluate(self, population: Population) -> Population:
        for individual in population:
            individual.fitness = self.score(individual.probabilities)
        return population
