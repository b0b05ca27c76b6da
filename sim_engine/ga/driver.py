"""
RTPCALC — Genetic Algorithm Driver

Runs the generational loop:

    Initialize → {Evaluate → Select → Crossover → Mutate} × G → Evaluate → Rank

G is StopPolicy.max_generations unless an opt-in criterion (target fitness,
stagnation, wall-clock deadline) or the cancellation hook ends the run
first. Cancellation and the deadline are checked at each generation
boundary. However the loop ends, the final population is evaluated and
ranked and the top individual's vector is returned.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from config.calibration_schema import GAConfig, StopReason
from sim_engine.ga.fitness import FitnessEvaluator
from sim_engine.ga.operators import CrossoverOperator, MutationOperator, SelectionOperator
from sim_engine.ga.population import Population

logger = logging.getLogger("rtpcalc.ga")

LOG_EVERY = 100  # generations between progress lines


@dataclass
class CalibrationResult:
    """Outcome of one calibration run."""
    probabilities: list[float]
    fitness: float
    expected_payout: float
    target_rtp: float                 # as a ratio, e.g. 0.96
    generations_run: int
    stop_reason: StopReason
    population_size: int
    seed: Optional[int] = None
    duration_seconds: float = 0.0
    history: list[float] = field(default_factory=list)   # best fitness per evaluation

    @property
    def rtp_delta(self) -> float:
        return abs(self.target_rtp - self.expected_payout)

    def summary(self) -> str:
        lines = [
            "═══ RTP Calibration ═══",
            f"  Tiers:       {len(self.probabilities)}",
            f"  Target RTP:  {self.target_rtp*100:.4f}%",
            f"  Achieved:    {self.expected_payout*100:.4f}%",
            f"  Delta:       {self.rtp_delta*100:.6f}%",
            f"  Fitness:     {self.fitness:.8f}",
            f"  Generations: {self.generations_run:,} ({self.stop_reason.value})",
            f"  Duration:    {self.duration_seconds:.2f}s",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "probabilities": self.probabilities,
            "fitness": self.fitness,
            "expected_payout": self.expected_payout,
            "target_rtp": self.target_rtp,
            "target_rtp_pct": round(self.target_rtp * 100, 6),
            "rtp_delta": self.rtp_delta,
            "generations_run": self.generations_run,
            "stop_reason": self.stop_reason.value,
            "population_size": self.population_size,
            "seed": self.seed,
            "duration_s": round(self.duration_seconds, 3),
            "history": {
                "first": self.history[0] if self.history else None,
                "last": self.history[-1] if self.history else None,
                "evaluations": len(self.history),
            },
        }


class GeneticAlgorithm:
    """Evolves probability vectors whose expected payout approaches `target`.

    Args:
        payouts: payout per tier, in win-range order (must be non-empty)
        target: target return as a ratio (0.96, not 96)
        config: population, mutation and stopping parameters
        rng: injected random source; built from config.seed when omitted
        should_cancel: polled once per generation, truthy result stops the run
        clock: monotonic clock used for the deadline
    """

    def __init__(
        self,
        payouts: Sequence[float],
        target: float,
        config: GAConfig | None = None,
        rng: random.Random | None = None,
        should_cancel: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not payouts:
            raise ValueError("GeneticAlgorithm needs at least one payout tier")
        self.config = config or GAConfig()
        self.rng = rng if rng is not None else random.Random(self.config.seed)
        self.n_tiers = len(payouts)
        self.evaluator = FitnessEvaluator(payouts, target)
        self.selection = SelectionOperator(self.config.capacity)
        self.crossover = CrossoverOperator(self.config.population_size, self.rng)
        self.mutation = MutationOperator(self.config.mutation_rate, self.rng, self.config.elite_count)
        self.should_cancel = should_cancel
        self.clock = clock

    def initialize(self) -> Population:
        return Population.initialize(
            self.n_tiers, self.config.population_size, self.rng, capacity=self.config.capacity,
        )

    def step(self, population: Population) -> Population:
        """One select → crossover → mutate cycle on an evaluated population."""
        survivors = self.selection.select(population)
        grown = self.crossover.crossover(survivors)
        return self.mutation.mutate(grown)

    def _boundary_stop(self, started: float) -> Optional[StopReason]:
        if self.should_cancel is not None and self.should_cancel():
            return StopReason.CANCELLED
        deadline = self.config.stop.deadline_seconds
        if deadline is not None and self.clock() - started >= deadline:
            return StopReason.DEADLINE
        return None

    def run(self) -> CalibrationResult:
        stop = self.config.stop
        started = self.clock()
        logger.info(
            f"GA start: tiers={self.n_tiers} target={self.evaluator.target:.6f} "
            f"pop={self.config.population_size} generations={stop.max_generations} "
            f"mutation={self.config.mutation_rate} seed={self.config.seed}"
        )

        population = self.initialize()
        history: list[float] = []
        reason = StopReason.MAX_GENERATIONS
        best_seen = float("-inf")
        stale = 0
        generations = 0
        evaluated = False

        while generations < stop.max_generations:
            boundary = self._boundary_stop(started)
            if boundary is not None:
                reason = boundary
                break

            self.evaluator.evaluate(population)
            evaluated = True
            best = population.best().fitness
            history.append(best)

            if stop.target_fitness is not None and best >= stop.target_fitness:
                reason = StopReason.TARGET_FITNESS
                break
            if best > best_seen:
                best_seen, stale = best, 0
            else:
                stale += 1
                if stop.stagnation_generations is not None and stale >= stop.stagnation_generations:
                    reason = StopReason.STAGNATION
                    break

            population = self.step(population)
            evaluated = False
            generations += 1
            if generations % LOG_EVERY == 0:
                logger.debug(f"Generation {generations}: best fitness {best:.8f}")

        if reason != StopReason.MAX_GENERATIONS:
            logger.info(f"GA stopped early after {generations} generations: {reason.value}")

        if not evaluated:
            self.evaluator.evaluate(population)
            history.append(population.best().fitness)
        champion = SelectionOperator.rank(population)[0]

        result = CalibrationResult(
            probabilities=list(champion.probabilities),
            fitness=champion.fitness,
            expected_payout=self.evaluator.expected_payout(champion.probabilities),
            target_rtp=self.evaluator.target,
            generations_run=generations,
            stop_reason=reason,
            population_size=self.config.population_size,
            seed=self.config.seed,
            duration_seconds=self.clock() - started,
            history=history,
        )
        logger.info(
            f"GA done: fitness={result.fitness:.8f} expected={result.expected_payout:.6f} "
            f"in {result.duration_seconds:.2f}s"
        )
        return result
