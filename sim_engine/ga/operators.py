"""
RTPCALC — Genetic Operators

Selection, single-point crossover and single-locus mutation over a
Population arena. Every operator takes the random source explicitly so a
seeded random.Random reproduces a run exactly.
"""

from __future__ import annotations

import random

from sim_engine.ga.population import Individual, Population, normalize


class SelectionOperator:
    """Rank by fitness (descending, ties by original slot) and keep the top half."""

    def __init__(self, capacity: int):
        self.capacity = capacity

    @staticmethod
    def rank(population: Population) -> list[Individual]:
        members = population.members()
        order = sorted(range(len(members)), key=lambda i: (-members[i].fitness, i))
        return [members[i] for i in order]

    def select(self, population: Population) -> Population:
        ranked = self.rank(population)
        keep = max(1, len(ranked) // 2)
        return Population.from_individuals(ranked[:keep], self.capacity)


class CrossoverOperator:
    """Single-point crossover that regrows the survivors to the target size.

    Parents are drawn with replacement from the survivors only, so a parent
    may pair with itself. Children go into free arena slots; when the arena
    is full the second child of the last pair is dropped.
    """

    def __init__(self, target_size: int, rng: random.Random):
        self.target_size = target_size
        self.rng = rng

    @staticmethod
    def split(parent1: list[float], parent2: list[float], point: int) -> tuple[list[float], list[float]]:
        """Raw (unnormalized) children for a cut at `point`."""
        return (
            parent1[:point] + parent2[point:],
            parent2[:point] + parent1[point:],
        )

    def cut_point(self, n_tiers: int) -> int:
        # A single tier has no interior cut; children copy their parents.
        if n_tiers < 2:
            return n_tiers
        return self.rng.randint(1, n_tiers - 1)

    def crossover(self, population: Population) -> Population:
        parents = population.members()
        n_parents = len(parents)
        while len(population) < self.target_size and not population.is_full():
            parent1 = parents[self.rng.randrange(n_parents)]
            parent2 = parents[self.rng.randrange(n_parents)]
            point = self.cut_point(len(parent1))

            child_a, child_b = self.split(parent1.probabilities, parent2.probabilities, point)
            population.add(Individual(normalize(child_a)))
            population.add(Individual(normalize(child_b)))
        return population


class MutationOperator:
    """With probability `rate`, redraw one gene of an individual and renormalize.

    The first `elite_count` slots hold the top-ranked survivors after
    selection and are never mutated.
    """

    def __init__(self, rate: float, rng: random.Random, elite_count: int = 0):
        self.rate = rate
        self.rng = rng
        self.elite_count = elite_count

    def mutate_individual(self, individual: Individual) -> Individual:
        genes = individual.probabilities
        idx = self.rng.randrange(len(genes))
        genes[idx] = self.rng.random()
        individual.probabilities = normalize(genes)
        return individual

    def mutate(self, population: Population) -> Population:
        for slot, individual in enumerate(population):
            if slot < self.elite_count:
                continue
            if self.rng.random() < self.rate:
                self.mutate_individual(individual)
        return population
