"""
RTPCALC — Population Model

Individuals are probability vectors aligned index-wise with the win-range
set. The population is a fixed-capacity arena: operators write into free
slots and the arena refuses writes once full.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Iterator, Optional


def normalize(values: list[float]) -> list[float]:
    """Scale a non-negative vector so it sums to 1.

    An all-zero vector becomes uniform.
    """
    total = sum(values)
    if total <= 0:
        n = len(values)
        return [1.0 / n] * n
    return [v / total for v in values]


@dataclass
class Individual:
    """One candidate distribution plus its fitness."""
    probabilities: list[float]
    fitness: float = 0.0

    def __len__(self) -> int:
        return len(self.probabilities)


def random_individual(n_tiers: int, rng: random.Random) -> Individual:
    """Independent uniform draws, normalized. Fitness left at 0."""
    return Individual(normalize([rng.random() for _ in range(n_tiers)]))


@dataclass
class Population:
    """Fixed-capacity indexed arena of Individuals."""
    capacity: int
    slots: list[Optional[Individual]] = field(default_factory=list)

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError(f"Population capacity must be >= 1, got {self.capacity}")
        if len(self.slots) > self.capacity:
            raise ValueError(
                f"{len(self.slots)} individuals exceed capacity {self.capacity}"
            )
        self._size = sum(1 for s in self.slots if s is not None)
        self.slots = [s for s in self.slots if s is not None]
        self.slots.extend([None] * (self.capacity - len(self.slots)))

    @classmethod
    def initialize(cls, n_tiers: int, size: int, rng: random.Random,
                   capacity: int = None) -> "Population":
        pop = cls(capacity=capacity or size)
        for _ in range(size):
            pop.add(random_individual(n_tiers, rng))
        return pop

    @classmethod
    def from_individuals(cls, individuals: list[Individual], capacity: int) -> "Population":
        return cls(capacity=capacity, slots=list(individuals))

    def add(self, individual: Individual) -> bool:
        """Write into the next free slot. Returns False when the arena is full."""
        if self._size >= self.capacity:
            return False
        self.slots[self._size] = individual
        self._size += 1
        return True

    @property
    def free_slots(self) -> int:
        return self.capacity - self._size

    def is_full(self) -> bool:
        return self._size >= self.capacity

    def members(self) -> list[Individual]:
        return self.slots[:self._size]

    def best(self) -> Individual:
        """Highest fitness, earliest slot on ties."""
        members = self.members()
        if not members:
            raise ValueError("Population is empty")
        best_idx = max(range(len(members)), key=lambda i: (members[i].fitness, -i))
        return members[best_idx]

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[Individual]:
        return iter(self.members())

    def __getitem__(self, idx: int) -> Individual:
        if idx < 0:
            idx += self._size
        if not 0 <= idx < self._size:
            raise IndexError(f"slot {idx} out of range for population of {self._size}")
        return self.slots[idx]
