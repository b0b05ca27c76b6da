"""
RTPCALC — Calibration Schema

Typed inputs for the genetic calibrator:
  - WinRange: one payout tier as delivered by the data producer
  - StopPolicy: when the generational loop ends
  - GAConfig: population / mutation / overshoot parameters

Usage:
    from config.calibration_schema import GAConfig, StopPolicy, WinRange
    cfg = GAConfig(seed=7, stop=StopPolicy(max_generations=500))
    tiers = [WinRange(payout=0), WinRange(payout=10)]
"""

from __future__ import annotations
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from config.settings import CalibrationSettings


# ═══════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════

class OvershootPolicy(str, Enum):
    TRUNCATE = "truncate"   # arena capacity == population_size
    KEEP = "keep"           # one extra slot, keeps both children of the last pair


class StopReason(str, Enum):
    MAX_GENERATIONS = "max_generations"
    TARGET_FITNESS = "target_fitness"
    STAGNATION = "stagnation"
    DEADLINE = "deadline"
    CANCELLED = "cancelled"


# ═══════════════════════════════════════════════════════════════
# Win Ranges
# ═══════════════════════════════════════════════════════════════

class WinRange(BaseModel):
    """One payout tier. Only `payout` feeds the search."""
    model_config = ConfigDict(frozen=True, extra="allow")

    payout: float = Field(ge=0, allow_inf_nan=False)
    ranges: list[float] = Field(default_factory=list)   # carried, not interpreted


# ═══════════════════════════════════════════════════════════════
# Search Configuration
# ═══════════════════════════════════════════════════════════════

class StopPolicy(BaseModel):
    """Generation budget plus opt-in early-exit criteria."""
    max_generations: int = Field(default=CalibrationSettings.NUM_GENERATIONS, ge=0)
    target_fitness: Optional[float] = Field(default=None, le=1.0)
    stagnation_generations: Optional[int] = Field(default=None, ge=1)
    deadline_seconds: Optional[float] = Field(default=None, gt=0)

    @property
    def is_fixed_count(self) -> bool:
        return (
            self.target_fitness is None
            and self.stagnation_generations is None
            and self.deadline_seconds is None
        )


class GAConfig(BaseModel):
    """Parameters for one genetic calibration run."""
    population_size: int = Field(default=CalibrationSettings.POPULATION_SIZE, ge=2)
    mutation_rate: float = Field(default=CalibrationSettings.MUTATION_RATE, ge=0.0, le=1.0)
    elite_count: int = Field(default=CalibrationSettings.ELITE_COUNT, ge=0)
    overshoot: OvershootPolicy = OvershootPolicy.TRUNCATE
    seed: Optional[int] = CalibrationSettings.SEED
    stop: StopPolicy = Field(default_factory=StopPolicy)

    @model_validator(mode="after")
    def _elites_fit_in_survivors(self):
        survivors = max(1, self.population_size // 2)
        if self.elite_count > survivors:
            raise ValueError(
                f"elite_count={self.elite_count} exceeds the {survivors} survivors "
                f"of a population of {self.population_size}"
            )
        return self

    @property
    def capacity(self) -> int:
        """Arena slots available while regrowing the population."""
        if self.overshoot == OvershootPolicy.KEEP:
            return self.population_size + 1
        return self.population_size
