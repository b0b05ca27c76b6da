"""
RTPCALC — Genetic Win-Range Calibrator

Evolves a probability distribution over ordered payout tiers so that the
expected payout matches a target RTP.

Usage:
    from sim_engine.ga import RtpCalculator
    calc = RtpCalculator(96.0)
    probabilities = calc.run(win_ranges)
    print(calc.result.summary())
"""

from sim_engine.ga.calculator import RtpCalculator
from sim_engine.ga.driver import CalibrationResult, GeneticAlgorithm
from sim_engine.errors import (
    CalibrationError, InvalidTargetError, InvalidWinRangesError, ProbabilityWriteError,
    StorageError, WinRangeParseError, WinRangeReadError,
)
from sim_engine.ga.fitness import FitnessEvaluator
from sim_engine.ga.operators import CrossoverOperator, MutationOperator, SelectionOperator
from sim_engine.ga.population import Individual, Population, normalize

__all__ = [
    "RtpCalculator", "GeneticAlgorithm", "CalibrationResult",
    "FitnessEvaluator", "SelectionOperator", "CrossoverOperator", "MutationOperator",
    "Individual", "Population", "normalize",
    "CalibrationError", "WinRangeReadError", "WinRangeParseError",
    "InvalidTargetError", "InvalidWinRangesError", "StorageError", "ProbabilityWriteError",
]
