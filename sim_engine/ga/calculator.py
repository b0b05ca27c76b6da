"""
RTPCALC — RTP Calculator

Public entry point for calibrating win-range probabilities.

Usage:
    from sim_engine.ga import RtpCalculator
    calc = RtpCalculator(96.0)
    probs = calc.run([WinRange(payout=0), WinRange(payout=2), WinRange(payout=10)])

    # Or end to end, JSON in → JSON out
    path = calc.generate("win_ranges.json")
"""

from __future__ import annotations

import logging
import math
import random
from pathlib import Path
from typing import Callable, Optional, Sequence

from config.calibration_schema import GAConfig, WinRange
from config.settings import STORAGE_DIR, CalibrationSettings
from sim_engine.ga.driver import CalibrationResult, GeneticAlgorithm
from sim_engine.errors import InvalidTargetError, InvalidWinRangesError
from tools.rtp_io import load_win_ranges, parse_win_ranges, save_probabilities

logger = logging.getLogger("rtpcalc.ga")


class RtpCalculator:
    """Finds a distribution over win ranges whose expected payout matches the RTP.

    `target_ratio_percent` is a percentage (96 → target ratio 0.96).
    """

    FILE_NAME = CalibrationSettings.FILE_NAME

    def __init__(
        self,
        target_ratio_percent: float,
        config: GAConfig | None = None,
        rng: random.Random | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ):
        if not math.isfinite(target_ratio_percent):
            raise InvalidTargetError(f"Target RTP must be finite, got {target_ratio_percent}")
        self.rtp = target_ratio_percent / 100
        self.config = config or GAConfig()
        self.rng = rng
        self.should_cancel = should_cancel
        self._win_ranges: tuple[WinRange, ...] = ()
        self._result: Optional[CalibrationResult] = None
        self._file_path: Optional[Path] = None

    # ── Core ──

    def run(self, win_ranges: Sequence[WinRange | dict]) -> list[float]:
        """Run the genetic search and return probabilities in win-range order."""
        if not win_ranges:
            raise InvalidWinRangesError("Cannot calibrate an empty win-range set")
        if all(isinstance(w, WinRange) for w in win_ranges):
            tiers = tuple(win_ranges)
        else:
            tiers = parse_win_ranges([
                w.model_dump() if isinstance(w, WinRange) else w for w in win_ranges
            ])

        ga = GeneticAlgorithm(
            [w.payout for w in tiers], self.rtp,
            config=self.config, rng=self.rng, should_cancel=self.should_cancel,
        )
        self._win_ranges = tiers
        self._result = ga.run()
        return self.probabilities

    def generate(self, win_ranges_json_path: str | Path,
                 output_path: str | Path | None = None) -> Path:
        """Load win ranges, calibrate, persist. Returns the written file path.

        Raises WinRangeReadError, WinRangeParseError, InvalidWinRangesError,
        StorageError or ProbabilityWriteError.
        """
        tiers = load_win_ranges(win_ranges_json_path)
        target = Path(output_path) if output_path else STORAGE_DIR / self.FILE_NAME
        self.run(tiers)
        self._file_path = save_probabilities(self.probabilities, target)
        logger.info(
            f"RTP {self.rtp*100:.2f}%: {len(tiers)} tiers calibrated → {self._file_path}"
        )
        return self._file_path

    # ── Accessors ──

    @property
    def probabilities(self) -> list[float]:
        return list(self._result.probabilities) if self._result else []

    @property
    def win_ranges(self) -> tuple[WinRange, ...]:
        return self._win_ranges

    @property
    def result(self) -> Optional[CalibrationResult]:
        return self._result

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path

    def get_probabilities(self) -> list[float]:
        return self.probabilities

    def get_win_ranges(self) -> tuple[WinRange, ...]:
        return self.win_ranges

    def get_file_path(self) -> Optional[Path]:
        return self.file_path
