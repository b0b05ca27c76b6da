"""
RTPCALC — Win-Range I/O

Boundary between the calibrator and the filesystem:
  • load_win_ranges()   JSON file → tuple[WinRange, ...]
  • prepare_storage()   create the output directory
  • save_probabilities() distribution → JSON array (atomic write)
  • save_report()       any JSON-able dict (atomic write)

Every failure is raised as a specific CalibrationError subclass so callers
can tell a bad input file from a full disk.

Accepted input shapes:
    [{"payout": 0, "ranges": [0, 0]}, {"payout": 10, "ranges": [1, 5]}]
    {"win_ranges": [...]}
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Sequence

from pydantic import ValidationError

from config.calibration_schema import WinRange
from config.settings import CalibrationSettings
from sim_engine.errors import (
    InvalidWinRangesError, ProbabilityWriteError, StorageError,
    WinRangeParseError, WinRangeReadError,
)

logger = logging.getLogger("rtpcalc.io")


# ═══════════════════════════════════════════════════════════════
# Input
# ═══════════════════════════════════════════════════════════════

def parse_win_ranges(data: Any) -> tuple[WinRange, ...]:
    """Validate decoded JSON into an ordered, immutable win-range set."""
    if isinstance(data, dict) and "win_ranges" in data:
        data = data["win_ranges"]
    if not isinstance(data, list):
        raise WinRangeParseError(
            f"Expected a JSON array of win ranges, got {type(data).__name__}"
        )
    if not data:
        raise InvalidWinRangesError("Win-range set is empty")

    tiers = []
    for idx, record in enumerate(data):
        if not isinstance(record, dict):
            raise WinRangeParseError(f"Win range #{idx} is not an object: {record!r}")
        try:
            tiers.append(WinRange.model_validate(record))
        except ValidationError as e:
            raise WinRangeParseError(f"Win range #{idx} is invalid: {e}") from e
    return tuple(tiers)


def load_win_ranges(path: str | Path) -> tuple[WinRange, ...]:
    """Read and parse a win-range JSON document."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise WinRangeReadError(f"Could not read win ranges from {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise WinRangeParseError(f"{path} is not valid JSON: {e}") from e

    tiers = parse_win_ranges(data)
    logger.info(f"Loaded {len(tiers)} win ranges from {path}")
    return tiers


# ═══════════════════════════════════════════════════════════════
# Output
# ═══════════════════════════════════════════════════════════════

def prepare_storage(directory: str | Path) -> Path:
    directory = Path(directory)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError(f"Could not create storage directory {directory}: {e}") from e
    return directory


def _atomic_write_json(payload: Any, path: Path, indent: int) -> Path:
    # Write to a sibling tmp file then rename, so readers never see a partial file
    tmp = path.with_name(f"{path.name}.{os.getpid()}-{uuid.uuid4().hex[:6]}.tmp")
    try:
        tmp.write_text(json.dumps(payload, indent=indent), encoding="utf-8")
        os.replace(tmp, path)
    except (OSError, TypeError, ValueError) as e:
        tmp.unlink(missing_ok=True)
        raise ProbabilityWriteError(f"Could not write {path}: {e}") from e
    return path


def save_probabilities(
    probabilities: Sequence[float],
    path: str | Path,
    indent: int = CalibrationSettings.JSON_INDENT,
) -> Path:
    """Persist the distribution as a JSON array in win-range order."""
    path = Path(path)
    prepare_storage(path.parent)
    _atomic_write_json([float(p) for p in probabilities], path, indent)
    logger.info(f"Saved {len(probabilities)} probabilities to {path}")
    return path


def save_report(report: dict, path: str | Path,
                indent: int = CalibrationSettings.JSON_INDENT) -> Path:
    path = Path(path)
    prepare_storage(path.parent)
    return _atomic_write_json(report, path, indent)
