"""Calibration error taxonomy.

The search itself never raises for a valid, non-empty win-range set.
Everything here originates at the I/O boundary, except
InvalidWinRangesError which guards the degenerate empty input.
"""


class CalibrationError(Exception):
    """Base class for every calibrator failure."""


class WinRangeReadError(CalibrationError):
    """Win-range source is missing or unreadable."""


class WinRangeParseError(CalibrationError):
    """Win-range source is not valid JSON or a record lacks a usable payout."""


class InvalidWinRangesError(CalibrationError):
    """Win-range set is empty."""


class StorageError(CalibrationError):
    """Output location could not be prepared."""


class ProbabilityWriteError(CalibrationError):
    """Calibrated distribution could not be written."""


class InvalidTargetError(CalibrationError, ValueError):
    """Target RTP is not a finite number."""
