"""
RTPCALC — Configuration & Defaults

Environment-driven defaults for the win-range calibrator.
- Genetic search parameters (population, generations, mutation)
- Storage location for calibrated distributions
- Logging level for the CLI / pipeline entry points

Every value can be overridden from the environment or a local .env file.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

STORAGE_DIR = Path(os.getenv("RTP_STORAGE_DIR", "./storage"))

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_DATEFMT = "%H:%M:%S"


def _optional_int(key: str):
    raw = os.getenv(key, "")
    return int(raw) if raw.strip() else None


# ============================================================
# Genetic Search Configuration
#
# Reference behavior: 100 individuals, 1000 generations, 1% mutation.
# No early exit unless one of the opt-in stopping criteria is set
# on the StopPolicy (see config/calibration_schema.py).
# ============================================================

class CalibrationSettings:
    POPULATION_SIZE = int(os.getenv("RTP_POPULATION_SIZE", "100"))
    NUM_GENERATIONS = int(os.getenv("RTP_NUM_GENERATIONS", "1000"))
    MUTATION_RATE = float(os.getenv("RTP_MUTATION_RATE", "0.01"))
    ELITE_COUNT = int(os.getenv("RTP_ELITE_COUNT", "1"))   # survivors exempt from mutation
    SEED = _optional_int("RTP_SEED")                       # None = nondeterministic

    FILE_NAME = "rtp_probabilities.json"
    REPORT_NAME = "rtp_report.json"
    RESULT_NAME = "calibration_result.json"
    JSON_INDENT = 4

    # Proof tolerances (paytable certification style)
    PROBABILITY_SUM_TOLERANCE = 1e-6
    RTP_TOLERANCE = float(os.getenv("RTP_PROOF_TOLERANCE", "0.001"))


class LogConfig:
    LEVEL = os.getenv("RTP_LOG_LEVEL", "INFO").upper()

    @classmethod
    def configure(cls, level: str = None) -> None:
        """Install the structured log format. Entry points only."""
        logging.basicConfig(
            level=getattr(logging, (level or cls.LEVEL).upper(), logging.INFO),
            format=LOG_FORMAT,
            datefmt=LOG_DATEFMT,
        )
