#!/usr/bin/env python3
"""
RTPCALC — Calibration CLI

Usage:
    python -m tools.rtp_cli win_ranges.json --rtp 96
    python -m tools.rtp_cli win_ranges.json --rtp 95.5 --seed 42 --generations 2000
    python -m tools.rtp_cli win_ranges.json --rtp 96 --target-fitness 0.99999 --deadline 30
    python -m tools.rtp_cli win_ranges.json --rtp 96 --dump-config

Exit codes: 0 ok, 1 bad input (target / read / parse / empty), 2 storage or write failure.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError
from rich.console import Console

from config.calibration_schema import GAConfig, OvershootPolicy, StopPolicy
from config.settings import CalibrationSettings, LogConfig
from flows.rtp_pipeline import run_calibration
from sim_engine.errors import (
    InvalidTargetError, InvalidWinRangesError, ProbabilityWriteError, StorageError,
    WinRangeParseError, WinRangeReadError,
)

console = Console(stderr=True)

EXIT_OK = 0
EXIT_INPUT = 1
EXIT_OUTPUT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Calibrate win-range probabilities to a target RTP")
    parser.add_argument("win_ranges", type=str, help="JSON file with the ordered win ranges")
    parser.add_argument("--rtp", type=float, default=96.0, help="Target RTP percentage")
    parser.add_argument("--seed", type=int, default=CalibrationSettings.SEED)
    parser.add_argument("--population", type=int, default=CalibrationSettings.POPULATION_SIZE)
    parser.add_argument("--generations", type=int, default=CalibrationSettings.NUM_GENERATIONS)
    parser.add_argument("--mutation-rate", type=float, default=CalibrationSettings.MUTATION_RATE)
    parser.add_argument("--elites", type=int, default=CalibrationSettings.ELITE_COUNT,
                        help="Top survivors exempt from mutation (0 = none)")
    parser.add_argument("--overshoot", choices=[p.value for p in OvershootPolicy],
                        default=OvershootPolicy.TRUNCATE.value)
    parser.add_argument("--target-fitness", type=float, default=None,
                        help="Stop once the best fitness reaches this value")
    parser.add_argument("--stagnation", type=int, default=None,
                        help="Stop after N generations without improvement")
    parser.add_argument("--deadline", type=float, default=None,
                        help="Wall-clock budget in seconds")
    parser.add_argument("--output-dir", type=str, default=None)
    parser.add_argument("--run-id", type=str, default=None)
    parser.add_argument("--no-report", action="store_true")
    parser.add_argument("--dump-config", action="store_true")
    parser.add_argument("--log-level", type=str, default=None)
    return parser


def config_from_args(args: argparse.Namespace) -> GAConfig:
    return GAConfig(
        population_size=args.population,
        mutation_rate=args.mutation_rate,
        elite_count=args.elites,
        overshoot=OvershootPolicy(args.overshoot),
        seed=args.seed,
        stop=StopPolicy(
            max_generations=args.generations,
            target_fitness=args.target_fitness,
            stagnation_generations=args.stagnation,
            deadline_seconds=args.deadline,
        ),
    )


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    LogConfig.configure(args.log_level)

    try:
        config = config_from_args(args)
    except ValidationError as e:
        parser.error(f"invalid search parameters:\n{e}")

    if args.dump_config:
        print(config.model_dump_json(indent=2))
        return EXIT_OK

    try:
        run = run_calibration(
            args.win_ranges, args.rtp,
            output_dir=args.output_dir, run_id=args.run_id,
            config=config, write_report=not args.no_report,
        )
    except (WinRangeReadError, WinRangeParseError, InvalidWinRangesError, InvalidTargetError) as e:
        console.print(f"[red]❌ Input error: {e}[/red]")
        return EXIT_INPUT
    except (StorageError, ProbabilityWriteError) as e:
        console.print(f"[red]❌ Output error: {e}[/red]")
        return EXIT_OUTPUT

    print(run.probabilities_path)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
