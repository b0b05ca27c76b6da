"""
RTPCALC — Calibration Pipeline

One calibration run, end to end:

  Load win ranges → Genetic search → RTP proof → Persist

Every run writes into its own directory (STORAGE_DIR/<run_id>/) so
concurrent runs never share an output file:

  rtp_probabilities.json   distribution, win-range order
  rtp_report.json          RTP proof (contributions, checks, hash)
  calibration_result.json  search metadata (fitness, generations, stop reason)
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel

from config.calibration_schema import GAConfig
from config.settings import STORAGE_DIR, CalibrationSettings
from sim_engine.errors import InvalidTargetError
from sim_engine.ga import CalibrationResult, RtpCalculator
from tools.rtp_io import load_win_ranges, prepare_storage, save_probabilities, save_report
from tools.rtp_proof import build_rtp_proof

logger = logging.getLogger("rtpcalc.pipeline")
console = Console()


@dataclass
class CalibrationRun:
    run_id: str
    output_dir: Path
    result: CalibrationResult
    proof: dict
    probabilities_path: Path
    report_path: Optional[Path] = None
    result_path: Optional[Path] = None


def new_run_id() -> str:
    return f"{datetime.now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"


def run_calibration(
    win_ranges_path: str,
    target_rtp: float,
    output_dir: str | Path | None = None,
    run_id: str | None = None,
    config: GAConfig | None = None,
    write_report: bool = True,
    should_cancel: Callable[[], bool] | None = None,
) -> CalibrationRun:
    """Execute a full calibration run.

    Args:
        win_ranges_path: JSON file with the ordered win ranges
        target_rtp: target RTP percentage (96 → 0.96)
        output_dir: base storage directory (defaults to STORAGE_DIR)
        run_id: sub-directory name for this run (generated when omitted)
        config: GA parameters
        write_report: also write the proof and search metadata
        should_cancel: polled at every generation boundary

    Raises:
        CalibrationError subclasses for target/read/parse/storage/write failures.
    """
    if not math.isfinite(target_rtp):
        raise InvalidTargetError(f"Target RTP must be finite, got {target_rtp}")
    config = config or GAConfig()
    run_id = run_id or new_run_id()
    od = Path(output_dir) if output_dir else STORAGE_DIR
    od = od / run_id
    started = time.time()

    console.print(Panel(
        f"[bold]🎯 RTP Calibration[/bold]\n\n"
        f"Win ranges: {win_ranges_path}\n"
        f"Target RTP: {target_rtp:.2f}%\n"
        f"Population: {config.population_size}  Generations: {config.stop.max_generations}\n"
        f"Mutation: {config.mutation_rate}  Elites: {config.elite_count}  "
        f"Overshoot: {config.overshoot.value}\n"
        f"Seed: {config.seed if config.seed is not None else 'random'}\n"
        f"Run: {run_id}",
        title="Calibration Starting", border_style="cyan",
    ))

    # ══════════════════════════════════════════════════
    # STAGE 1: Load
    # ══════════════════════════════════════════════════
    console.print("\n[bold cyan]📥 Stage 1: Load win ranges[/bold cyan]")
    tiers = load_win_ranges(win_ranges_path)
    prepare_storage(od)
    payouts = [t.payout for t in tiers]
    console.print(f"   {len(tiers)} tiers, payouts {min(payouts):g}x – {max(payouts):g}x")
    if target_rtp / 100 > max(payouts) or target_rtp / 100 < min(payouts):
        console.print(
            f"[yellow]   ⚠️ Target {target_rtp:.2f}% lies outside the payout range; "
            f"best achievable fitness < 1[/yellow]"
        )

    # ══════════════════════════════════════════════════
    # STAGE 2: Genetic search
    # ══════════════════════════════════════════════════
    console.print("\n[bold yellow]🧬 Stage 2: Genetic search[/bold yellow]")
    calc = RtpCalculator(target_rtp, config=config, should_cancel=should_cancel)
    calc.run(tiers)
    result = calc.result
    console.print(f"[green]✅ Search complete:[/green]")
    console.print(result.summary())

    # ══════════════════════════════════════════════════
    # STAGE 3: Proof
    # ══════════════════════════════════════════════════
    console.print("\n[bold magenta]📜 Stage 3: RTP proof[/bold magenta]")
    proof = build_rtp_proof(tiers, result.probabilities, target_rtp)
    status = "✅ PASS" if proof["rtp_check"] == "PASS" else "❌ FAIL"
    console.print(
        f"   P_sum={proof['probability_sum_check']} RTP_check={status} "
        f"hash={proof['distribution_hash']}"
    )

    # ══════════════════════════════════════════════════
    # STAGE 4: Persist
    # ══════════════════════════════════════════════════
    console.print("\n[bold green]💾 Stage 4: Persist[/bold green]")
    run = CalibrationRun(
        run_id=run_id,
        output_dir=od,
        result=result,
        proof=proof,
        probabilities_path=save_probabilities(result.probabilities, od / CalibrationSettings.FILE_NAME),
    )
    if write_report:
        run.report_path = save_report(proof, od / CalibrationSettings.REPORT_NAME)
        run.result_path = save_report(
            {**result.to_dict(), "run_id": run_id, "win_ranges_path": str(win_ranges_path)},
            od / CalibrationSettings.RESULT_NAME,
        )

    elapsed = time.time() - started
    logger.info(f"Run {run_id} finished in {elapsed:.1f}s → {od}")
    console.print(Panel(
        f"[bold green]Distribution saved[/bold green]\n\n"
        f"{run.probabilities_path}\n"
        f"Achieved RTP: {result.expected_payout*100:.4f}% "
        f"(target {target_rtp:.2f}%)\n"
        f"Elapsed: {elapsed:.1f}s",
        title="Calibration Complete", border_style="green",
    ))
    return run
