"""
RTPCALC — RTP Proof

Certification-style proof that a calibrated distribution hits its target:
  - Per-tier contribution P × payout
  - Σ P == 1 check
  - Σ P × payout vs target RTP check
  - Distribution hash for audit trails

Usage:
    from tools.rtp_proof import build_rtp_proof
    proof = build_rtp_proof(win_ranges, probabilities, target_rtp_pct=96.0)
    print(proof["rtp_check"])   # "PASS" | "FAIL"
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Sequence

from config.calibration_schema import WinRange
from config.settings import CalibrationSettings


def distribution_hash(win_ranges: Sequence[WinRange], probabilities: Sequence[float]) -> str:
    data = json.dumps(
        [(w.payout, round(p, 12)) for w, p in zip(win_ranges, probabilities)],
        sort_keys=True,
    )
    return hashlib.sha256(data.encode()).hexdigest()[:16]


def build_rtp_proof(
    win_ranges: Sequence[WinRange],
    probabilities: Sequence[float],
    target_rtp_pct: float,
    tolerance: float = CalibrationSettings.RTP_TOLERANCE,
) -> dict:
    """Tabulate contributions and check the distribution against the target."""
    if len(win_ranges) != len(probabilities):
        raise ValueError(
            f"{len(probabilities)} probabilities for {len(win_ranges)} win ranges"
        )

    entries = []
    total = 0.0
    for idx, (tier, p) in enumerate(zip(win_ranges, probabilities)):
        contribution = p * tier.payout
        entries.append({
            "tier": idx,
            "payout": tier.payout,
            "P": round(p, 10),
            "P×payout": round(contribution, 10),
        })
        total += contribution

    target = target_rtp_pct / 100.0
    prob_sum = sum(probabilities)
    in_range = all(0.0 <= p <= 1.0 for p in probabilities)
    sum_ok = abs(prob_sum - 1.0) < CalibrationSettings.PROBABILITY_SUM_TOLERANCE
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "distribution_hash": distribution_hash(win_ranges, probabilities),
        "target_rtp": round(target, 8),
        "target_rtp_pct": round(target_rtp_pct, 4),
        "achieved_rtp": round(total, 8),
        "achieved_rtp_pct": round(total * 100, 4),
        "rtp_delta": round(abs(total - target), 10),
        "probability_sum": round(prob_sum, 10),
        "probability_sum_check": "PASS" if sum_ok and in_range else "FAIL",
        "rtp_check": "PASS" if abs(total - target) < tolerance else "FAIL",
        "tolerance": tolerance,
        "n_tiers": len(entries),
        "entries": entries,
    }
