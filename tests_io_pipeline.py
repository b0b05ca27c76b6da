#!/usr/bin/env python3
"""
Tests for the calibration boundary: I/O, RTP proof, pipeline and CLI

Validates:
1.  load_win_ranges accepts a bare array and a {"win_ranges": [...]} object
2.  Missing file → WinRangeReadError
3.  Malformed JSON / bad records → WinRangeParseError
4.  Empty set → InvalidWinRangesError
5.  save_probabilities writes a JSON array atomically (no tmp left behind,
    also with concurrent writers on one path)
6.  Uncreatable directory → StorageError, unwritable target → ProbabilityWriteError
7.  RtpCalculator.generate writes the distribution and exposes file_path
8.  build_rtp_proof PASS / FAIL checks
9.  run_calibration writes all three artifacts into a per-run directory;
    a NaN / inf target is rejected before any directory is created
10. CLI exit codes for success, input errors (incl. --rtp nan) and output errors
"""

import json
import sys
import tempfile
import threading
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.calibration_schema import GAConfig, StopPolicy, WinRange
from sim_engine.errors import (
    CalibrationError, InvalidTargetError, InvalidWinRangesError, ProbabilityWriteError,
    StorageError, WinRangeParseError, WinRangeReadError,
)
from tools.rtp_io import load_win_ranges, parse_win_ranges, save_probabilities, save_report
from tools.rtp_proof import build_rtp_proof

TIERS = [
    {"payout": 0, "ranges": [0, 0]},
    {"payout": 0.5, "ranges": [1, 2]},
    {"payout": 2, "ranges": [3, 5]},
    {"payout": 10, "ranges": [6, 9]},
]


def _write(tmp: str, name: str, content) -> Path:
    path = Path(tmp) / name
    path.write_text(content if isinstance(content, str) else json.dumps(content), encoding="utf-8")
    return path


def _expect(exc_type, fn, *args, **kwargs):
    try:
        fn(*args, **kwargs)
    except exc_type as e:
        assert isinstance(e, CalibrationError), f"{type(e).__name__} is not a CalibrationError"
        return e
    raise AssertionError(f"{fn.__name__} did not raise {exc_type.__name__}")


def _quick_config() -> GAConfig:
    return GAConfig(seed=5, stop=StopPolicy(max_generations=40))


# ============================================================
# Loader
# ============================================================

def test_load_array_and_wrapped_object():
    """Both accepted input shapes load to the same ordered tiers."""
    with tempfile.TemporaryDirectory() as tmp:
        bare = load_win_ranges(_write(tmp, "bare.json", TIERS))
        wrapped = load_win_ranges(_write(tmp, "wrapped.json", {"win_ranges": TIERS}))

    assert bare == wrapped
    assert [t.payout for t in bare] == [0, 0.5, 2, 10]
    assert bare[3].ranges == [6, 9]
    assert isinstance(bare, tuple)
    print("✅ Loader: bare array and wrapped object")


def test_missing_file_is_read_error():
    with tempfile.TemporaryDirectory() as tmp:
        e = _expect(WinRangeReadError, load_win_ranges, Path(tmp) / "nope.json")
    assert isinstance(e.__cause__, OSError)
    print("✅ Loader: missing file → WinRangeReadError")


def test_malformed_inputs_are_parse_errors():
    with tempfile.TemporaryDirectory() as tmp:
        _expect(WinRangeParseError, load_win_ranges, _write(tmp, "bad.json", "[{payout: 1"))
        _expect(WinRangeParseError, load_win_ranges, _write(tmp, "obj.json", {"tiers": []}))
    _expect(WinRangeParseError, parse_win_ranges, [{"ranges": [1]}])
    _expect(WinRangeParseError, parse_win_ranges, [{"payout": "lots"}])
    _expect(WinRangeParseError, parse_win_ranges, [{"payout": -2}])
    _expect(WinRangeParseError, parse_win_ranges, [3, 4])
    print("✅ Loader: malformed JSON / records → WinRangeParseError")


def test_empty_set_is_invalid():
    _expect(InvalidWinRangesError, parse_win_ranges, [])
    _expect(InvalidWinRangesError, parse_win_ranges, {"win_ranges": []})
    print("✅ Loader: empty set → InvalidWinRangesError")


# ============================================================
# Persister
# ============================================================

def test_save_probabilities_writes_json_array():
    with tempfile.TemporaryDirectory() as tmp:
        path = save_probabilities([0.25, 0.75], Path(tmp) / "nested" / "out.json")
        assert json.loads(path.read_text()) == [0.25, 0.75]
        leftovers = list(path.parent.glob("*.tmp"))
        assert leftovers == [], f"tmp files left behind: {leftovers}"
    print("✅ Persister: JSON array, parent created, no tmp residue")


def test_storage_error_when_parent_is_a_file():
    with tempfile.TemporaryDirectory() as tmp:
        blocker = _write(tmp, "blocker", "not a directory")
        _expect(StorageError, save_probabilities, [1.0], blocker / "sub" / "out.json")
    print("✅ Persister: uncreatable directory → StorageError")


def test_write_error_when_target_is_a_directory():
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "taken"
        target.mkdir()
        _expect(ProbabilityWriteError, save_probabilities, [1.0], target)
        assert list(Path(tmp).glob("*.tmp")) == []
    print("✅ Persister: unwritable target → ProbabilityWriteError")


def test_save_report_round_trips_dict():
    with tempfile.TemporaryDirectory() as tmp:
        path = save_report({"a": 1, "b": [1, 2]}, Path(tmp) / "r.json")
        assert json.loads(path.read_text()) == {"a": 1, "b": [1, 2]}
    print("✅ Persister: report dict")


def test_concurrent_saves_to_one_path():
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "shared.json"
        vectors = [[i / 10, 1 - i / 10] for i in range(8)]
        errors = []

        def worker(vec):
            try:
                save_probabilities(vec, target)
            except CalibrationError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(v,)) for v in vectors]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == [], f"concurrent writes failed: {errors}"
        assert json.loads(target.read_text()) in vectors
        assert list(Path(tmp).glob("*.tmp")) == []
    print("✅ Persister: concurrent writers to one path leave valid JSON, no tmp residue")


# ============================================================
# RtpCalculator.generate
# ============================================================

def test_generate_end_to_end():
    from sim_engine.ga import RtpCalculator

    with tempfile.TemporaryDirectory() as tmp:
        src = _write(tmp, "win_ranges.json", TIERS)
        calc = RtpCalculator(96, config=_quick_config())
        out = calc.generate(src, output_path=Path(tmp) / "storage" / RtpCalculator.FILE_NAME)

        assert out == calc.file_path == calc.get_file_path()
        saved = json.loads(out.read_text())
        assert saved == calc.probabilities
        assert len(saved) == len(TIERS)
        assert abs(sum(saved) - 1.0) < 1e-9
    print("✅ generate: distribution persisted and exposed")


def test_generate_propagates_read_error():
    from sim_engine.ga import RtpCalculator

    with tempfile.TemporaryDirectory() as tmp:
        calc = RtpCalculator(96, config=_quick_config())
        _expect(WinRangeReadError, calc.generate, Path(tmp) / "missing.json")
        assert calc.file_path is None
    print("✅ generate: read error propagated, nothing written")


# ============================================================
# RTP proof
# ============================================================

def test_rtp_proof_pass():
    tiers = [WinRange(payout=0), WinRange(payout=1)]
    proof = build_rtp_proof(tiers, [0.5, 0.5], target_rtp_pct=50)
    assert proof["probability_sum_check"] == "PASS"
    assert proof["rtp_check"] == "PASS"
    assert proof["achieved_rtp"] == 0.5
    assert proof["n_tiers"] == 2
    assert proof["entries"][1]["P×payout"] == 0.5
    assert len(proof["distribution_hash"]) == 16
    print("✅ Proof: exact distribution passes")


def test_rtp_proof_fail():
    tiers = [WinRange(payout=0), WinRange(payout=10)]
    proof = build_rtp_proof(tiers, [0.5, 0.5], target_rtp_pct=50)
    assert proof["rtp_check"] == "FAIL"
    proof = build_rtp_proof(tiers, [0.5, 0.6], target_rtp_pct=50)
    assert proof["probability_sum_check"] == "FAIL"
    try:
        build_rtp_proof(tiers, [1.0], target_rtp_pct=50)
    except ValueError:
        pass
    else:
        raise AssertionError("length mismatch accepted")
    print("✅ Proof: off-target / bad sum / length mismatch")


# ============================================================
# Pipeline + CLI
# ============================================================

def test_pipeline_writes_per_run_directory():
    from flows.rtp_pipeline import run_calibration

    with tempfile.TemporaryDirectory() as tmp:
        src = _write(tmp, "win_ranges.json", [{"payout": 0}, {"payout": 10}])
        run = run_calibration(
            str(src), 50, output_dir=tmp, run_id="run-a",
            config=GAConfig(seed=42),
        )
        assert run.output_dir == Path(tmp) / "run-a"
        probs = json.loads(run.probabilities_path.read_text())
        assert abs(probs[1] - 0.05) < 0.01
        report = json.loads(run.report_path.read_text())
        assert report["probability_sum_check"] == "PASS"
        meta = json.loads(run.result_path.read_text())
        assert meta["run_id"] == "run-a"
        assert meta["generations_run"] == 1000
        assert abs(run.result.expected_payout - 0.5) < 0.01
    print("✅ Pipeline: three artifacts in STORAGE/<run_id>/")


def test_pipeline_runs_do_not_collide():
    from flows.rtp_pipeline import run_calibration

    with tempfile.TemporaryDirectory() as tmp:
        src = _write(tmp, "win_ranges.json", TIERS)
        a = run_calibration(str(src), 96, output_dir=tmp, config=_quick_config(), write_report=False)
        b = run_calibration(str(src), 96, output_dir=tmp, config=_quick_config(), write_report=False)
        assert a.run_id != b.run_id
        assert a.probabilities_path != b.probabilities_path
        assert a.report_path is None
    print("✅ Pipeline: generated run ids keep outputs apart")


def test_pipeline_rejects_non_finite_target():
    from flows.rtp_pipeline import run_calibration

    with tempfile.TemporaryDirectory() as tmp:
        src = _write(tmp, "win_ranges.json", TIERS)
        for target in (float("nan"), float("inf")):
            e = _expect(InvalidTargetError, run_calibration, str(src), target,
                        output_dir=tmp, run_id="never", config=_quick_config())
            assert isinstance(e, ValueError)
        assert not (Path(tmp) / "never").exists()
    print("✅ Pipeline: NaN / inf target rejected before storage is touched")


def test_cli_exit_codes():
    from tools.rtp_cli import EXIT_INPUT, EXIT_OK, EXIT_OUTPUT, main

    with tempfile.TemporaryDirectory() as tmp:
        src = _write(tmp, "win_ranges.json", TIERS)
        common = ["--seed", "3", "--generations", "20", "--log-level", "WARNING"]

        rc = main([str(src), "--rtp", "96", "--output-dir", tmp, "--run-id", "cli", *common])
        assert rc == EXIT_OK
        assert (Path(tmp) / "cli" / "rtp_probabilities.json").exists()
        assert (Path(tmp) / "cli" / "rtp_report.json").exists()

        rc = main([str(Path(tmp) / "missing.json"), *common])
        assert rc == EXIT_INPUT

        empty = _write(tmp, "empty.json", [])
        assert main([str(empty), *common]) == EXIT_INPUT

        blocker = _write(tmp, "blocker", "file")
        rc = main([str(src), "--output-dir", str(blocker), *common])
        assert rc == EXIT_OUTPUT

        assert main([str(src), "--dump-config", *common]) == EXIT_OK

        for bad in ("nan", "inf"):
            rc = main([str(src), "--rtp", bad, "--output-dir", tmp, "--run-id", f"bad-{bad}", *common])
            assert rc == EXIT_INPUT, f"--rtp {bad} → {rc}"
            assert not (Path(tmp) / f"bad-{bad}").exists(), f"--rtp {bad} created a run directory"
    print("✅ CLI: exit codes 0 / 1 / 2")


def test_cli_rejects_bad_parameters():
    from tools.rtp_cli import main

    try:
        main(["whatever.json", "--mutation-rate", "1.5"])
    except SystemExit as e:
        assert e.code == 2
    else:
        raise AssertionError("mutation rate 1.5 accepted")
    print("✅ CLI: invalid search parameters rejected by the parser")


# ============================================================
# Run all tests
# ============================================================

if __name__ == "__main__":
    tests = [
        test_load_array_and_wrapped_object,
        test_missing_file_is_read_error,
        test_malformed_inputs_are_parse_errors,
        test_empty_set_is_invalid,
        test_save_probabilities_writes_json_array,
        test_storage_error_when_parent_is_a_file,
        test_write_error_when_target_is_a_directory,
        test_save_report_round_trips_dict,
        test_concurrent_saves_to_one_path,
        test_generate_end_to_end,
        test_generate_propagates_read_error,
        test_rtp_proof_pass,
        test_rtp_proof_fail,
        test_pipeline_writes_per_run_directory,
        test_pipeline_runs_do_not_collide,
        test_pipeline_rejects_non_finite_target,
        test_cli_exit_codes,
        test_cli_rejects_bad_parameters,
    ]

    print(f"\n{'='*60}")
    print(f"I/O + Pipeline Tests — {len(tests)} tests")
    print(f"{'='*60}\n")

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"❌ {test.__name__}: {e}")
            failed += 1
        print()

    print(f"{'='*60}")
    print(f"Results: {passed} passed, {failed} failed, {passed + failed} total")
    print(f"{'='*60}")

    sys.exit(0 if failed == 0 else 1)
