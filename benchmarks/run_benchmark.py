#!/usr/bin/env python3
"""
Benchmark suite for markup-compressor.

Runs every analyzer step (each option on top of the previous ones) over the
HTML corpus and measures output size and timing.

Usage:
    python benchmarks/run_benchmark.py                        # basic run
    python benchmarks/run_benchmark.py --js-backend closure   # time Closure instead of rjsmin
    python benchmarks/run_benchmark.py --output results.json  # save to file
    python benchmarks/run_benchmark.py --iterations 20        # average over 20 runs
"""

from __future__ import annotations

import argparse
import datetime
import json
import platform
import statistics
import sys
import time
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path

# Ensure the src package is importable when running from repo root.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT / "src"))

from markup_compressor import HtmlCompressor, HtmlConfiguration, JsBackend, MissingCapability  # noqa: E402
from markup_compressor.analyzer import option_ladder  # noqa: E402


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class StepResult:
    """Benchmark result for a single (file, step) combination."""

    step: str
    original_chars: int
    compressed_chars: int
    ratio: float
    savings_pct: float
    mean_time_ms: float
    median_time_ms: float
    min_time_ms: float
    max_time_ms: float
    skipped: str | None = None


@dataclass(slots=True)
class FileResult:
    """Benchmark results for a single corpus file across all steps."""

    filename: str
    original_chars: int
    steps: list[StepResult] = field(default_factory=list)


@dataclass(slots=True)
class BenchmarkReport:
    """Full benchmark report."""

    timestamp: str
    python_version: str
    platform: str
    iterations: int
    js_backend: str
    files: list[FileResult] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_SEP = "-" * 110
_HEADER_FMT = "  {:<34s} {:>10s} {:>10s} {:>8s} {:>8s} {:>10s} {:>10s}"
_ROW_FMT = "  {:<34s} {:>10,d} {:>10,d} {:>7.1f}% {:>7.1f}% {:>9.2f}ms {:>9.2f}ms"


def _print_table_header() -> None:
    print(_HEADER_FMT.format("Step", "Orig", "Comp", "Ratio", "Saved", "Mean(ms)", "Med(ms)"))


def _print_table_row(r: StepResult) -> None:
    if r.skipped:
        print("  {:<34s} skipped: {}".format(r.step, r.skipped))
        return
    print(_ROW_FMT.format(
        r.step,
        r.original_chars,
        r.compressed_chars,
        r.ratio * 100,
        r.savings_pct,
        r.mean_time_ms,
        r.median_time_ms,
    ))


# ---------------------------------------------------------------------------
# Core benchmark logic
# ---------------------------------------------------------------------------


def benchmark_text(
    text: str,
    *,
    iterations: int = 10,
    js_backend: JsBackend = JsBackend.YUI,
) -> list[StepResult]:
    """Run every analyzer step over *text* and return timing results."""
    results: list[StepResult] = []
    config = HtmlConfiguration()

    for name, changes in option_ladder(js_backend):
        candidate = replace(config, **changes)
        compressor = HtmlCompressor(candidate)
        timings: list[float] = []
        compressed = ""

        try:
            for _ in range(iterations):
                t0 = time.perf_counter()
                compressed = compressor.compress(text)
                t1 = time.perf_counter()
                timings.append((t1 - t0) * 1000)  # ms
        except MissingCapability as e:
            results.append(StepResult(name, len(text), len(text), 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, skipped=str(e)))
            continue

        config = candidate
        orig_len = len(text)
        comp_len = len(compressed)
        ratio = comp_len / orig_len if orig_len > 0 else 1.0

        results.append(StepResult(
            step=name,
            original_chars=orig_len,
            compressed_chars=comp_len,
            ratio=ratio,
            savings_pct=(1.0 - ratio) * 100.0,
            mean_time_ms=statistics.mean(timings),
            median_time_ms=statistics.median(timings),
            min_time_ms=min(timings),
            max_time_ms=max(timings),
        ))

    return results


def run_benchmark(
    corpus_dir: Path,
    *,
    iterations: int = 10,
    js_backend: JsBackend = JsBackend.YUI,
    output_path: Path | None = None,
) -> BenchmarkReport:
    """Run the full benchmark over all corpus files."""
    report = BenchmarkReport(
        timestamp=datetime.datetime.now(datetime.timezone.utc).isoformat(),
        python_version=platform.python_version(),
        platform=platform.platform(),
        iterations=iterations,
        js_backend=js_backend.value,
    )

    corpus_files = sorted(corpus_dir.glob("*.html"))
    if not corpus_files:
        print(f"No .html files found in {corpus_dir}")
        sys.exit(1)

    print("\nmarkup-compressor benchmark")
    print(f"Python {platform.python_version()} on {platform.platform()}")
    print(f"Iterations per step: {iterations}")
    print(f"JavaScript backend: {js_backend.value}")
    print(_SEP)

    for fp in corpus_files:
        text = fp.read_text(encoding="utf-8")

        print(f"\n  File: {fp.name} ({len(text):,d} chars)")
        _print_table_header()

        step_results = benchmark_text(text, iterations=iterations, js_backend=js_backend)
        report.files.append(FileResult(filename=fp.name, original_chars=len(text), steps=step_results))

        for sr in step_results:
            _print_table_row(sr)

    # Summary across all files
    print(f"\n{_SEP}")
    print("  AGGREGATE SUMMARY")
    print(_SEP)
    _print_table_header()

    all_orig = sum(fr.original_chars for fr in report.files)
    for index, (name, _) in enumerate(option_ladder(js_backend)):
        ran = [fr.steps[index] for fr in report.files if not fr.steps[index].skipped]
        if not ran:
            _print_table_row(StepResult(name, all_orig, all_orig, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, skipped="all files"))
            continue
        all_comp = sum(sr.compressed_chars for sr in ran)
        step_orig = sum(sr.original_chars for sr in ran)
        ratio = all_comp / step_orig if step_orig > 0 else 1.0
        _print_table_row(StepResult(
            step=name,
            original_chars=step_orig,
            compressed_chars=all_comp,
            ratio=ratio,
            savings_pct=(1.0 - ratio) * 100.0,
            mean_time_ms=statistics.mean(sr.mean_time_ms for sr in ran),
            median_time_ms=statistics.median(sr.median_time_ms for sr in ran),
            min_time_ms=0.0,
            max_time_ms=0.0,
        ))

    print()

    # Optionally write JSON
    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(asdict(report), indent=2), encoding="utf-8")
        print(f"  Results saved to {output_path}")
        print()

    return report


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Benchmark suite for markup-compressor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--corpus",
        type=Path,
        default=Path(__file__).resolve().parent / "corpus",
        help="Directory with .html corpus files (default: benchmarks/corpus/)",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=10,
        help="Number of iterations per (file, step) to average timing (default: 10)",
    )
    parser.add_argument(
        "--js-backend",
        choices=[backend.value for backend in JsBackend],
        default=JsBackend.YUI.value,
        help="JavaScript compressor for the last step (default: yui)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Path to save JSON results (e.g. benchmarks/results.json)",
    )
    args = parser.parse_args()

    run_benchmark(
        corpus_dir=args.corpus,
        iterations=args.iterations,
        js_backend=JsBackend(args.js_backend),
        output_path=args.output,
    )


if __name__ == "__main__":
    main()
