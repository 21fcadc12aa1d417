"""Analyzer: compresses one page with a growing set of options and reports the gains.

Every step is applied on top of the previous ones, so the report shows what
each option adds. Steps that need a missing backend are reported as skipped
and not carried forward.

Usage:
    python -m markup_compressor.analyzer page.html
    cat page.html | python -m markup_compressor.analyzer --js-backend closure
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path

from markup_compressor.compressor import HtmlCompressor
from markup_compressor.config import HtmlConfiguration, JsBackend
from markup_compressor.errors import CompressorError, MissingCapability
from markup_compressor.logging_config import configure

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AnalysisStep:
    """Outcome of one configuration in the ladder."""

    name: str
    size: int                      # UTF-8 bytes of the output
    incremental_gain: int          # bytes saved compared to the previous step
    total_gain: int                # bytes saved compared to the original
    options: dict[str, object] = field(default_factory=dict)  # HtmlConfiguration fields set by the step
    skipped: str | None = None     # reason, when the step could not run


@dataclass(slots=True)
class AnalysisReport:
    """All steps of one analyzer run."""

    original_size: int
    js_backend: str
    steps: list[AnalysisStep] = field(default_factory=list)

    def recommended_options(self) -> dict[str, object]:
        """HtmlConfiguration fields of the steps that made the page smaller."""
        options: dict[str, object] = {}
        for step in self.steps:
            if not step.skipped and step.incremental_gain > 0:
                options.update(step.options)
        return options


_ALL_OFF: dict[str, object] = {
    "remove_comments": False,
    "remove_multi_spaces": False,
    "remove_spaces_inside_tags": False,
    "trim": False,
}


def option_ladder(js_backend: JsBackend) -> list[tuple[str, dict[str, object]]]:
    """(name, configuration changes applied on top of the previous step) for each analyzer step."""
    return [
        ("Compression disabled", {"enabled": False}),
        ("All settings disabled", {"enabled": True, **_ALL_OFF}),
        ("Comments removed", {"remove_comments": True}),
        ("Multiple spaces removed", {"remove_multi_spaces": True, "remove_spaces_inside_tags": True, "trim": True}),
        ("No intertag spaces", {"remove_intertag_spaces": True}),
        ("No surrounding spaces (min)", {"remove_surrounding_spaces": "min"}),
        ("No surrounding spaces (max)", {"remove_surrounding_spaces": "max"}),
        ("No surrounding spaces (all)", {"remove_surrounding_spaces": "all"}),
        ("No quotes", {"remove_quotes": True}),
        ("Link attributes removed", {"remove_link_attributes": True}),
        ("Style attributes removed", {"remove_style_attributes": True}),
        ("Script attributes removed", {"remove_script_attributes": True}),
        ("Form attributes removed", {"remove_form_attributes": True}),
        ("Input attributes removed", {"remove_input_attributes": True}),
        ("Simple boolean attributes", {"simple_boolean_attributes": True}),
        ("Simple doctype", {"simple_doctype": True}),
        ("Remove js pseudo-protocol", {"remove_javascript_protocol": True}),
        ("Remove http protocol", {"remove_http_protocol": True}),
        ("Remove https protocol", {"remove_https_protocol": True}),
        ("Compress inline CSS", {"compress_css": True}),
        (f"Compress inline JS ({js_backend.value})", {"compress_javascript": True, "js_backend": js_backend.value}),
    ]


def _size(text: str) -> int:
    return len(text.encode("utf-8"))


def analyze(document: str, js_backend: JsBackend | str = JsBackend.YUI) -> AnalysisReport:
    """Run the option ladder over *document*.

    Args:
        document: HTML page.
        js_backend: Backend used by the JavaScript step.

    Returns:
        AnalysisReport with one step per option.
    """
    backend = JsBackend(js_backend)
    original_size = _size(document)
    report = AnalysisReport(original_size=original_size, js_backend=backend.value)

    config = HtmlConfiguration()
    previous_size = original_size
    for name, changes in option_ladder(backend):
        candidate = replace(config, **changes)
        try:
            size = _size(HtmlCompressor(candidate).compress(document))
        except (MissingCapability, CompressorError) as e:
            logger.warning("analyzer step %r skipped: %s", name, e)
            report.steps.append(
                AnalysisStep(name, previous_size, 0, original_size - previous_size, changes, skipped=str(e))
            )
            continue
        report.steps.append(AnalysisStep(name, size, previous_size - size, original_size - size, changes))
        config = candidate
        previous_size = size

    return report


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_SEP = "-" * 82
_HEADER_FMT = "  {:<36s} {:>12s} {:>12s} {:>14s}"
_ROW_FMT = "  {:<36s} {:>12s} {:>12s} {:>14s}"


def _gain(value: int, base: int) -> str:
    pct = value / base * 100 if base else 0.0
    return f"{value:,d} ({pct:.1f}%)"


def format_report(report: AnalysisReport) -> str:
    """Render *report* as a plain text table."""
    lines = [
        "",
        f"Original size: {report.original_size:,d} bytes",
        "Each option is applied on top of the previous ones.",
        _SEP,
        _HEADER_FMT.format("Setting", "Incremental", "Total", "Page size"),
        _SEP,
    ]
    for step in report.steps:
        if step.skipped:
            lines.append(_ROW_FMT.format(step.name, "skipped", "-", "-"))
            continue
        lines.append(_ROW_FMT.format(
            step.name,
            _gain(step.incremental_gain, report.original_size),
            _gain(step.total_gain, report.original_size),
            f"{step.size:,d}",
        ))
    lines.append(_SEP)
    options = report.recommended_options()
    if options:
        lines.append("Recommended options: " + ", ".join(f"{key}={value!r}" for key, value in options.items()))
    skipped = [step for step in report.steps if step.skipped]
    for step in skipped:
        lines.append(f"Skipped '{step.name}': {step.skipped}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Try increasingly aggressive HTML compression options on one page and report the gains",
    )
    parser.add_argument("input", nargs="?", type=Path, help="HTML file to analyze (default: stdin)")
    parser.add_argument(
        "--js-backend",
        choices=[backend.value for backend in JsBackend],
        default=JsBackend.YUI.value,
        help="JavaScript compressor for the last step (default: yui)",
    )
    parser.add_argument("--charset", default="utf-8", help="Input encoding (default: utf-8)")
    parser.add_argument("--output", "-o", type=Path, default=None, help="Also save the report as JSON")
    args = parser.parse_args(argv)
    configure(level="WARNING")

    if args.input is None:
        document = sys.stdin.read()
    else:
        try:
            document = args.input.read_text(encoding=args.charset)
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error: cannot read {args.input}: {e}", file=sys.stderr)
            return 1

    report = analyze(document, args.js_backend)
    print(format_report(report))

    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(asdict(report), indent=2), encoding="utf-8")
        print(f"\nReport saved to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
