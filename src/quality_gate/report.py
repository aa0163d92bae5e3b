"""Quality gate report generator.

Produces a Markdown report from a :class:`GateReport` dataclass.  The
report includes the decision, summary statistics, a per-layer results
table, findings grouped by severity, and actionable recommendations.
:func:`report_to_dict` gives the same content as JSON-ready data.

This module contains only pure functions -- no I/O, no side effects.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from src.gate_shared.models import (
    Finding,
    GateDecision,
    GateReport,
    LayerStatus,
    Severity,
)
from src.quality_gate.parsers import finding_to_dict
from src.quality_gate.severity import is_blocking

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_DECISION_DISPLAY: dict[GateDecision, str] = {
    GateDecision.PASS: "\u2705 PASS",
    GateDecision.CONDITIONAL: "\u26a0\ufe0f CONDITIONAL",
    GateDecision.BLOCKED: "\u274c BLOCKED",
}

_STATUS_DISPLAY: dict[LayerStatus, str] = {
    LayerStatus.PASS: "\u2705 PASS",
    LayerStatus.FAIL: "\u274c FAIL",
    LayerStatus.SKIPPED: "\u23ed\ufe0f SKIPPED",
}

_SEVERITY_EMOJI: dict[Severity, str] = {
    Severity.CRITICAL: "\U0001f6d1",
    Severity.ERROR: "\u274c",
    Severity.HIGH: "\U0001f7e0",
    Severity.MEDIUM: "\u26a0\ufe0f",
    Severity.LOW: "\U0001f535",
    Severity.INFO: "\u2139\ufe0f",
}


def _decision_label(report: GateReport) -> str:
    label = _DECISION_DISPLAY.get(report.decision, report.decision.value)
    if report.decision == GateDecision.PASS and report.clean:
        return f"{label} (clean)"
    return label


def _severity_label(severity: Severity) -> str:
    return f"{_SEVERITY_EMOJI.get(severity, '')} {severity.value.upper()}".strip()


def _format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds < 1.0:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60.0:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    remaining = seconds % 60
    return f"{minutes}m {remaining:.1f}s"


def _escape(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


# ---------------------------------------------------------------------------
# Section builders
# ---------------------------------------------------------------------------


def _header_section(report: GateReport) -> str:
    lines: list[str] = [
        "# Quality Gate Report",
        "",
        f"**Decision:** {_decision_label(report)}",
    ]
    if report.halted_at is not None:
        lines.append("")
        lines.append(
            f"Progression stopped at Layer {report.halted_at}; "
            "later layers were skipped. Fix the blocking findings and re-run."
        )
    return "\n".join(lines)


def _summary_section(report: GateReport) -> str:
    executed = sum(1 for lr in report.layers if lr.status != LayerStatus.SKIPPED)
    lines: list[str] = [
        "## Summary",
        "",
        "| Metric | Value |",
        "|---|---|",
        f"| Decision | {_decision_label(report)} |",
        f"| Total findings | {report.total_findings} |",
        f"| Blocking findings | {report.blocking_findings} |",
        f"| Layers executed | {executed} / {len(report.layers)} |",
    ]
    for severity in Severity:
        count = report.severity_counts.get(severity.value, 0)
        if count:
            lines.append(f"| {severity.value.capitalize()} | {count} |")
    return "\n".join(lines)


def _per_layer_section(report: GateReport) -> str:
    lines: list[str] = ["## Per-Layer Results", ""]

    if not report.layers:
        lines.append("No layers executed.")
        return "\n".join(lines)

    lines.append("| Layer | Name | Status | Findings | Blocking | Duration |")
    lines.append("|---|---|---|---|---|---|")
    for lr in report.layers:
        blocking = sum(1 for f in lr.findings if is_blocking(f))
        lines.append(
            f"| {lr.layer} | {lr.name} | {_STATUS_DISPLAY[lr.status]} | "
            f"{len(lr.findings)} | {blocking} | {_format_duration(lr.duration_seconds)} |"
        )
    return "\n".join(lines)


def _findings_section(report: GateReport) -> str:
    lines: list[str] = ["## Findings", ""]

    all_findings = report.all_findings()
    if not all_findings:
        lines.append("No findings.")
        return "\n".join(lines)

    by_severity: dict[Severity, list[Finding]] = defaultdict(list)
    for f in all_findings:
        by_severity[f.severity].append(f)

    for severity in Severity:
        group = by_severity.get(severity)
        if not group:
            continue
        lines.extend(_finding_group(severity, group))
        lines.append("")

    return "\n".join(lines).rstrip()


def _finding_group(severity: Severity, findings: list[Finding]) -> list[str]:
    lines: list[str] = [
        f"### {_severity_label(severity)} ({len(findings)})",
        "",
        "| Layer | Rule | File | Line | Message | Auto-fix |",
        "|---|---|---|---|---|---|",
    ]
    for f in findings:
        file_display = f"`{_escape(f.file_path)}`" if f.file_path else "--"
        line_display = str(f.line) if f.line else "--"
        message = _escape(f.message) if f.message else "--"
        if f.raw_severity:
            message = f"{message} (unrecognised severity `{_escape(f.raw_severity)}`)"
        fix = "yes" if f.auto_fixable else ""
        rule = _escape(f.rule_id)
        lines.append(
            f"| {f.layer} | `{rule}` | {file_display} | {line_display} | {message} | {fix} |"
        )
    return lines


def _recommendations_section(report: GateReport) -> str:
    lines: list[str] = ["## Recommendations", ""]
    recommendations: list[str] = []
    all_findings = report.all_findings()

    if report.decision == GateDecision.BLOCKED:
        recommendations.append(
            f"- **Blocked:** {report.blocking_findings} blocking finding(s) "
            "must be fixed before the change can proceed."
        )
    elif report.decision == GateDecision.CONDITIONAL:
        recommendations.append(
            "- **Conditional:** HIGH findings remain. Fix them now if the fix "
            "is straightforward; otherwise document them and proceed."
        )

    if report.halted_at is not None:
        recommendations.append(
            f"- **Re-run:** layers after Layer {report.halted_at} did not run. "
            "Re-run the gate after fixing to get a complete picture."
        )

    fixable = sum(1 for f in all_findings if f.auto_fixable)
    if fixable:
        recommendations.append(
            f"- **Auto-fix:** {fixable} finding(s) can be fixed automatically "
            "(e.g. `eslint --fix`)."
        )

    tool_errors = [lr for lr in report.layers if lr.error]
    for lr in tool_errors:
        recommendations.append(
            f"- **Layer {lr.layer} tooling:** a source could not run ({_escape(lr.error)}). "
            "Check the tool installation and configuration."
        )

    unknown = sum(1 for f in all_findings if f.raw_severity)
    if unknown:
        recommendations.append(
            f"- **Unrecognised severities:** {unknown} finding(s) reported a severity "
            "the gate does not know; they were treated as CRITICAL."
        )

    if not recommendations:
        lines.append("All quality gate checks passed. No action required.")
    else:
        lines.extend(recommendations)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def generate_gate_report(report: GateReport) -> str:
    """Generate a Markdown quality-gate report from a ``GateReport``.

    The report is structured into five sections:

    1. **Header** -- title and decision badge.
    2. **Summary** -- key metrics in a table.
    3. **Per-Layer Results** -- one row per layer.
    4. **Findings** -- grouped by severity, most severe first.
    5. **Recommendations** -- actionable advice derived from the findings.

    Args:
        report: The ``GateReport`` produced by the engine or aggregator.

    Returns:
        A complete Markdown report string.
    """
    logger.debug(
        "Generating quality gate report (decision=%s, findings=%d, blocking=%d)",
        report.decision.value,
        report.total_findings,
        report.blocking_findings,
    )

    sections: list[str] = [
        _header_section(report),
        _summary_section(report),
        _per_layer_section(report),
        _findings_section(report),
        _recommendations_section(report),
    ]
    return "\n\n".join(sections) + "\n"


def report_to_dict(report: GateReport) -> dict[str, Any]:
    """Convert *report* into JSON-serialisable data."""
    return {
        "decision": report.decision.value,
        "clean": report.clean,
        "halted_at": report.halted_at,
        "total_findings": report.total_findings,
        "blocking_findings": report.blocking_findings,
        "severity_counts": dict(report.severity_counts),
        "layers": [
            {
                "layer": lr.layer,
                "name": lr.name,
                "status": lr.status.value,
                "duration_seconds": round(lr.duration_seconds, 3),
                "error": lr.error,
                "findings": [finding_to_dict(f) for f in lr.findings],
            }
            for lr in report.layers
        ],
    }
