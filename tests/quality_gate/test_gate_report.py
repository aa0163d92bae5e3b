"""Tests for generate_gate_report and report_to_dict.

Reports are built through the aggregator so the inputs match what the
engine produces.
"""

from __future__ import annotations

import json

from src.gate_shared.models import (
    Finding,
    GateReport,
    LayerResult,
    LayerStatus,
    Severity,
)
from src.quality_gate.aggregator import GateAggregator
from src.quality_gate.parsers import finding_from_dict
from src.quality_gate.report import generate_gate_report, report_to_dict


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_finding(
    layer: int,
    severity: Severity,
    rule_id: str = "R001",
    message: str = "something is off",
    auto_fixable: bool = False,
) -> Finding:
    return Finding(
        layer=layer,
        rule_id=rule_id,
        severity=severity,
        message=message,
        file_path="src/app.ts",
        line=7,
        auto_fixable=auto_fixable,
    )


def _make_report(
    findings: list[Finding],
    halted_at: int | None = None,
    errors: dict[int, str] | None = None,
) -> GateReport:
    errors = errors or {}
    layers = []
    for n in range(1, 7):
        skipped = halted_at is not None and n > halted_at
        layers.append(
            LayerResult(
                layer=n,
                findings=[] if skipped else [f for f in findings if f.layer == n],
                status=LayerStatus.SKIPPED if skipped else LayerStatus.PASS,
                duration_seconds=0.25,
                error=errors.get(n, ""),
            )
        )
    return GateAggregator().aggregate(layers, halted_at=halted_at)


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


class TestCleanReport:
    def test_sections_present(self) -> None:
        md = generate_gate_report(_make_report([]))

        assert md.startswith("# Quality Gate Report")
        for heading in ("## Summary", "## Per-Layer Results", "## Findings", "## Recommendations"):
            assert heading in md
        assert md.endswith("\n")

    def test_clean_pass(self) -> None:
        md = generate_gate_report(_make_report([]))

        assert "PASS (clean)" in md
        assert "No findings." in md
        assert "All quality gate checks passed. No action required." in md
        assert "| Layers executed | 6 / 6 |" in md

    def test_duration_formatting(self) -> None:
        md = generate_gate_report(_make_report([]))
        assert "250ms" in md


class TestBlockedReport:
    def test_halted_run(self) -> None:
        report = _make_report([_make_finding(1, Severity.ERROR, "TS2322")], halted_at=1)
        md = generate_gate_report(report)

        assert "BLOCKED" in md
        assert "Progression stopped at Layer 1" in md
        assert "SKIPPED" in md
        assert "| Layers executed | 1 / 6 |" in md
        assert "**Blocked:** 1 blocking finding(s)" in md
        assert "**Re-run:**" in md
        assert "`TS2322`" in md

    def test_tool_error_recommendation(self) -> None:
        report = _make_report(
            [_make_finding(2, Severity.CRITICAL, "GATE-TOOL-ERROR", "eslint not found")],
            errors={2: "eslint not found"},
        )
        md = generate_gate_report(report)

        assert "**Layer 2 tooling:**" in md
        assert "eslint not found" in md

    def test_unrecognised_severity_noted(self) -> None:
        finding = finding_from_dict(
            {"layer": 3, "rule_id": "X9", "severity": "catastrophic", "message": "odd"}
        )
        md = generate_gate_report(_make_report([finding]))

        assert "unrecognised severity `catastrophic`" in md
        assert "**Unrecognised severities:** 1 finding(s)" in md


class TestFindingsSection:
    def test_grouped_by_severity_most_severe_first(self) -> None:
        report = _make_report([
            _make_finding(6, Severity.LOW, "STD-001"),
            _make_finding(3, Severity.HIGH, "S100"),
        ])
        md = generate_gate_report(report)

        assert md.index("HIGH (1)") < md.index("LOW (1)")
        assert "**Conditional:**" in md

    def test_auto_fix_recommendation(self) -> None:
        report = _make_report([_make_finding(6, Severity.LOW, "STD-001", auto_fixable=True)])
        md = generate_gate_report(report)

        assert "**Auto-fix:** 1 finding(s)" in md

    def test_pipes_in_messages_escaped(self) -> None:
        report = _make_report([_make_finding(3, Severity.MEDIUM, message="a | b")])
        md = generate_gate_report(report)

        assert "a \\| b" in md

    def test_pipes_in_paths_and_rules_escaped(self) -> None:
        finding = Finding(
            layer=3,
            rule_id="npm:a|b",
            severity=Severity.MEDIUM,
            message="odd",
            file_path="src/odd|name.ts",
            line=7,
        )
        md = generate_gate_report(_make_report([finding]))

        row = next(line for line in md.splitlines() if "odd" in line)
        assert "`src/odd\\|name.ts`" in row
        assert "`npm:a\\|b`" in row
        assert row.count(" | ") == 5


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class TestReportToDict:
    def test_structure(self) -> None:
        report = _make_report([_make_finding(2, Severity.ERROR, "no-undef")], halted_at=2)
        data = report_to_dict(report)

        assert data["decision"] == "blocked"
        assert data["clean"] is False
        assert data["halted_at"] == 2
        assert data["total_findings"] == 1
        assert data["blocking_findings"] == 1
        assert data["severity_counts"]["error"] == 1
        assert [layer["status"] for layer in data["layers"]] == [
            "pass", "fail", "skipped", "skipped", "skipped", "skipped",
        ]
        assert data["layers"][1]["findings"][0]["rule_id"] == "no-undef"
        assert data["layers"][1]["name"] == "Lint"

    def test_json_serialisable(self) -> None:
        data = report_to_dict(_make_report([_make_finding(5, Severity.HIGH)]))
        assert json.loads(json.dumps(data))["decision"] == "conditional"
