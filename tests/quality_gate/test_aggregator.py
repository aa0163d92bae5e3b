"""Tests for GateAggregator.

Covers the decision table, layer status computation, de-duplication,
severity counts, and the fail-closed handling of unknown severities.
"""

from __future__ import annotations

import pytest

from src.gate_shared.models import (
    Finding,
    GateDecision,
    LayerResult,
    LayerStatus,
    Severity,
)
from src.quality_gate.aggregator import GateAggregator
from src.quality_gate.parsers import finding_from_dict


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_finding(
    layer: int = 3,
    severity: Severity = Severity.MEDIUM,
    rule_id: str = "R001",
    file_path: str = "src/app.ts",
    line: int = 10,
) -> Finding:
    """Create a Finding with sensible defaults."""
    return Finding(
        layer=layer,
        rule_id=rule_id,
        severity=severity,
        message="test finding",
        file_path=file_path,
        line=line,
    )


def _layers_from(findings: list[Finding]) -> list[LayerResult]:
    """Partition *findings* into six PASS-initialised layer results."""
    return [
        LayerResult(
            layer=n,
            findings=[f for f in findings if f.layer == n],
            status=LayerStatus.PASS,
        )
        for n in range(1, 7)
    ]


@pytest.fixture
def aggregator() -> GateAggregator:
    return GateAggregator()


# ---------------------------------------------------------------------------
# Decision table
# ---------------------------------------------------------------------------

class TestDecision:
    """Tests for the overall decision."""

    @pytest.mark.parametrize("layer", [1, 2, 3, 4, 5, 6])
    def test_critical_in_any_layer_blocks(self, aggregator: GateAggregator, layer: int) -> None:
        findings = [_make_finding(layer=layer, severity=Severity.CRITICAL)]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.decision == GateDecision.BLOCKED

    @pytest.mark.parametrize("layer", [1, 2])
    def test_error_in_layer_1_or_2_blocks(self, aggregator: GateAggregator, layer: int) -> None:
        findings = [_make_finding(layer=layer, severity=Severity.ERROR)]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.decision == GateDecision.BLOCKED

    @pytest.mark.parametrize("layer", [3, 4, 5, 6])
    def test_error_outside_layer_1_2_is_conditional(
        self, aggregator: GateAggregator, layer: int
    ) -> None:
        findings = [_make_finding(layer=layer, severity=Severity.ERROR)]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.decision == GateDecision.CONDITIONAL

    def test_no_findings_is_clean_pass(self, aggregator: GateAggregator) -> None:
        report = aggregator.aggregate(_layers_from([]))

        assert report.decision == GateDecision.PASS
        assert report.clean is True
        assert report.total_findings == 0

    def test_only_medium_low_info_passes(self, aggregator: GateAggregator) -> None:
        findings = [
            _make_finding(layer=2, severity=Severity.MEDIUM, rule_id="a"),
            _make_finding(layer=4, severity=Severity.LOW, rule_id="b"),
            _make_finding(layer=6, severity=Severity.INFO, rule_id="c"),
        ]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.decision == GateDecision.PASS
        assert report.clean is False

    def test_only_high_is_conditional_never_blocked(self, aggregator: GateAggregator) -> None:
        findings = [
            _make_finding(layer=n, severity=Severity.HIGH, rule_id=f"H{n}")
            for n in range(1, 7)
        ]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.decision == GateDecision.CONDITIONAL
        assert report.blocking_findings == 0

    def test_critical_beats_high(self, aggregator: GateAggregator) -> None:
        findings = [
            _make_finding(layer=3, severity=Severity.HIGH, rule_id="a"),
            _make_finding(layer=6, severity=Severity.CRITICAL, rule_id="b"),
        ]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.decision == GateDecision.BLOCKED

    def test_error_in_layer_1_with_medium_elsewhere(self, aggregator: GateAggregator) -> None:
        """[{layer:1, Error}, {layer:3, Medium}] -> BLOCKED."""
        findings = [
            _make_finding(layer=1, severity=Severity.ERROR, rule_id="TS2322"),
            _make_finding(layer=3, severity=Severity.MEDIUM, rule_id="S100"),
        ]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.decision == GateDecision.BLOCKED

    def test_medium_and_low_example_passes(self, aggregator: GateAggregator) -> None:
        """[{layer:3, Medium}, {layer:5, Low}] -> PASS."""
        findings = [
            _make_finding(layer=3, severity=Severity.MEDIUM, rule_id="S100"),
            _make_finding(layer=5, severity=Severity.LOW, rule_id="SEC-006"),
        ]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.decision == GateDecision.PASS

    def test_unknown_severity_fails_closed(self, aggregator: GateAggregator) -> None:
        finding = finding_from_dict(
            {"layer": 4, "rule_id": "X1", "severity": "catastrophic"}
        )
        report = aggregator.aggregate(_layers_from([finding]))

        assert finding.severity == Severity.CRITICAL
        assert finding.raw_severity == "catastrophic"
        assert report.decision == GateDecision.BLOCKED

    def test_decide_on_flat_list(self, aggregator: GateAggregator) -> None:
        assert aggregator.decide([]) == GateDecision.PASS
        assert aggregator.decide([_make_finding(severity=Severity.HIGH)]) == GateDecision.CONDITIONAL
        assert aggregator.decide([_make_finding(severity=Severity.CRITICAL)]) == GateDecision.BLOCKED


# ---------------------------------------------------------------------------
# Layer status
# ---------------------------------------------------------------------------

class TestLayerStatus:
    """Tests for per-layer status computation."""

    def test_layer_with_blocking_finding_fails(self, aggregator: GateAggregator) -> None:
        findings = [_make_finding(layer=2, severity=Severity.ERROR)]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.layers[1].status == LayerStatus.FAIL
        assert report.layers[0].status == LayerStatus.PASS

    def test_layer_with_only_high_passes(self, aggregator: GateAggregator) -> None:
        findings = [_make_finding(layer=3, severity=Severity.HIGH)]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.layers[2].status == LayerStatus.PASS

    def test_caller_status_is_overridden(self, aggregator: GateAggregator) -> None:
        """A layer claimed PASS that holds a CRITICAL finding is recomputed as FAIL."""
        layer = LayerResult(
            layer=5,
            findings=[_make_finding(layer=5, severity=Severity.CRITICAL)],
            status=LayerStatus.PASS,
        )
        report = aggregator.aggregate([layer])

        assert report.layers[0].status == LayerStatus.FAIL

    def test_skipped_layer_stays_skipped(self, aggregator: GateAggregator) -> None:
        layer = LayerResult(layer=6, status=LayerStatus.SKIPPED)
        report = aggregator.aggregate([layer])

        assert report.layers[0].status == LayerStatus.SKIPPED

    def test_missing_name_filled_from_catalogue(self, aggregator: GateAggregator) -> None:
        report = aggregator.aggregate([LayerResult(layer=2, status=LayerStatus.PASS)])

        assert report.layers[0].name == "Lint"

    def test_halted_at_is_passed_through(self, aggregator: GateAggregator) -> None:
        report = aggregator.aggregate(_layers_from([]), halted_at=2)

        assert report.halted_at == 2


# ---------------------------------------------------------------------------
# De-duplication and counts
# ---------------------------------------------------------------------------

class TestDeduplicationAndCounts:
    """Tests for duplicate removal and summary counts."""

    def test_duplicates_counted_once(self, aggregator: GateAggregator) -> None:
        findings = [_make_finding(), _make_finding(), _make_finding(line=11)]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.total_findings == 2

    def test_duplicate_keeps_more_severe_at_first_position(
        self, aggregator: GateAggregator
    ) -> None:
        findings = [
            _make_finding(severity=Severity.LOW, rule_id="A"),
            _make_finding(severity=Severity.MEDIUM, rule_id="B"),
            _make_finding(severity=Severity.CRITICAL, rule_id="A"),
        ]
        report = aggregator.aggregate(_layers_from(findings))
        layer3 = report.layers[2].findings

        assert [f.rule_id for f in layer3] == ["A", "B"]
        assert layer3[0].severity == Severity.CRITICAL
        assert report.decision == GateDecision.BLOCKED

    def test_same_rule_in_different_layers_not_merged(self, aggregator: GateAggregator) -> None:
        findings = [_make_finding(layer=3), _make_finding(layer=4)]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.total_findings == 2

    def test_severity_counts_cover_every_severity(self, aggregator: GateAggregator) -> None:
        findings = [
            _make_finding(severity=Severity.HIGH, rule_id="a"),
            _make_finding(severity=Severity.HIGH, rule_id="b"),
            _make_finding(severity=Severity.INFO, rule_id="c"),
        ]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.severity_counts == {
            "critical": 0,
            "error": 0,
            "high": 2,
            "medium": 0,
            "low": 0,
            "info": 1,
        }

    def test_blocking_count(self, aggregator: GateAggregator) -> None:
        findings = [
            _make_finding(layer=1, severity=Severity.ERROR, rule_id="a"),
            _make_finding(layer=3, severity=Severity.ERROR, rule_id="b"),
            _make_finding(layer=5, severity=Severity.CRITICAL, rule_id="c"),
        ]
        report = aggregator.aggregate(_layers_from(findings))

        assert report.blocking_findings == 2

    def test_input_layers_not_mutated(self, aggregator: GateAggregator) -> None:
        original = [_make_finding(), _make_finding()]
        layer = LayerResult(layer=3, findings=original, status=LayerStatus.PASS)
        aggregator.aggregate([layer])

        assert len(layer.findings) == 2
