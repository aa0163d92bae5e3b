"""Gate aggregator for the quality gate engine.

Aggregates layer-level results into a unified :class:`GateReport`,
deduplicating findings and computing the overall decision.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from src.gate_shared.constants import LAYER_BY_NUMBER
from src.gate_shared.models import (
    Finding,
    GateDecision,
    GateReport,
    LayerResult,
    LayerStatus,
    Severity,
)
from src.quality_gate.severity import effective_severity, is_blocking


class GateAggregator:
    """Aggregates quality gate layer results into a final report.

    Decision table (first match wins):

    ============================================  ===========
    Condition                                     Decision
    ============================================  ===========
    Any CRITICAL finding in any layer             BLOCKED
    Any ERROR finding in layer 1 or 2             BLOCKED
    Only HIGH findings remain                     CONDITIONAL
    Only MEDIUM / LOW / INFO findings remain      PASS
    No findings at all                            PASS (clean)
    ============================================  ===========
    """

    def aggregate(
        self,
        layer_results: Iterable[LayerResult],
        halted_at: int | None = None,
    ) -> GateReport:
        """Produce a single GateReport from per-layer results.

        Layer statuses are recomputed from the findings so a caller cannot
        report a PASS layer that holds a blocking finding.  Layers already
        marked SKIPPED with no findings stay skipped.

        Args:
            layer_results: Results in layer order.
            halted_at: Layer whose blocking findings stopped the run, when
                the engine stopped early.

        Returns:
            A fully populated GateReport.
        """
        layers: list[LayerResult] = []
        for result in layer_results:
            unique = self._deduplicate(result.findings)
            status = self.layer_status(result, unique)
            layers.append(
                LayerResult(
                    layer=result.layer,
                    name=result.name or _layer_name(result.layer),
                    findings=unique,
                    status=status,
                    duration_seconds=result.duration_seconds,
                    error=result.error,
                )
            )

        all_findings = [f for layer in layers for f in layer.findings]
        counts = Counter(f.severity.value for f in all_findings)

        return GateReport(
            layers=layers,
            decision=self.decide(all_findings),
            clean=not all_findings,
            halted_at=halted_at,
            total_findings=len(all_findings),
            blocking_findings=sum(1 for f in all_findings if is_blocking(f)),
            severity_counts={s.value: counts.get(s.value, 0) for s in Severity},
        )

    def decide(self, findings: Iterable[Finding]) -> GateDecision:
        """Apply the decision table to a flat collection of findings."""
        has_high = False
        for finding in findings:
            if is_blocking(finding):
                return GateDecision.BLOCKED
            if effective_severity(finding) == Severity.HIGH:
                has_high = True
        if has_high:
            return GateDecision.CONDITIONAL
        return GateDecision.PASS

    def layer_status(
        self,
        result: LayerResult,
        findings: list[Finding] | None = None,
    ) -> LayerStatus:
        """Status of a single layer: FAIL when it holds a blocking finding."""
        if result.status == LayerStatus.SKIPPED and not result.findings:
            return LayerStatus.SKIPPED
        items = result.findings if findings is None else findings
        if any(is_blocking(f) for f in items):
            return LayerStatus.FAIL
        return LayerStatus.PASS

    def _deduplicate(self, findings: list[Finding]) -> list[Finding]:
        """Remove duplicate findings, keeping the first occurrence.

        Duplicates share ``(layer, rule_id, file_path, line)``.  When two
        duplicates disagree on severity the more severe one is kept, at the
        position of the first.
        """
        index: dict[tuple[int, str, str, int], int] = {}
        unique: list[Finding] = []

        for finding in findings:
            pos = index.get(finding.key)
            if pos is None:
                index[finding.key] = len(unique)
                unique.append(finding)
            elif finding.severity.rank < unique[pos].severity.rank:
                unique[pos] = finding

        return unique


def _layer_name(number: int) -> str:
    spec = LAYER_BY_NUMBER.get(number)
    return spec.name if spec else f"Layer {number}"
