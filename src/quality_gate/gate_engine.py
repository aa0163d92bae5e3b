"""Quality Gate Engine -- Top-level orchestrator for the 6-layer quality gate.

Executes the layers sequentially over a set of changed files:

    Layer 1 (Syntax / Compile)        -- ERROR findings block
    Layer 2 (Lint)                    -- ERROR findings block
    Layer 3 (Static Analysis)
    Layer 4 (Vulnerability Scan)
    Layer 5 (Security / OWASP Review)
    Layer 6 (Optimization / Standards)

CRITICAL findings block in every layer.  When a layer holds a blocking
finding and ``halt_on_blocking`` is set, all subsequent layers are set to
SKIPPED and the engine returns immediately via the :class:`GateAggregator`
("stop, fix, re-check").

Within a layer the finding sources (external tools, built-in rules) run
one after another.  A source that cannot run contributes a CRITICAL
``GATE-TOOL-ERROR`` finding instead of aborting the gate.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from src.gate_runner.config import QualityGateConfig
from src.gate_runner.exceptions import GateError
from src.gate_shared.constants import GATE_TOOL_ERROR, LAYERS
from src.gate_shared.models import (
    Finding,
    GateReport,
    LayerResult,
    LayerStatus,
    LayerSpec,
    Severity,
)
from src.gate_shared.protocols import FindingSource
from src.quality_gate.aggregator import GateAggregator
from src.quality_gate.pattern_scanner import PatternScanner
from src.quality_gate.severity import is_blocking
from src.quality_gate.tool_runner import ToolRunner

logger = logging.getLogger(__name__)


class QualityGateEngine:
    """Top-level orchestrator for the 6-layer quality gate.

    Composes the configured finding sources of each layer and the
    :class:`GateAggregator` to produce a unified :class:`GateReport`.

    Usage
    -----
    ::

        engine = QualityGateEngine(config=config, project_root=Path("."))
        report = await engine.run(["src/app/app.component.ts"])
    """

    def __init__(
        self,
        config: QualityGateConfig | None = None,
        project_root: Path | None = None,
        sources: dict[int, list[FindingSource]] | None = None,
    ) -> None:
        self._config = config or QualityGateConfig()
        self._project_root = project_root or Path(".")
        self._aggregator = GateAggregator()
        self._sources = sources if sources is not None else self._build_sources()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, changed_files: list[str]) -> GateReport:
        """Execute all layers sequentially with halting logic.

        Parameters
        ----------
        changed_files:
            Paths (relative to the project root) of the files under review.

        Returns
        -------
        GateReport
            Aggregated report across all six layers.
        """
        results: list[LayerResult] = []
        halted_at: int | None = None
        total_start = time.monotonic()

        logger.info("Quality gate: evaluating %d changed file(s)", len(changed_files))

        for spec in LAYERS:
            if halted_at is not None:
                results.append(self._skipped(spec))
                continue

            layer_cfg = self._config.layer(spec.key)
            if not layer_cfg.enabled:
                logger.info("Quality gate: Layer %d (%s) disabled", spec.number, spec.name)
                results.append(self._skipped(spec))
                continue

            result = await self.run_layer(spec, changed_files)
            results.append(result)

            if result.status == LayerStatus.FAIL and self._config.gate.halt_on_blocking:
                halted_at = spec.number
                logger.warning(
                    "Quality gate: Layer %d has blocking findings -- skipping layers %s",
                    spec.number,
                    ", ".join(str(n) for n in range(spec.number + 1, len(LAYERS) + 1)) or "none",
                )

        report = self._aggregator.aggregate(results, halted_at=halted_at)
        logger.info(
            "Quality gate: decision=%s, findings=%d, blocking=%d, duration=%.3fs",
            report.decision.value,
            report.total_findings,
            report.blocking_findings,
            time.monotonic() - total_start,
        )
        return report

    async def run_layer(self, spec: LayerSpec, changed_files: list[str]) -> LayerResult:
        """Run every source of one layer and build its result."""
        start = time.monotonic()
        logger.info("Quality gate: starting Layer %d (%s)", spec.number, spec.name)

        findings: list[Finding] = []
        errors: list[str] = []
        for source in self._sources.get(spec.number, []):
            try:
                findings.extend(await source.collect(changed_files))
            except GateError as exc:
                logger.error(
                    "Quality gate: source %s failed in Layer %d: %s",
                    source.name, spec.number, exc,
                )
                errors.append(str(exc))
                findings.append(
                    Finding(
                        layer=spec.number,
                        rule_id=GATE_TOOL_ERROR,
                        severity=Severity.CRITICAL,
                        message=str(exc),
                        tool=source.name,
                    )
                )

        findings = self._cap(findings, spec.number)
        result = LayerResult(
            layer=spec.number,
            name=spec.name,
            findings=findings,
            status=LayerStatus.PASS,
            duration_seconds=time.monotonic() - start,
            error="; ".join(errors),
        )
        result.status = self._aggregator.layer_status(result)

        logger.info(
            "Quality gate: Layer %d complete -- status=%s, findings=%d, duration=%.3fs",
            spec.number,
            result.status.value,
            len(result.findings),
            result.duration_seconds,
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_sources(self) -> dict[int, list[FindingSource]]:
        sources: dict[int, list[FindingSource]] = {}
        for spec in LAYERS:
            layer_cfg = self._config.layer(spec.key)
            layer_sources: list[FindingSource] = [
                ToolRunner(tool, spec.number, self._project_root) for tool in layer_cfg.tools
            ]
            if layer_cfg.builtin_rules:
                layer_sources.append(
                    PatternScanner(spec.number, self._config.scanner, self._project_root)
                )
            sources[spec.number] = layer_sources
        return sources

    def _cap(self, findings: list[Finding], layer: int) -> list[Finding]:
        """Cap non-blocking findings at ``max_findings_per_layer``.

        Blocking findings are always kept so the cap never changes the
        decision.
        """
        cap = self._config.gate.max_findings_per_layer
        kept: list[Finding] = []
        non_blocking = 0
        for finding in findings:
            if is_blocking(finding):
                kept.append(finding)
            elif non_blocking < cap:
                kept.append(finding)
                non_blocking += 1
        if len(kept) < len(findings):
            logger.warning(
                "Quality gate: Layer %d capped at %d findings (%d dropped)",
                layer, cap, len(findings) - len(kept),
            )
        return kept

    @staticmethod
    def _skipped(spec: LayerSpec) -> LayerResult:
        return LayerResult(layer=spec.number, name=spec.name, status=LayerStatus.SKIPPED)
