"""Shared data models for the six-layer quality gate."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Severity(str, Enum):
    """Severity of a single finding, most severe first.

    ``ERROR`` is the diagnostic level reported by compilers and linters;
    the remaining members are the review taxonomy.
    """
    CRITICAL = "critical"
    ERROR = "error"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Ordinal rank, 0 being the most severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.CRITICAL: 0,
    Severity.ERROR: 1,
    Severity.HIGH: 2,
    Severity.MEDIUM: 3,
    Severity.LOW: 4,
    Severity.INFO: 5,
}


class LayerStatus(str, Enum):
    """Aggregate status of a single layer."""
    PASS = "pass"
    FAIL = "fail"
    SKIPPED = "skipped"


class GateDecision(str, Enum):
    """Overall verdict of a gate run."""
    PASS = "pass"
    CONDITIONAL = "conditional"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class Finding:
    """A single issue reported by one of the layers."""
    layer: int
    rule_id: str
    severity: Severity
    message: str = ""
    file_path: str = ""
    line: int = 0
    auto_fixable: bool = False
    tool: str = ""
    raw_severity: str = ""

    @property
    def key(self) -> tuple[int, str, str, int]:
        """Identity used for de-duplication."""
        return (self.layer, self.rule_id, self.file_path, self.line)


@dataclass
class LayerResult:
    """Result of running one layer."""
    layer: int
    name: str = ""
    findings: list[Finding] = field(default_factory=list)
    status: LayerStatus = LayerStatus.SKIPPED
    duration_seconds: float = 0.0
    error: str = ""


@dataclass
class GateReport:
    """Point-in-time report across all layers."""
    layers: list[LayerResult] = field(default_factory=list)
    decision: GateDecision = GateDecision.PASS
    clean: bool = True
    halted_at: int | None = None
    total_findings: int = 0
    blocking_findings: int = 0
    severity_counts: dict[str, int] = field(default_factory=dict)

    def all_findings(self) -> list[Finding]:
        """Every finding across the layers, in layer order."""
        findings: list[Finding] = []
        for layer in self.layers:
            findings.extend(layer.findings)
        return findings


@dataclass(frozen=True)
class LayerSpec:
    """Static description of one of the six layers."""
    number: int
    key: str
    name: str
    description: str = ""
