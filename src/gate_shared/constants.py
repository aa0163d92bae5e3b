"""Shared constants for the six-layer quality gate."""

from __future__ import annotations

from src.gate_shared.models import LayerSpec

# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------
LAYER_SYNTAX = 1
LAYER_LINT = 2
LAYER_STATIC = 3
LAYER_VULNERABILITY = 4
LAYER_SECURITY = 5
LAYER_OPTIMIZATION = 6

LAYERS: tuple[LayerSpec, ...] = (
    LayerSpec(LAYER_SYNTAX, "syntax", "Syntax / Compile",
              "Compiler and type-checker diagnostics"),
    LayerSpec(LAYER_LINT, "lint", "Lint",
              "Linter rule violations"),
    LayerSpec(LAYER_STATIC, "static", "Static Analysis",
              "Analyzer and SAST results"),
    LayerSpec(LAYER_VULNERABILITY, "vulnerability", "Vulnerability Scan",
              "Known-vulnerable dependencies"),
    LayerSpec(LAYER_SECURITY, "security", "Security / OWASP Review",
              "Injection, XSS, secrets and transport checks"),
    LayerSpec(LAYER_OPTIMIZATION, "optimization", "Optimization / Standards",
              "Performance and coding-standard checks"),
)

LAYER_BY_NUMBER: dict[int, LayerSpec] = {spec.number: spec for spec in LAYERS}
LAYER_BY_KEY: dict[str, LayerSpec] = {spec.key: spec for spec in LAYERS}

# Layers whose ERROR-level findings block the gate.
ERROR_BLOCKING_LAYERS: frozenset[int] = frozenset({LAYER_SYNTAX, LAYER_LINT})

assert len(LAYERS) == 6, f"Expected 6 layers, got {len(LAYERS)}"

# ---------------------------------------------------------------------------
# Rule codes raised by the gate itself
# ---------------------------------------------------------------------------
GATE_TOOL_ERROR = "GATE-TOOL-ERROR"
GATE_MALFORMED = "GATE-MALFORMED"

# ---------------------------------------------------------------------------
# Built-in pattern rules
# ---------------------------------------------------------------------------

# Security / OWASP (layer 5)
SECURITY_RULE_CODES = [
    "SEC-001",  # Hardcoded secret
    "SEC-002",  # eval / dynamic code execution
    "SEC-003",  # Unsafe HTML sink
    "SEC-004",  # SQL built by concatenation
    "SEC-005",  # Private key in source
    "SEC-006",  # Plain-HTTP endpoint
]

# Optimization / standards (layer 6)
STANDARDS_RULE_CODES = [
    "STD-001",  # console.log left in code
    "STD-002",  # debugger statement
    "STD-003",  # explicit any
    "STD-004",  # SELECT *
    "STD-005",  # TODO / FIXME marker
    "STD-006",  # stored procedure without SET NOCOUNT ON
]

ALL_RULE_CODES: list[str] = SECURITY_RULE_CODES + STANDARDS_RULE_CODES

# ---------------------------------------------------------------------------
# Engine defaults
# ---------------------------------------------------------------------------
DEFAULT_TOOL_TIMEOUT = 300  # seconds
DEFAULT_MAX_FINDINGS_PER_LAYER = 200
DEFAULT_CONFIG_FILE = "quality-gate.yml"

# ---------------------------------------------------------------------------
# CLI exit codes
# ---------------------------------------------------------------------------
EXIT_PASS = 0
EXIT_BLOCKED = 1
EXIT_USAGE = 2
EXIT_CONDITIONAL = 3
