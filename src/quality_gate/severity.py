"""Severity normalisation and the blocking rule.

External tools report severity in many vocabularies (ESLint numeric levels,
SARIF ``level``, npm audit ``critical/high/moderate``, compiler ``error``/
``warning``).  Everything is mapped onto :class:`Severity` here.  Values
that cannot be mapped fail closed to ``Severity.CRITICAL``.
"""

from __future__ import annotations

import logging
from typing import Any

from src.gate_shared.constants import ERROR_BLOCKING_LAYERS
from src.gate_shared.models import Finding, Severity

logger = logging.getLogger(__name__)

_ALIASES: dict[str, Severity] = {
    # review taxonomy
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "info": Severity.INFO,
    # compiler / linter diagnostic levels
    "error": Severity.ERROR,
    "fatal": Severity.CRITICAL,
    "blocker": Severity.CRITICAL,
    "warning": Severity.MEDIUM,
    "warn": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "major": Severity.MEDIUM,
    "minor": Severity.LOW,
    "note": Severity.LOW,
    "suggestion": Severity.INFO,
    "hint": Severity.INFO,
    "information": Severity.INFO,
    "none": Severity.INFO,
    # ESLint numeric levels
    "2": Severity.ERROR,
    "1": Severity.MEDIUM,
    "0": Severity.INFO,
}


def normalize_severity(value: Any) -> Severity:
    """Map *value* onto a :class:`Severity`.

    Accepts enum members, strings (case-insensitive, surrounding whitespace
    ignored) and the integer levels ESLint uses.  ``bool`` is rejected
    because it is an ``int`` subclass that no tool emits on purpose.

    Unknown values return ``Severity.CRITICAL``.
    """
    if isinstance(value, Severity):
        return value
    if isinstance(value, bool):
        logger.warning("Boolean severity %r treated as critical", value)
        return Severity.CRITICAL
    if isinstance(value, int):
        value = str(value)
    if isinstance(value, str):
        mapped = _ALIASES.get(value.strip().lower())
        if mapped is not None:
            return mapped
    logger.warning("Unknown severity %r treated as critical", value)
    return Severity.CRITICAL


def is_known_severity(value: Any) -> bool:
    """Return ``True`` when *value* maps without falling back."""
    if isinstance(value, Severity):
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        value = str(value)
    return isinstance(value, str) and value.strip().lower() in _ALIASES


def is_blocking(finding: Finding) -> bool:
    """Return ``True`` when *finding* alone blocks the gate.

    A finding blocks when it is ``CRITICAL`` in any layer, or ``ERROR`` in
    one of the compile/lint layers.
    """
    if finding.severity == Severity.CRITICAL:
        return True
    return (
        finding.severity == Severity.ERROR
        and finding.layer in ERROR_BLOCKING_LAYERS
    )


def effective_severity(finding: Finding) -> Severity:
    """Severity used for the decision table.

    ``ERROR`` outside the blocking layers carries the weight of ``HIGH``.
    """
    if finding.severity == Severity.ERROR and finding.layer not in ERROR_BLOCKING_LAYERS:
        return Severity.HIGH
    return finding.severity
