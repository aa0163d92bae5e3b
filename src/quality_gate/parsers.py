"""Parsers that turn external tool output into findings.

Each parser takes the raw stdout of a tool, the layer the tool belongs to,
and the tool name, and returns the findings in reporting order.  Parsers
raise :class:`ParseError` when the output is not in the expected format;
the caller decides how to surface that (the engine fails closed).

Supported formats:

- ``eslint``      -- ESLint ``-f json``
- ``stylelint``   -- Stylelint ``-f json``
- ``sarif``       -- SARIF 2.1.0 (Roslyn analyzers, Semgrep, CodeQL)
- ``npm-audit``   -- ``npm audit --json`` (v1 advisories and v2 vulnerabilities)
- ``diagnostics`` -- compiler text output (MSBuild / ``dotnet build``,
  ``tsc``, gcc-style ``file:line:col: error: msg``)
- ``findings``    -- the gate's own JSON finding format
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Callable

from src.gate_runner.exceptions import MalformedFindingError, ParseError
from src.gate_shared.constants import (
    GATE_MALFORMED,
    LAYER_BY_NUMBER,
    LAYER_SYNTAX,
)
from src.gate_shared.models import Finding, Severity
from src.quality_gate.severity import is_known_severity, normalize_severity

logger = logging.getLogger(__name__)

Parser = Callable[[str, int, str], list[Finding]]

# ---------------------------------------------------------------------------
# Compiler diagnostic patterns
# ---------------------------------------------------------------------------

# MSBuild / dotnet build / tsc --pretty false:
#   src/Orders.cs(12,5): error CS1002: ; expected [/repo/Orders.csproj]
_MSBUILD_PATTERN: re.Pattern[str] = re.compile(
    r"^\s*(?P<file>[^\s(][^(]*?)\((?P<line>\d+)(?:,(?P<col>\d+))?(?:,\d+,\d+)?\)\s*:\s*"
    r"(?P<level>error|warning|info|message)\s*(?P<code>[A-Za-z]+\d+)?\s*:\s*"
    r"(?P<msg>.*?)(?:\s+\[[^\]]+\])?\s*$",
    re.IGNORECASE,
)

# tsc (pretty) and gcc-style:
#   src/app.ts:3:7 - error TS2322: Type 'string' is not assignable
#   main.c:10:2: warning: unused variable 'x'
_COLON_PATTERN: re.Pattern[str] = re.compile(
    r"^\s*(?P<file>(?:[A-Za-z]:)?[^\s:][^:]*):(?P<line>\d+):(?P<col>\d+)\s*(?:-|:)\s*"
    r"(?P<level>error|warning|info|note)\s*(?P<code>[A-Za-z]+\d+)?\s*:?\s*"
    r"(?P<msg>.*?)\s*$",
    re.IGNORECASE,
)

# ANSI colour sequences some compilers emit even when piped.
_ANSI_PATTERN: re.Pattern[str] = re.compile(r"\x1b\[[0-9;]*m")


# ---------------------------------------------------------------------------
# Native finding records
# ---------------------------------------------------------------------------


def finding_from_dict(
    record: Any,
    default_layer: int | None = None,
    tool: str = "",
) -> Finding:
    """Build a :class:`Finding` from a JSON object.

    Accepted keys: ``layer``, ``rule_id`` (or ``rule``), ``severity``,
    ``message``, ``file_path`` (or ``file``), ``line``, ``auto_fixable``,
    ``tool``.  A missing or unknown severity maps to ``CRITICAL`` and the
    original value is kept in ``raw_severity``.

    Raises:
        MalformedFindingError: *record* is not an object, has no rule id,
            or has a layer outside 1-6.
    """
    if not isinstance(record, dict):
        raise MalformedFindingError(
            f"Finding must be an object, got {type(record).__name__}", record
        )

    layer_raw = record.get("layer", default_layer)
    try:
        layer = int(layer_raw)
    except (TypeError, ValueError):
        raise MalformedFindingError(f"Invalid layer {layer_raw!r}", record) from None
    if isinstance(layer_raw, bool) or layer not in LAYER_BY_NUMBER:
        raise MalformedFindingError(f"Layer must be 1-6, got {layer_raw!r}", record)

    rule_id = record.get("rule_id") or record.get("rule")
    if not rule_id:
        raise MalformedFindingError("Finding has no rule_id", record)

    raw = record.get("severity")
    severity = normalize_severity(raw)
    raw_severity = "" if is_known_severity(raw) else str(raw)

    try:
        line = int(record.get("line") or 0)
    except (TypeError, ValueError):
        raise MalformedFindingError(
            f"Invalid line {record.get('line')!r}", record
        ) from None

    return Finding(
        layer=layer,
        rule_id=str(rule_id),
        severity=severity,
        message=str(record.get("message") or ""),
        file_path=str(record.get("file_path") or record.get("file") or ""),
        line=max(line, 0),
        auto_fixable=bool(record.get("auto_fixable", False)),
        tool=str(record.get("tool") or tool),
        raw_severity=raw_severity,
    )


def finding_to_dict(finding: Finding) -> dict[str, Any]:
    """Serialise *finding* into the native JSON format."""
    return {
        "layer": finding.layer,
        "rule_id": finding.rule_id,
        "severity": finding.severity.value,
        "message": finding.message,
        "file_path": finding.file_path,
        "line": finding.line,
        "auto_fixable": finding.auto_fixable,
        "tool": finding.tool,
        "raw_severity": finding.raw_severity,
    }


def malformed_finding(reason: str, tool: str = "", layer: int = LAYER_SYNTAX) -> Finding:
    """A fail-closed CRITICAL finding standing in for unusable input."""
    return Finding(
        layer=layer,
        rule_id=GATE_MALFORMED,
        severity=Severity.CRITICAL,
        message=reason,
        tool=tool,
    )


def parse_findings(output: str, layer: int, tool: str) -> list[Finding]:
    """Parse the native format: a JSON list or ``{"findings": [...]}``.

    Records without a layer take *layer*.  Malformed records become
    ``GATE-MALFORMED`` critical findings instead of aborting the batch.
    """
    data = _load_json(output, "findings")
    if isinstance(data, dict):
        data = data.get("findings")
    if not isinstance(data, list):
        raise ParseError("findings", "Expected a list of findings")

    findings: list[Finding] = []
    for index, record in enumerate(data):
        try:
            findings.append(finding_from_dict(record, default_layer=layer, tool=tool))
        except MalformedFindingError as exc:
            logger.warning("Malformed finding #%d from %s: %s", index, tool or "input", exc)
            findings.append(
                malformed_finding(f"Finding #{index} is malformed: {exc}", tool=tool)
            )
    return findings


def load_findings_file(path: Path | str, default_layer: int | None = None) -> list[Finding]:
    """Read a native findings JSON file.

    Raises:
        ParseError: The file is not valid JSON or has the wrong shape.
        OSError: The file cannot be read.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    layer = default_layer if default_layer is not None else 0
    return parse_findings(text, layer, tool=path.name)


# ---------------------------------------------------------------------------
# Linters
# ---------------------------------------------------------------------------


def parse_eslint(output: str, layer: int, tool: str) -> list[Finding]:
    """Parse ESLint ``-f json`` output."""
    data = _load_json(output, "eslint")
    if not isinstance(data, list):
        raise ParseError("eslint", "Expected a list of file results")

    findings: list[Finding] = []
    for file_result in data:
        if not isinstance(file_result, dict):
            raise ParseError("eslint", "File result must be an object")
        file_path = str(file_result.get("filePath", ""))
        for msg in _objects(file_result.get("messages"), "eslint", "messages"):
            # Parsing errors have no ruleId and are always fatal.
            rule_id = msg.get("ruleId") or "parse-error"
            severity = (
                Severity.ERROR if msg.get("fatal") else normalize_severity(msg.get("severity"))
            )
            findings.append(
                Finding(
                    layer=layer,
                    rule_id=str(rule_id),
                    severity=severity,
                    message=str(msg.get("message", "")),
                    file_path=file_path,
                    line=_line(msg.get("line"), "eslint"),
                    auto_fixable="fix" in msg,
                    tool=tool,
                )
            )
    return findings


def parse_stylelint(output: str, layer: int, tool: str) -> list[Finding]:
    """Parse Stylelint ``-f json`` output."""
    data = _load_json(output, "stylelint")
    if not isinstance(data, list):
        raise ParseError("stylelint", "Expected a list of file results")

    findings: list[Finding] = []
    for file_result in data:
        if not isinstance(file_result, dict):
            raise ParseError("stylelint", "File result must be an object")
        file_path = str(file_result.get("source", ""))
        for warning in _objects(file_result.get("warnings"), "stylelint", "warnings"):
            findings.append(
                Finding(
                    layer=layer,
                    rule_id=str(warning.get("rule") or "stylelint"),
                    severity=normalize_severity(warning.get("severity", "warning")),
                    message=str(warning.get("text", "")),
                    file_path=file_path,
                    line=_line(warning.get("line"), "stylelint"),
                    tool=tool,
                )
            )
    return findings


# ---------------------------------------------------------------------------
# SARIF
# ---------------------------------------------------------------------------


def _security_severity(value: Any) -> Severity | None:
    """Map a CodeQL-style ``security-severity`` score (0-10)."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    return Severity.LOW


def parse_sarif(output: str, layer: int, tool: str) -> list[Finding]:
    """Parse a SARIF 2.1.0 log.

    Severity comes from the result ``level``, then the rule's default
    configuration, then ``warning``.  A ``security-severity`` property on
    the rule or result overrides the level.
    """
    data = _load_json(output, "sarif")
    if not isinstance(data, dict) or not isinstance(data.get("runs"), list):
        raise ParseError("sarif", "Expected a SARIF log with a 'runs' list")

    findings: list[Finding] = []
    for run in _objects(data["runs"], "sarif", "runs"):
        driver = _mapping(run.get("tool"), "sarif", "tool").get("driver")
        driver = _mapping(driver, "sarif", "tool.driver")
        rules = driver.get("rules") or []
        if not isinstance(rules, list):
            raise ParseError("sarif", "'tool.driver.rules' must be a list")
        rules_by_id = {
            r["id"]: r for r in rules if isinstance(r, dict) and isinstance(r.get("id"), str)
        }
        tool_name = driver.get("name") or tool

        for result in _objects(run.get("results"), "sarif", "results"):
            rule = _sarif_rule(result, rules, rules_by_id)
            rule_id = result.get("ruleId") or rule.get("id") or "sarif"

            default_config = _mapping(
                rule.get("defaultConfiguration"), "sarif", "defaultConfiguration"
            )
            level = result.get("level") or default_config.get("level") or "warning"
            severity = normalize_severity(level)

            props = {
                **_mapping(rule.get("properties"), "sarif", "rule.properties"),
                **_mapping(result.get("properties"), "sarif", "result.properties"),
            }
            scored = _security_severity(props.get("security-severity"))
            if scored is not None:
                severity = scored

            file_path, line = _sarif_location(result)
            message = _mapping(result.get("message"), "sarif", "message").get("text", "")

            findings.append(
                Finding(
                    layer=layer,
                    rule_id=str(rule_id),
                    severity=severity,
                    message=str(message),
                    file_path=file_path,
                    line=line,
                    auto_fixable=bool(result.get("fixes")),
                    tool=str(tool_name),
                )
            )
    return findings


def _sarif_rule(
    result: dict[str, Any],
    rules: list[Any],
    rules_by_id: dict[str, Any],
) -> dict[str, Any]:
    index = result.get("ruleIndex")
    if isinstance(index, int) and 0 <= index < len(rules) and isinstance(rules[index], dict):
        return rules[index]
    rule_id = result.get("ruleId")
    return rules_by_id.get(rule_id, {}) if isinstance(rule_id, str) else {}


def _sarif_location(result: dict[str, Any]) -> tuple[str, int]:
    locations = result.get("locations") or []
    if not locations:
        return "", 0
    if not isinstance(locations, list) or not isinstance(locations[0], dict):
        raise ParseError("sarif", "'locations' must be a list of objects")
    physical = _mapping(locations[0].get("physicalLocation"), "sarif", "physicalLocation")
    uri = _mapping(physical.get("artifactLocation"), "sarif", "artifactLocation").get("uri", "")
    uri = str(uri)
    if uri.startswith("file://"):
        uri = uri[len("file://"):]
    line = _mapping(physical.get("region"), "sarif", "region").get("startLine")
    return uri, _line(line, "sarif")


# ---------------------------------------------------------------------------
# npm audit
# ---------------------------------------------------------------------------


def parse_npm_audit(output: str, layer: int, tool: str) -> list[Finding]:
    """Parse ``npm audit --json`` (npm 7+ and the legacy npm 6 format)."""
    data = _load_json(output, "npm-audit")
    if not isinstance(data, dict):
        raise ParseError("npm-audit", "Expected a JSON object")

    findings: list[Finding] = []

    vulnerabilities = data.get("vulnerabilities")
    if isinstance(vulnerabilities, dict):
        for name, vuln in vulnerabilities.items():
            vuln = _mapping(vuln, "npm-audit", f"vulnerabilities.{name}")
            titles = [
                v.get("title", "") for v in _list(vuln.get("via"), "npm-audit", "via")
                if isinstance(v, dict)
            ]
            detail = "; ".join(t for t in titles if t) or "vulnerable dependency chain"
            label = " ".join(p for p in (name, str(vuln.get("range") or "")) if p)
            findings.append(
                Finding(
                    layer=layer,
                    rule_id=f"npm:{name}",
                    severity=normalize_severity(vuln.get("severity")),
                    message=f"{label}: {detail}",
                    file_path="package.json",
                    auto_fixable=bool(vuln.get("fixAvailable")),
                    tool=tool,
                )
            )
        return findings

    advisories = data.get("advisories")
    if isinstance(advisories, dict):
        for advisory_id, advisory in advisories.items():
            advisory = _mapping(advisory, "npm-audit", f"advisories.{advisory_id}")
            module = advisory.get("module_name", "")
            findings.append(
                Finding(
                    layer=layer,
                    rule_id=f"npm:{module}:{advisory_id}",
                    severity=normalize_severity(advisory.get("severity")),
                    message=f"{module}: {advisory.get('title', '')}",
                    file_path="package.json",
                    auto_fixable=bool(advisory.get("patched_versions")),
                    tool=tool,
                )
            )
        return findings

    if "error" in data:
        raise ParseError("npm-audit", f"npm audit reported an error: {data['error']}")
    raise ParseError("npm-audit", "No 'vulnerabilities' or 'advisories' section")


# ---------------------------------------------------------------------------
# Compiler text diagnostics
# ---------------------------------------------------------------------------


def parse_diagnostics(output: str, layer: int, tool: str) -> list[Finding]:
    """Parse compiler text output line by line.

    Lines that are not diagnostics (progress, summaries) are ignored, so an
    empty or chatty successful build yields no findings.
    """
    findings: list[Finding] = []
    for raw_line in output.splitlines():
        line = _ANSI_PATTERN.sub("", raw_line)
        match = _MSBUILD_PATTERN.match(line) or _COLON_PATTERN.match(line)
        if match is None:
            continue
        level = match.group("level").lower()
        if level == "message":
            level = "info"
        findings.append(
            Finding(
                layer=layer,
                rule_id=match.group("code") or f"{tool or 'compiler'}-{level}",
                severity=normalize_severity(level),
                message=match.group("msg"),
                file_path=match.group("file").strip(),
                line=int(match.group("line")),
                tool=tool,
            )
        )
    return findings


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

PARSERS: dict[str, Parser] = {
    "eslint": parse_eslint,
    "stylelint": parse_stylelint,
    "sarif": parse_sarif,
    "npm-audit": parse_npm_audit,
    "diagnostics": parse_diagnostics,
    "findings": parse_findings,
}


def get_parser(name: str) -> Parser:
    """Look up a parser by name.

    Raises:
        ParseError: No parser is registered under *name*.
    """
    try:
        return PARSERS[name]
    except KeyError:
        raise ParseError(
            name, f"Unknown parser '{name}' (known: {', '.join(sorted(PARSERS))})"
        ) from None


def _load_json(output: str, parser: str) -> Any:
    if not output.strip():
        raise ParseError(parser, "Tool produced no output")
    try:
        return json.loads(output)
    except json.JSONDecodeError as exc:
        raise ParseError(parser, f"Invalid JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# Nested shape checks
# ---------------------------------------------------------------------------


def _list(value: Any, parser: str, field_name: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(parser, f"'{field_name}' must be a list")
    return value


def _objects(value: Any, parser: str, field_name: str) -> list[dict[str, Any]]:
    items = _list(value, parser, field_name)
    if not all(isinstance(item, dict) for item in items):
        raise ParseError(parser, f"'{field_name}' must be a list of objects")
    return items


def _mapping(value: Any, parser: str, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ParseError(parser, f"'{field_name}' must be an object")
    return value


def _line(value: Any, parser: str) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ParseError(parser, f"Invalid line number {value!r}")
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        raise ParseError(parser, f"Invalid line number {value!r}") from None
