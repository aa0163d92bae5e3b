"""Built-in pattern rules for the security and optimization layers.

Grep-style checks run directly over the changed files, so layers 5 and 6
produce findings without any external tool installed:

- Security / OWASP (SEC-001..SEC-006): hardcoded secrets, dynamic code
  execution, unsafe HTML sinks, SQL built by concatenation, private keys,
  plain-HTTP endpoints.
- Optimization / standards (STD-001..STD-006): ``console.log``,
  ``debugger``, explicit ``any``, ``SELECT *``, TODO markers, stored
  procedures without ``SET NOCOUNT ON``.

All regex patterns are compiled at module level.  A ``gate-ignore``
comment on a line suppresses every rule on it; ``gate-ignore: SEC-003``
suppresses only the listed codes.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from src.gate_runner.config import ScannerConfig
from src.gate_shared.constants import LAYER_OPTIMIZATION, LAYER_SECURITY
from src.gate_shared.models import Finding, Severity

logger = logging.getLogger(__name__)

_JS_TS = frozenset({".ts", ".tsx", ".js", ".jsx"})
_TS = frozenset({".ts", ".tsx"})
_SQL_HOSTS = frozenset({".sql", ".cs", ".ts", ".js", ".py"})

# ---------------------------------------------------------------------------
# Suppression pattern
# ---------------------------------------------------------------------------

_IGNORE_PATTERN: re.Pattern[str] = re.compile(
    r"gate-ignore(?:\s*:\s*(?P<codes>[A-Z]+-\d{3}(?:\s*,\s*[A-Z]+-\d{3})*))?",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class PatternRule:
    """A single line-oriented rule."""
    code: str
    layer: int
    severity: Severity
    pattern: re.Pattern[str]
    message: str
    auto_fixable: bool = False
    extensions: frozenset[str] = frozenset()

    def applies_to(self, suffix: str) -> bool:
        return not self.extensions or suffix in self.extensions


# ---------------------------------------------------------------------------
# Security / OWASP rules (layer 5)
# ---------------------------------------------------------------------------

# SEC-001: Hardcoded secret assigned to a credential-like name.
_HARDCODED_SECRET_PATTERN: re.Pattern[str] = re.compile(
    r"""(?:password|passwd|pwd|secret|api[_-]?key|apikey|access[_-]?token|"""
    r"""auth[_-]?token|client[_-]?secret|private[_-]?key)\w*["']?\s*[:=]\s*"""
    r"""["'][^"'\s]{6,}["']""",
    re.IGNORECASE,
)

# SEC-002: Dynamic code execution.
_EVAL_PATTERN: re.Pattern[str] = re.compile(
    r"""\beval\s*\(|\bnew\s+Function\s*\(|\bset(?:Timeout|Interval)\s*\(\s*["'`]""",
)

# SEC-003: Unsafe HTML sinks (DOM, Angular sanitizer bypass, React).
_UNSAFE_HTML_PATTERN: re.Pattern[str] = re.compile(
    r"""\.(?:inner|outer)HTML\s*=(?!=)|"""
    r"""\bbypassSecurityTrust(?:Html|Script|Style|Url|ResourceUrl)\s*\(|"""
    r"""\bdangerouslySetInnerHTML\b|"""
    r"""\bdocument\.write(?:ln)?\s*\(""",
)

# SEC-004: SQL assembled from strings (concatenation, interpolation, EXEC(@sql)).
_SQL_CONCAT_PATTERN: re.Pattern[str] = re.compile(
    r"""(?:\bEXEC(?:UTE)?\s*\(\s*@\w+\s*\))|"""
    r"""(?:["'](?:SELECT|INSERT|UPDATE|DELETE)\b[^"']*["']\s*\+)|"""
    r"""(?:\$["'](?:SELECT|INSERT|UPDATE|DELETE)\b[^"']*\{)|"""
    r"""(?:`(?:SELECT|INSERT|UPDATE|DELETE)\b[^`]*\$\{)""",
    re.IGNORECASE,
)

# SEC-005: Private key material.
_PRIVATE_KEY_PATTERN: re.Pattern[str] = re.compile(
    r"-----BEGIN\s+(?:RSA\s+|EC\s+|DSA\s+|OPENSSH\s+)?PRIVATE\s+KEY-----",
)

# SEC-006: Plain-HTTP endpoint other than loopback.
_PLAIN_HTTP_PATTERN: re.Pattern[str] = re.compile(
    r"""["'`]http://(?!localhost\b|127\.0\.0\.1\b|0\.0\.0\.0\b)[^"'`\s]+""",
    re.IGNORECASE,
)

# ---------------------------------------------------------------------------
# Optimization / standards rules (layer 6)
# ---------------------------------------------------------------------------

_CONSOLE_LOG_PATTERN: re.Pattern[str] = re.compile(r"\bconsole\.(?:log|debug)\s*\(")
_DEBUGGER_PATTERN: re.Pattern[str] = re.compile(r"^\s*debugger\s*;?\s*$")
_EXPLICIT_ANY_PATTERN: re.Pattern[str] = re.compile(r":\s*any\b|<any>|\bas\s+any\b")
_SELECT_STAR_PATTERN: re.Pattern[str] = re.compile(r"\bSELECT\s+\*\s+FROM\b", re.IGNORECASE)
_TODO_PATTERN: re.Pattern[str] = re.compile(r"\b(?:TODO|FIXME|HACK)\b")

# STD-006 is file-level: a procedure definition without SET NOCOUNT ON.
_CREATE_PROC_PATTERN: re.Pattern[str] = re.compile(
    r"\bCREATE\s+(?:OR\s+ALTER\s+)?PROC(?:EDURE)?\b", re.IGNORECASE
)
_NOCOUNT_PATTERN: re.Pattern[str] = re.compile(r"\bSET\s+NOCOUNT\s+ON\b", re.IGNORECASE)

RULES: tuple[PatternRule, ...] = (
    PatternRule("SEC-001", LAYER_SECURITY, Severity.CRITICAL, _HARDCODED_SECRET_PATTERN,
                "Hardcoded secret; load it from configuration or a secrets store"),
    PatternRule("SEC-002", LAYER_SECURITY, Severity.HIGH, _EVAL_PATTERN,
                "Dynamic code execution", extensions=_JS_TS | {".html"}),
    PatternRule("SEC-003", LAYER_SECURITY, Severity.HIGH, _UNSAFE_HTML_PATTERN,
                "Unsafe HTML sink; bind sanitized content instead",
                extensions=_JS_TS | {".html"}),
    PatternRule("SEC-004", LAYER_SECURITY, Severity.CRITICAL, _SQL_CONCAT_PATTERN,
                "SQL built from strings; use parameters (sp_executesql / parameterized queries)",
                extensions=_SQL_HOSTS),
    PatternRule("SEC-005", LAYER_SECURITY, Severity.CRITICAL, _PRIVATE_KEY_PATTERN,
                "Private key committed to source"),
    PatternRule("SEC-006", LAYER_SECURITY, Severity.MEDIUM, _PLAIN_HTTP_PATTERN,
                "Plain-HTTP endpoint; use HTTPS"),
    PatternRule("STD-001", LAYER_OPTIMIZATION, Severity.LOW, _CONSOLE_LOG_PATTERN,
                "console logging left in code", auto_fixable=True, extensions=_JS_TS),
    PatternRule("STD-002", LAYER_OPTIMIZATION, Severity.MEDIUM, _DEBUGGER_PATTERN,
                "debugger statement", auto_fixable=True, extensions=_JS_TS),
    PatternRule("STD-003", LAYER_OPTIMIZATION, Severity.LOW, _EXPLICIT_ANY_PATTERN,
                "Explicit 'any' type", extensions=_TS),
    PatternRule("STD-004", LAYER_OPTIMIZATION, Severity.MEDIUM, _SELECT_STAR_PATTERN,
                "SELECT * ; list the columns explicitly", extensions=_SQL_HOSTS),
    PatternRule("STD-005", LAYER_OPTIMIZATION, Severity.INFO, _TODO_PATTERN,
                "Unresolved TODO/FIXME marker"),
)


class PatternScanner:
    """Runs the built-in rules of one layer over the changed files.

    Satisfies the ``FindingSource`` protocol.  File reads happen in a
    thread pool so the event loop is not blocked.
    """

    def __init__(
        self,
        layer: int,
        config: ScannerConfig | None = None,
        root: Path | None = None,
    ) -> None:
        self._layer = layer
        self._config = config or ScannerConfig()
        self._root = root or Path(".")
        self._rules = [r for r in RULES if r.layer == layer]
        self._excluded = frozenset(self._config.excluded_dirs)
        self._extensions = frozenset(e.lower() for e in self._config.extensions)
        self.name = "builtin-security" if layer == LAYER_SECURITY else "builtin-standards"

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def collect(self, changed_files: list[str]) -> list[Finding]:
        """Scan *changed_files* (relative to the root) with this layer's rules."""
        files = [f for f in changed_files if self._should_scan(f)]
        if not files:
            return []
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._scan_all_files, files)

    def scan_text(self, file_path: str, content: str) -> list[Finding]:
        """Apply this layer's rules to *content* as if read from *file_path*."""
        suffix = Path(file_path).suffix.lower()
        lines = content.splitlines()
        findings: list[Finding] = []

        for line_no, line in enumerate(lines, start=1):
            for rule in self._rules:
                if not rule.applies_to(suffix):
                    continue
                if rule.pattern.search(line) and not self._is_ignored(line, rule.code):
                    findings.append(self._finding(rule, file_path, line_no))

        if self._layer == LAYER_OPTIMIZATION and suffix == ".sql":
            findings.extend(self._check_nocount(file_path, content, lines))

        return findings

    # ------------------------------------------------------------------ #
    # Filtering helpers
    # ------------------------------------------------------------------ #

    def _should_scan(self, file_path: str) -> bool:
        path = Path(file_path)
        if self._excluded & set(path.parts):
            return False
        return path.suffix.lower() in self._extensions

    @staticmethod
    def _is_ignored(line: str, code: str) -> bool:
        """Return ``True`` if *line* carries a ``gate-ignore`` for *code*."""
        for m in _IGNORE_PATTERN.finditer(line):
            codes = m.group("codes")
            if codes is None:
                return True
            if code.upper() in {c.strip().upper() for c in codes.split(",")}:
                return True
        return False

    # ------------------------------------------------------------------ #
    # Internal scanning
    # ------------------------------------------------------------------ #

    def _scan_all_files(self, files: list[str]) -> list[Finding]:
        findings: list[Finding] = []
        for file_path in files:
            full = self._root / file_path
            try:
                if full.stat().st_size > self._config.max_file_bytes:
                    logger.info("Skipping %s: larger than %d bytes", file_path,
                                self._config.max_file_bytes)
                    continue
                content = full.read_text(encoding="utf-8", errors="replace")
            except FileNotFoundError:
                # Deleted in the change set; nothing to scan.
                logger.debug("Skipping %s: file not found", file_path)
                continue
            except OSError as exc:
                logger.warning("Cannot read %s: %s", file_path, exc)
                continue
            findings.extend(self.scan_text(file_path, content))
        return findings

    def _check_nocount(
        self, file_path: str, content: str, lines: list[str]
    ) -> list[Finding]:
        if _NOCOUNT_PATTERN.search(content):
            return []
        for line_no, line in enumerate(lines, start=1):
            if _CREATE_PROC_PATTERN.search(line):
                if self._is_ignored(line, "STD-006"):
                    return []
                return [
                    Finding(
                        layer=self._layer,
                        rule_id="STD-006",
                        severity=Severity.LOW,
                        message="Stored procedure without SET NOCOUNT ON",
                        file_path=file_path,
                        line=line_no,
                        auto_fixable=True,
                        tool=self.name,
                    )
                ]
        return []

    def _finding(self, rule: PatternRule, file_path: str, line_no: int) -> Finding:
        return Finding(
            layer=self._layer,
            rule_id=rule.code,
            severity=rule.severity,
            message=rule.message,
            file_path=file_path,
            line=line_no,
            auto_fixable=rule.auto_fixable,
            tool=self.name,
        )
