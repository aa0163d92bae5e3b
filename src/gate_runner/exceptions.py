"""Custom exceptions for the quality gate."""

from __future__ import annotations


class GateError(Exception):
    """Base exception for all quality gate errors."""

    pass


class ConfigurationError(GateError):
    """Raised for configuration issues (bad YAML, invalid values)."""

    pass


class ToolExecutionError(GateError):
    """Raised when an external tool cannot be run to completion."""

    def __init__(self, tool: str, message: str = "") -> None:
        self.tool = tool
        super().__init__(message or f"Tool '{tool}' failed to run")


class ToolTimeoutError(ToolExecutionError):
    """Raised when an external tool exceeds its timeout."""

    def __init__(self, tool: str, timeout: int) -> None:
        self.timeout = timeout
        super().__init__(tool, f"Tool '{tool}' timed out after {timeout}s")


class ParseError(GateError):
    """Raised when tool output cannot be turned into findings."""

    def __init__(self, parser: str, message: str = "") -> None:
        self.parser = parser
        super().__init__(message or f"Output not understood by parser '{parser}'")


class MalformedFindingError(GateError):
    """Raised for a finding record missing required fields or out of range."""

    def __init__(self, message: str, record: object = None) -> None:
        self.record = record
        super().__init__(message)
