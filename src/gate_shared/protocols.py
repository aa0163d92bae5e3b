"""Runtime-checkable protocols for quality gate finding sources."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from src.gate_shared.models import Finding


@runtime_checkable
class FindingSource(Protocol):
    """Protocol for anything that contributes findings to a layer.

    External tool runners and the built-in pattern scanner both satisfy
    this protocol, so the engine can treat them uniformly.
    """

    name: str

    async def collect(self, changed_files: list[str]) -> list[Finding]:
        """Produce findings for *changed_files*.

        Args:
            changed_files: Paths of the files under review.

        Returns:
            Findings in the order the source reported them.
        """
        ...
