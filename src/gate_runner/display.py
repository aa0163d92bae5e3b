"""Rich-based terminal display layer for gate results.

Provides formatted output for the gate summary, the findings table, the
layer catalogue, and error panels.  Uses a module-level
:class:`~rich.console.Console` singleton for consistent output.

.. rubric:: Design decisions

* **Module-level Console singleton** -- all display functions share
  ``_console`` so that Rich formatting is consistent across the session.
* **Functions, not a class** -- each display function is standalone and
  stateless, making them easy to test and compose.
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.gate_shared.constants import LAYERS
from src.gate_shared.models import GateDecision, GateReport, LayerStatus, Severity
from src.quality_gate.severity import is_blocking

# ---------------------------------------------------------------------------
# Module-level Console singleton
# ---------------------------------------------------------------------------

_console = Console()

_DECISION_STYLE: dict[GateDecision, str] = {
    GateDecision.PASS: "green",
    GateDecision.CONDITIONAL: "yellow",
    GateDecision.BLOCKED: "red",
}

_STATUS_STYLE: dict[LayerStatus, str] = {
    LayerStatus.PASS: "green",
    LayerStatus.FAIL: "bold red",
    LayerStatus.SKIPPED: "dim",
}

_SEVERITY_STYLE: dict[Severity, str] = {
    Severity.CRITICAL: "bold red",
    Severity.ERROR: "red",
    Severity.HIGH: "dark_orange",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
    Severity.INFO: "dim",
}


# ---------------------------------------------------------------------------
# Display functions
# ---------------------------------------------------------------------------


def print_gate_summary(report: GateReport) -> None:
    """Print a Rich panel summarising the gate decision and each layer."""
    style = _DECISION_STYLE.get(report.decision, "dim")
    decision = report.decision.value.upper()
    if report.decision == GateDecision.PASS and report.clean:
        decision += " (clean)"

    content = Text()
    content.append(f"Decision: {decision}\n", style=f"bold {style}")
    content.append(f"Total Findings: {report.total_findings}\n")
    content.append(f"Blocking Findings: {report.blocking_findings}\n")
    if report.halted_at is not None:
        content.append(
            f"Stopped after Layer {report.halted_at}; later layers skipped\n",
            style="yellow",
        )

    layer_table = Table(show_header=True, header_style="bold")
    layer_table.add_column("#", justify="right")
    layer_table.add_column("Layer", style="cyan", min_width=24)
    layer_table.add_column("Status", justify="center", min_width=8)
    layer_table.add_column("Findings", justify="right")
    layer_table.add_column("Blocking", justify="right")

    for lr in report.layers:
        status_style = _STATUS_STYLE.get(lr.status, "")
        blocking = sum(1 for f in lr.findings if is_blocking(f))
        layer_table.add_row(
            str(lr.layer),
            lr.name,
            f"[{status_style}]{lr.status.value.upper()}[/{status_style}]",
            str(len(lr.findings)),
            str(blocking),
        )

    _console.print(
        Panel(
            Group(content, layer_table),
            title="[bold]Quality Gate Summary[/bold]",
            border_style=style,
            expand=False,
        )
    )


def print_findings_table(report: GateReport, limit: int = 50) -> None:
    """Print the most severe findings, at most *limit* rows."""
    findings = sorted(report.all_findings(), key=lambda f: (f.severity.rank, f.layer))
    if not findings:
        _console.print("[dim]No findings.[/dim]")
        return

    table = Table(title="Findings", show_header=True, header_style="bold magenta")
    table.add_column("Severity", min_width=8)
    table.add_column("Layer", justify="right")
    table.add_column("Rule", style="cyan")
    table.add_column("Location")
    table.add_column("Message")

    for f in findings[:limit]:
        sev_style = _SEVERITY_STYLE.get(f.severity, "")
        location = f.file_path or "--"
        if f.file_path and f.line:
            location = f"{f.file_path}:{f.line}"
        table.add_row(
            f"[{sev_style}]{f.severity.value.upper()}[/{sev_style}]",
            str(f.layer),
            escape(f.rule_id),
            escape(location),
            escape(f.message),
        )

    _console.print(table)
    if len(findings) > limit:
        _console.print(f"[dim]... {len(findings) - limit} more finding(s) in the report[/dim]")


def print_layers() -> None:
    """Print the catalogue of the six layers."""
    table = Table(title="Quality Gate Layers", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Checks")
    for spec in LAYERS:
        table.add_row(str(spec.number), spec.key, spec.name, spec.description)
    _console.print(table)


def print_error_panel(error: str | Exception) -> None:
    """Print an error message in a red Rich panel.

    Parameters
    ----------
    error:
        Error message string or Exception instance.
    """
    error_text = str(error)
    _console.print(
        Panel(
            Text(error_text, style="bold white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            expand=False,
        )
    )


def print_message(message: str, style: str = "") -> None:
    """Print a single line through the shared console."""
    _console.print(message, style=style or None)
