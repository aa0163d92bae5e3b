"""Typer command line for the quality gate.

Commands
--------
``run``       Run all six layers over the changed files.
``evaluate``  Aggregate pre-collected findings without running any tool.
``init``      Write the default configuration template.
``layers``    List the six layers.

Exit codes: 0 PASS, 1 BLOCKED, 3 CONDITIONAL in strict mode, 2 for usage
or configuration errors.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer

from src.gate_runner import __version__
from src.gate_runner.config import (
    DEFAULT_CONFIG_TEMPLATE,
    QualityGateConfig,
    load_config,
)
from src.gate_runner.display import (
    print_error_panel,
    print_findings_table,
    print_gate_summary,
    print_layers,
    print_message,
)
from src.gate_runner.exceptions import GateError
from src.gate_shared.constants import (
    DEFAULT_CONFIG_FILE,
    EXIT_BLOCKED,
    EXIT_CONDITIONAL,
    EXIT_PASS,
    EXIT_USAGE,
    LAYERS,
)
from src.gate_shared.logging import new_run_id, setup_logging
from src.gate_shared.models import (
    Finding,
    GateDecision,
    GateReport,
    LayerResult,
    LayerStatus,
)
from src.gate_shared.utils import atomic_write_json, atomic_write_text, read_file_list
from src.quality_gate.aggregator import GateAggregator
from src.quality_gate.gate_engine import QualityGateEngine
from src.quality_gate.parsers import load_findings_file
from src.quality_gate.report import generate_gate_report, report_to_dict

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="quality-gate",
    help="Six-layer quality gate: syntax, lint, static analysis, "
    "vulnerabilities, security review, standards.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"quality-gate {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Six-layer quality gate."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load(config_path: Path, verbose: bool) -> QualityGateConfig:
    try:
        config = load_config(config_path)
    except GateError as exc:
        print_error_panel(exc)
        raise typer.Exit(code=EXIT_USAGE)
    level = "DEBUG" if verbose else config.logging.level
    setup_logging(level=level, json_output=config.logging.json)
    run_id = new_run_id()
    logger.debug("Gate run %s started with config %s", run_id, config_path)
    return config


def _exit_code(report: GateReport, strict: bool) -> int:
    if report.decision == GateDecision.BLOCKED:
        return EXIT_BLOCKED
    if report.decision == GateDecision.CONDITIONAL and strict:
        return EXIT_CONDITIONAL
    return EXIT_PASS


def _finish(
    report: GateReport,
    report_path: Optional[Path],
    json_path: Optional[Path],
    strict: bool,
    quiet: bool,
) -> None:
    if report_path is not None:
        atomic_write_text(report_path, generate_gate_report(report))
        logger.info("Markdown report written to %s", report_path)
    if json_path is not None:
        atomic_write_json(json_path, report_to_dict(report))
        logger.info("JSON report written to %s", json_path)

    if not quiet:
        print_gate_summary(report)
        print_findings_table(report)

    raise typer.Exit(code=_exit_code(report, strict))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def run(
    files: Optional[List[str]] = typer.Argument(None, help="Changed files to review."),
    files_from: Optional[Path] = typer.Option(
        None, "--files-from", help="File listing changed paths, one per line."
    ),
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILE), "--config", "-c", help="YAML configuration file."
    ),
    root: Path = typer.Option(Path("."), "--root", help="Project root the paths are relative to."),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a Markdown report."),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write a JSON report."),
    strict: bool = typer.Option(False, "--strict", help="Fail on CONDITIONAL results."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress console tables."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Run all six layers over the changed files."""
    cfg = _load(config, verbose)

    changed = list(files or [])
    if files_from is not None:
        try:
            changed.extend(f for f in read_file_list(files_from) if f not in changed)
        except OSError as exc:
            print_error_panel(f"Cannot read {files_from}: {exc}")
            raise typer.Exit(code=EXIT_USAGE)
    if not changed:
        print_error_panel("No changed files given; pass paths or --files-from.")
        raise typer.Exit(code=EXIT_USAGE)

    engine = QualityGateEngine(config=cfg, project_root=root)
    gate_report = asyncio.run(engine.run(changed))
    _finish(gate_report, report, json_out, strict or cfg.gate.fail_on_conditional, quiet)


@app.command()
def evaluate(
    findings_files: List[Path] = typer.Argument(..., help="Native findings JSON file(s)."),
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILE), "--config", "-c", help="YAML configuration file."
    ),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a Markdown report."),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write a JSON report."),
    strict: bool = typer.Option(False, "--strict", help="Fail on CONDITIONAL results."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress console tables."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Aggregate pre-collected findings into a gate decision."""
    cfg = _load(config, verbose)

    findings: list[Finding] = []
    for path in findings_files:
        try:
            findings.extend(load_findings_file(path))
        except (OSError, GateError) as exc:
            print_error_panel(f"Cannot load findings from {path}: {exc}")
            raise typer.Exit(code=EXIT_USAGE)

    layer_results = [
        LayerResult(
            layer=spec.number,
            name=spec.name,
            findings=[f for f in findings if f.layer == spec.number],
            status=LayerStatus.PASS,
        )
        for spec in LAYERS
    ]
    gate_report = GateAggregator().aggregate(layer_results)
    _finish(gate_report, report, json_out, strict or cfg.gate.fail_on_conditional, quiet)


@app.command()
def init(
    output: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILE), "--output", "-o", help="Where to write the template."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    """Write the default configuration template."""
    if output.exists() and not force:
        print_error_panel(f"{output} already exists; use --force to overwrite.")
        raise typer.Exit(code=EXIT_USAGE)
    atomic_write_text(output, DEFAULT_CONFIG_TEMPLATE)
    print_message(f"Wrote {output}", style="green")


@app.command()
def layers() -> None:
    """List the six layers."""
    print_layers()


if __name__ == "__main__":
    app()
