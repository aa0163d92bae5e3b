"""External tool runner for the quality gate.

Runs one configured analyser (compiler, linter, SAST tool, audit) as a
subprocess, waits for it with a timeout, and hands its stdout to the
configured parser.  Linters conventionally exit non-zero when they report
problems, so the exit code alone never decides success: the parser does.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from src.gate_runner.config import ToolConfig
from src.gate_runner.exceptions import ParseError, ToolExecutionError, ToolTimeoutError
from src.gate_shared.models import Finding
from src.quality_gate.parsers import get_parser

logger = logging.getLogger(__name__)

FILES_PLACEHOLDER = "{files}"

# Maximum stderr excerpt carried into error messages.
_STDERR_EXCERPT = 500


class ToolRunner:
    """Runs one external tool and parses its output into findings.

    Usage
    -----
    ::

        runner = ToolRunner(tool_config, layer=2, root=Path("."))
        findings = await runner.collect(["src/app.ts"])
    """

    def __init__(self, tool: ToolConfig, layer: int, root: Path | None = None) -> None:
        self._tool = tool
        self._layer = layer
        self._root = root
        self._parser = get_parser(tool.parser)
        self.name = tool.name

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def select_files(self, changed_files: list[str]) -> list[str]:
        """Return the changed files this tool should see."""
        if not self._tool.extensions:
            return list(changed_files)
        wanted = {ext.lower() for ext in self._tool.extensions}
        return [f for f in changed_files if Path(f).suffix.lower() in wanted]

    def build_argv(self, files: list[str]) -> list[str]:
        """Expand the ``{files}`` placeholder in the configured command."""
        argv: list[str] = []
        for part in self._tool.command:
            if part == FILES_PLACEHOLDER:
                argv.extend(files)
            else:
                argv.append(part)
        return argv

    async def collect(self, changed_files: list[str]) -> list[Finding]:
        """Run the tool against *changed_files* and parse the result.

        Raises
        ------
        ToolExecutionError
            The executable is missing or could not be started.
        ToolTimeoutError
            The tool did not finish within its timeout.
        ParseError
            The output could not be parsed.
        """
        files = self.select_files(changed_files)
        if not files and self._tool.skip_if_no_files:
            logger.debug("Tool %s skipped: no matching files", self.name)
            return []

        argv = self.build_argv(files)
        returncode, stdout, stderr = await self._execute(argv)

        try:
            findings = self._parser(stdout, self._layer, self.name)
        except ParseError as exc:
            detail = stderr.strip()[:_STDERR_EXCERPT]
            message = f"{exc} (exit {returncode})"
            if detail:
                message = f"{message}: {detail}"
            raise ParseError(self._tool.parser, message) from exc
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ParseError(
                self._tool.parser,
                f"Unexpected output structure: {exc} (exit {returncode})",
            ) from exc

        logger.info(
            "Tool %s finished -- exit=%d, findings=%d",
            self.name,
            returncode,
            len(findings),
        )
        return findings

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute(self, argv: list[str]) -> tuple[int, str, str]:
        """Run *argv* and return ``(returncode, stdout, stderr)``."""
        cwd = self._working_dir()
        logger.debug("Running tool %s: %s", self.name, " ".join(argv))

        proc = None
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._tool.timeout
            )
        except FileNotFoundError as exc:
            raise ToolExecutionError(
                self.name, f"Tool '{self.name}' executable not found: {argv[0]}"
            ) from exc
        except PermissionError as exc:
            raise ToolExecutionError(
                self.name, f"Tool '{self.name}' is not executable: {argv[0]}"
            ) from exc
        except asyncio.TimeoutError:
            logger.error("Tool %s timed out after %ds", self.name, self._tool.timeout)
            raise ToolTimeoutError(self.name, self._tool.timeout)
        finally:
            if proc is not None and proc.returncode is None:
                proc.kill()
                await proc.wait()

        return (
            proc.returncode if proc.returncode is not None else -1,
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        )

    def _working_dir(self) -> Path | None:
        """Resolve the tool's cwd; a relative ``cwd`` is taken from the project root."""
        if not self._tool.cwd:
            return self._root
        cwd = Path(self._tool.cwd)
        if cwd.is_absolute() or self._root is None:
            return cwd
        return self._root / cwd
