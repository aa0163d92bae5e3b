"""Configuration dataclasses and loader for the quality gate."""

from __future__ import annotations

import logging
from dataclasses import MISSING, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from src.gate_runner.exceptions import ConfigurationError
from src.gate_shared.constants import (
    DEFAULT_MAX_FINDINGS_PER_LAYER,
    DEFAULT_TOOL_TIMEOUT,
    LAYER_BY_KEY,
    LAYER_OPTIMIZATION,
    LAYER_SECURITY,
    LAYERS,
)

logger = logging.getLogger(__name__)


@dataclass
class ToolConfig:
    """An external analyser run as part of a layer.

    ``command`` is an argv list; the element ``"{files}"`` expands to the
    changed files that match ``extensions`` (all files when empty).
    """

    name: str
    command: list[str] = field(default_factory=list)
    parser: str = "diagnostics"
    timeout: int = DEFAULT_TOOL_TIMEOUT
    cwd: str = ""
    extensions: list[str] = field(default_factory=list)
    skip_if_no_files: bool = True


@dataclass
class LayerConfig:
    """Configuration for one of the six layers."""

    enabled: bool = True
    builtin_rules: bool = False
    tools: list[ToolConfig] = field(default_factory=list)


@dataclass
class GateSettings:
    """Decision and propagation behaviour."""

    halt_on_blocking: bool = True
    fail_on_conditional: bool = False
    max_findings_per_layer: int = DEFAULT_MAX_FINDINGS_PER_LAYER


@dataclass
class ScannerConfig:
    """Configuration for the built-in pattern scanner."""

    excluded_dirs: list[str] = field(
        default_factory=lambda: [
            "node_modules", ".venv", "venv", "__pycache__", ".git",
            "dist", "build", "bin", "obj", ".angular", "coverage",
        ]
    )
    extensions: list[str] = field(
        default_factory=lambda: [
            ".ts", ".tsx", ".js", ".jsx", ".html", ".cs", ".sql",
            ".json", ".yaml", ".yml", ".env", ".config", ".py",
        ]
    )
    max_file_bytes: int = 1_000_000


@dataclass
class LoggingConfig:
    """Configuration for log output."""

    level: str = "INFO"
    json: bool = False


def _default_layers() -> dict[str, LayerConfig]:
    return {
        spec.key: LayerConfig(
            builtin_rules=spec.number in (LAYER_SECURITY, LAYER_OPTIMIZATION)
        )
        for spec in LAYERS
    }


@dataclass
class QualityGateConfig:
    """Top-level configuration composing all sub-configs."""

    gate: GateSettings = field(default_factory=GateSettings)
    layers: dict[str, LayerConfig] = field(default_factory=_default_layers)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def layer(self, key: str) -> LayerConfig:
        """Return the config for layer *key*, defaulting when absent."""
        return self.layers.get(key) or LayerConfig()


def _pick(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter *data* to only keys accepted by *cls*."""
    valid = {f.name for f in cls.__dataclass_fields__.values()}
    return {k: v for k, v in data.items() if k in valid}


_TYPE_NAMES = {bool: "true or false", int: "an integer", str: "a string", list: "a list"}


def _check_types(obj: Any, where: str) -> None:
    """Reject values whose YAML type differs from the field's default (``'300'``, ``'false'``)."""
    for f in fields(obj):
        if f.default is not MISSING:
            expected = type(f.default)
        elif f.default_factory is not MISSING:
            expected = type(f.default_factory())
        else:
            expected = str
        if expected not in _TYPE_NAMES:
            continue
        value = getattr(obj, f.name)
        if expected is int:
            ok = isinstance(value, int) and not isinstance(value, bool)
        elif expected is list:
            ok = isinstance(value, list) and all(isinstance(v, str) for v in value)
        else:
            ok = isinstance(value, expected)
        if not ok:
            raise ConfigurationError(
                f"{where}.{f.name} must be {_TYPE_NAMES[expected]}, got {value!r}"
            )


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"Section '{key}' must be a mapping")
    return value


def _build_tool(layer_key: str, raw: Any) -> ToolConfig:
    from src.quality_gate.parsers import PARSERS

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Layer '{layer_key}': each tool must be a mapping")
    if "name" not in raw:
        raise ConfigurationError(f"Layer '{layer_key}': tool is missing 'name'")
    tool = ToolConfig(**_pick(raw, ToolConfig))
    if isinstance(tool.command, str):
        tool.command = tool.command.split()
    _check_types(tool, f"layers.{layer_key}.tools[{tool.name}]")
    if not tool.command:
        raise ConfigurationError(
            f"Layer '{layer_key}': tool '{tool.name}' has no command"
        )
    if tool.parser not in PARSERS:
        raise ConfigurationError(
            f"Layer '{layer_key}': tool '{tool.name}' uses unknown parser "
            f"'{tool.parser}' (known: {', '.join(sorted(PARSERS))})"
        )
    if tool.timeout <= 0:
        raise ConfigurationError(
            f"Layer '{layer_key}': tool '{tool.name}' timeout must be positive"
        )
    return tool


def _build_layers(raw_layers: dict[str, Any]) -> dict[str, LayerConfig]:
    layers = _default_layers()
    for key, raw in raw_layers.items():
        if key not in LAYER_BY_KEY:
            logger.warning("Ignoring unknown layer '%s' in config", key)
            continue
        raw = raw or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Layer '{key}' must be a mapping")
        base = layers[key]
        tools = [_build_tool(key, t) for t in raw.get("tools") or []]
        layer = LayerConfig(
            enabled=raw.get("enabled", base.enabled),
            builtin_rules=raw.get("builtin_rules", base.builtin_rules),
        )
        _check_types(layer, f"layers.{key}")
        layer.tools = tools
        layers[key] = layer
    return layers


def load_config(path: Path | str | None = None) -> QualityGateConfig:
    """Load quality gate configuration from a YAML file.

    Missing sections fall back to defaults.  Unknown keys are silently
    ignored so that forward-compatible config files work.

    Args:
        path: Path to config YAML.  If ``None`` or the file does not
              exist, returns full defaults.

    Returns:
        Populated configuration dataclass.

    Raises:
        ConfigurationError: The file is not valid YAML or holds invalid
            values.
    """
    if path is None:
        return QualityGateConfig()

    path = Path(path)
    if not path.exists():
        logger.debug("Config file %s not found, using defaults", path)
        return QualityGateConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")

    gate = GateSettings(**_pick(_section(raw, "gate"), GateSettings))
    _check_types(gate, "gate")
    if gate.max_findings_per_layer <= 0:
        raise ConfigurationError("gate.max_findings_per_layer must be positive")

    scanner = ScannerConfig(**_pick(_section(raw, "scanner"), ScannerConfig))
    _check_types(scanner, "scanner")
    log_cfg = LoggingConfig(**_pick(_section(raw, "logging"), LoggingConfig))
    _check_types(log_cfg, "logging")

    return QualityGateConfig(
        gate=gate,
        layers=_build_layers(_section(raw, "layers")),
        scanner=scanner,
        logging=log_cfg,
    )


DEFAULT_CONFIG_TEMPLATE = """\
# Quality gate configuration.
# Each layer runs its tools (and built-in rules, where enabled) over the
# changed files.  "{files}" in a command expands to the matching files.

gate:
  halt_on_blocking: true      # stop after a layer with blocking findings
  fail_on_conditional: false  # treat HIGH-only results as a failure
  max_findings_per_layer: 200

layers:
  syntax:
    enabled: true
    tools:
      - name: tsc
        command: [npx, tsc, --noEmit, --pretty, "false"]
        parser: diagnostics
        timeout: 300
        skip_if_no_files: true
        extensions: [.ts, .tsx]
  lint:
    enabled: true
    tools:
      - name: eslint
        command: [npx, eslint, -f, json, "{files}"]
        parser: eslint
        extensions: [.ts, .tsx, .js, .jsx]
  static:
    enabled: true
    tools: []
  vulnerability:
    enabled: true
    tools:
      - name: npm-audit
        command: [npm, audit, --json]
        parser: npm-audit
        skip_if_no_files: false
  security:
    enabled: true
    builtin_rules: true
  optimization:
    enabled: true
    builtin_rules: true

scanner:
  excluded_dirs: [node_modules, .git, dist, build, bin, obj, .angular, coverage]

logging:
  level: INFO
  json: false
"""
