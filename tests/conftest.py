"""Shared test fixtures for the quality gate test suite."""
from __future__ import annotations

from pathlib import Path

import pytest

from src.gate_runner.config import QualityGateConfig


@pytest.fixture
def builtin_only_config() -> QualityGateConfig:
    """Default config: no external tools, built-in rules on layers 5 and 6."""
    return QualityGateConfig()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small project tree with one clean and one problematic file."""
    src = tmp_path / "src"
    src.mkdir()
    (src / "clean.ts").write_text(
        "export function add(a: number, b: number): number {\n"
        "  return a + b;\n"
        "}\n",
        encoding="utf-8",
    )
    (src / "debug.ts").write_text(
        "export function load(): void {\n"
        "  console.log('loading');\n"
        "}\n",
        encoding="utf-8",
    )
    return tmp_path
