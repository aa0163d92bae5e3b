"""Shared utility functions for the quality gate."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


def atomic_write_text(path: Path | str, text: str) -> None:
    """Write text atomically by writing to a temp file then renaming.

    Args:
        path: Target file path.
        text: Content to write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except BaseException:
        # Clean up temp file on any failure
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def atomic_write_json(path: Path | str, data: Any) -> None:
    """Write JSON data atomically.

    Args:
        path: Target file path.
        data: JSON-serialisable data to write.
    """
    atomic_write_text(path, json.dumps(data, indent=2, default=str))


def read_file_list(path: Path | str) -> list[str]:
    """Read a newline-separated list of paths, skipping blanks and comments.

    Args:
        path: File holding one path per line.

    Returns:
        The paths, in file order, without duplicates.
    """
    seen: set[str] = set()
    files: list[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            entry = raw.strip()
            if not entry or entry.startswith("#") or entry in seen:
                continue
            seen.add(entry)
            files.append(entry)
    return files
