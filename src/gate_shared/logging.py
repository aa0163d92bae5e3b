"""Structured JSON logging with run_id support."""
from __future__ import annotations

import contextvars
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

# Context variable for the current gate invocation
run_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "run_id", default=""
)

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Custom JSON log formatter."""

    def __init__(self, service_name: str = "quality-gate") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "logger": record.name,
            "run_id": run_id_var.get(""),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


def new_run_id() -> str:
    """Start a new gate invocation and return its run id."""
    run_id = uuid.uuid4().hex[:12]
    run_id_var.set(run_id)
    return run_id


def setup_logging(
    service_name: str = "src",
    level: str = "INFO",
    json_output: bool = False,
) -> logging.Logger:
    """Configure logging for the gate packages.

    Args:
        service_name: Logger name to configure; ``"src"`` covers every
            module of this project.
        level: Log level string (e.g. "INFO", "DEBUG").
        json_output: Emit one JSON object per record instead of plain text.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter(service_name="quality-gate"))
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    logger.addHandler(handler)

    return logger
