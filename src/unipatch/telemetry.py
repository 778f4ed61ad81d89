"""Logging setup and structured telemetry events for patch runs."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

__all__ = ["PACKAGE_LOGGER", "TELEMETRY_LOGGER", "emit_event", "setup_logging"]

PACKAGE_LOGGER = "unipatch"
TELEMETRY_LOGGER = logging.getLogger("unipatch.telemetry")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int = logging.WARNING, *, stream: TextIO | None = None) -> logging.Logger:
    """Attach a single stderr handler to the package logger."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_unipatch_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler._unipatch_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def _json_value(value: Any) -> Any:
    """Render paths, and lists of paths, the way event payloads expect them."""
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    return value


def emit_event(event: str, **fields: Any) -> None:
    """Log one structured telemetry event as a JSON line."""
    if not TELEMETRY_LOGGER.isEnabledFor(logging.INFO):
        return
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    payload.update((key, _json_value(value)) for key, value in fields.items())
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), default=str))
