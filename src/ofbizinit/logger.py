"""
Structured logging for the container entry point.

Outputs one JSON object per line on stdout so that container log shippers
(Loki, Fluent Bit) can index the initialization events. A plain text
format is available for interactive use.

Logged events:
- stage.started
- stage.skipped
- stage.completed
- hook.running / hook.sourcing / hook.ignored
- loader.invoked
- shutdown.requested
- handoff

Usage:
    from ofbizinit.logger import StageLogger, configure_logging

    configure_logging(level="info", fmt="json")
    events = StageLogger()
    events.stage_started("config_applied")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

__all__ = ["configure_logging", "JsonFormatter", "StageLogger", "EVENT_LOGGER_NAME"]

EVENT_LOGGER_NAME = "ofbizinit.events"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "json", stream=None) -> None:
    """
    Configure the ``ofbizinit`` logger hierarchy.

    Args:
        level: debug, info, warning or error
        fmt: ``json`` for log shippers, ``text`` for humans
        stream: Output stream (defaults to stdout)
    """
    root = logging.getLogger("ofbizinit")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)
    root.propagate = False


class StageLogger:
    """
    Structured logger for initialization events.

    Each entry carries an ``event`` field plus event-specific attributes,
    so stage progress can be filtered without parsing messages. Secrets are
    never passed to this class.
    """

    def __init__(self, service_name: str = "ofbiz-init", logger: Optional[logging.Logger] = None):
        self.service_name = service_name
        self._logger = logger or logging.getLogger(EVENT_LOGGER_NAME)

    def _emit(self, event: str, message: str, level: int = logging.INFO, **fields: Any) -> None:
        extra = {"event": event, "service": self.service_name}
        extra.update({k: v for k, v in fields.items() if v is not None})
        self._logger.log(level, message, extra=extra)

    def stage_started(self, stage: str) -> None:
        self._emit("stage.started", f"{stage}: starting", stage=stage)

    def stage_skipped(self, stage: str) -> None:
        """Log a stage whose marker already exists."""
        self._emit("stage.skipped", f"{stage}: already completed, skipping", stage=stage)

    def stage_completed(self, stage: str, implied_by: Optional[str] = None) -> None:
        message = f"{stage}: completed"
        if implied_by:
            message = f"{stage}: marked completed by {implied_by}"
        self._emit("stage.completed", message, stage=stage, implied_by=implied_by)

    def hook_running(self, checkpoint: str, path: str) -> None:
        self._emit("hook.running", f"{checkpoint}: running {path}", checkpoint=checkpoint, path=path)

    def hook_sourcing(self, checkpoint: str, path: str) -> None:
        self._emit("hook.sourcing", f"{checkpoint}: sourcing {path}", checkpoint=checkpoint, path=path)

    def hook_ignored(self, checkpoint: str, path: str) -> None:
        self._emit(
            "hook.ignored",
            f"{checkpoint}: Not a script. Ignoring {path}",
            checkpoint=checkpoint,
            path=path,
        )

    def loader_invoked(self, args: Sequence[str]) -> None:
        self._emit(
            "loader.invoked",
            f"loading data: {' '.join(args) or 'default data set'}",
            loader_args=list(args),
        )

    def shutdown_requested(self, signal_name: str, command: str) -> None:
        self._emit(
            "shutdown.requested",
            f"received {signal_name}, requesting graceful stop via {command}",
            level=logging.WARNING,
            signal=signal_name,
            command=command,
        )

    def handoff(self, command: Sequence[str]) -> None:
        self._emit("handoff", f"handing off to {' '.join(command)}", command=list(command))
