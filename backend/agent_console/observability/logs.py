"""In-memory log sink that keeps the most recent records for the console."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from agent_console.models.base import CamelModel

MAX_LOGS = 200

_LEVELS: dict[int, str] = {
    logging.DEBUG: "info",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


class LogLine(CamelModel):
    ts: datetime
    level: Literal["info", "warn", "error"]
    msg: str
    logger: str
    meta: Optional[dict[str, Any]] = None


class RecentLogHandler(logging.Handler):
    """Keep the last ``MAX_LOGS`` records as ``LogLine`` entries.

    Structured context can be attached with ``extra={"meta": {...}}``.
    Emitting never blocks on I/O, so the handler is safe to call from the
    streaming path.
    """

    def __init__(self, capacity: int = MAX_LOGS, level: int = logging.INFO) -> None:
        super().__init__(level=level)
        self._lines: deque[LogLine] = deque(maxlen=capacity)
        self._guard = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            meta = getattr(record, "meta", None)
            line = LogLine(
                ts=datetime.fromtimestamp(record.created, tz=timezone.utc),
                level=_LEVELS.get(record.levelno, "info"),
                msg=record.getMessage(),
                logger=record.name,
                meta=meta if isinstance(meta, dict) else None,
            )
        except Exception:
            self.handleError(record)
            return
        with self._guard:
            self._lines.append(line)

    def recent(self, limit: int = 20) -> list[LogLine]:
        """Newest first."""
        with self._guard:
            lines = list(self._lines)
        return list(reversed(lines[-limit:])) if limit > 0 else []

    def clear(self) -> None:
        with self._guard:
            self._lines.clear()


recent_logs = RecentLogHandler()


def install_log_sink(logger_name: str = "agent_console") -> RecentLogHandler:
    """Attach the shared sink to the package logger once."""
    target = logging.getLogger(logger_name)
    if recent_logs not in target.handlers:
        target.addHandler(recent_logs)
    return recent_logs
