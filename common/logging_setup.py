from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO, Any, Dict, Optional


_CONFIGURED_FLAG = "_tilerender_configured"


def _record_fields(record: logging.LogRecord) -> Optional[Dict[str, Any]]:
    fields = getattr(record, "extra", None)
    return fields if isinstance(fields, dict) else None


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:
      {"t": 169..., "ts": "2026-...Z", "lvl": "WARNING", "name": "tilesource.archive",
       "thread": "Thread-3", "msg": "...", "extra": {...}, "exc_info": "..."}

    `thread` identifies the dispatcher worker that emitted the record.
    Structured fields come from `log.x(..., extra={"extra": {...}})`.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "t": int(record.created * 1000),
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "lvl": record.levelname,
            "name": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        fields = _record_fields(record)
        if fields:
            payload["extra"] = fields
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # datetimes / paths inside extras are stringified
        return json.dumps(payload, ensure_ascii=False, default=str)


class PlainFormatter(logging.Formatter):
    """Human-readable lines for local runs; extras appended as key=value."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s [%(threadName)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        line = super().format(record)
        fields = _record_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


_FORMATTERS = {"json": JsonFormatter, "plain": PlainFormatter}


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    lvl = logging.getLevelName(name)
    return lvl if isinstance(lvl, int) else logging.INFO


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None, stream: Optional[IO[str]] = None) -> None:
    """
    Install a single stdout handler on the root logger.

    level: arg > env LOG_LEVEL > INFO
    fmt:   "json" | "plain"; arg > env LOG_FORMAT > json

    The handler is installed once; later calls only change what was passed
    explicitly (level, format), so module-level get_logger() calls made at
    import time never undo the service's configuration.
    """
    root = logging.getLogger()
    handler: Optional[logging.Handler] = getattr(root, _CONFIGURED_FLAG, None)

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stdout)
        fmt_name = (fmt or os.environ.get("LOG_FORMAT") or "json").lower()
        handler.setFormatter(_FORMATTERS.get(fmt_name, JsonFormatter)())
        root.handlers.clear()
        root.addHandler(handler)
        root.setLevel(_resolve_level(level))
        setattr(root, _CONFIGURED_FLAG, handler)
        return

    if level:
        root.setLevel(_resolve_level(level))
    if fmt:
        handler.setFormatter(_FORMATTERS.get(fmt.lower(), JsonFormatter)())
    if stream is not None and isinstance(handler, logging.StreamHandler):
        handler.setStream(stream)


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures the root handler on first use."""
    setup_logging()
    return logging.getLogger(name)
