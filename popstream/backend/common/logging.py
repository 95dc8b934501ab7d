from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any, MutableMapping, Optional, TextIO, Tuple


_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_RECORD_ATTRS = frozenset(
    (
        "args", "asctime", "created", "exc_info", "exc_text",
        "filename", "funcName", "levelname", "levelno",
        "lineno", "module", "msecs", "message", "msg",
        "name", "pathname", "process", "processName",
        "relativeCreated", "stack_info", "taskName", "thread", "threadName",
    )
)

_PASSTHROUGH_KWARGS = ("exc_info", "stack_info", "stacklevel")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: MutableMapping[str, Any] = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for k, v in record.__dict__.items():
            if k not in _RECORD_ATTRS:
                payload[k] = v

        return json.dumps(payload, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """Logger accepting ``log.info("event", key=value)`` structured fields."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        passthrough = {k: kwargs.pop(k) for k in _PASSTHROUGH_KWARGS if k in kwargs}
        extra: dict[str, Any] = {**(self.extra or {}), **(kwargs.pop("extra", None) or {})}
        for key, value in kwargs.items():
            # LogRecord refuses to overwrite its own attributes
            extra[f"field_{key}" if key in _RECORD_ATTRS else key] = value
        passthrough["extra"] = extra
        return msg, passthrough


def init_logging(level: str = "INFO", *, stream: Optional[TextIO] = None) -> None:
    root = logging.getLogger()

    # Idempotent: clear existing handlers to avoid duplication
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(_LEVELS.get(level.upper(), logging.INFO))
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


def get_logger(name: Optional[str] = None, **context: Any) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name if name else __name__), context)