import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from typing import Any, Dict, Optional, TextIO

_trace_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("trace_id", default=None)

TEXT_FORMAT = "%(asctime)s - [%(trace_label)s] - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are chatty at INFO.
QUIET_LOGGERS = ("pymongo", "sqlalchemy.engine", "sqlalchemy.pool")

_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "trace_id", "trace_label"}


class TraceContextFilter(logging.Filter):
    """Stamps each record with the trace id of the request being processed.

    Execution runs on pool threads; the processor copies the request context
    into them, so records logged by drivers carry the same id.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        trace_id = _trace_id_ctx.get()
        record.trace_id = trace_id
        record.trace_label = trace_id or "-"
        return True


@contextmanager
def trace_context(trace_id: str):
    """Binds ``trace_id`` to the current context for the duration of the block."""
    token = _trace_id_ctx.set(trace_id)
    try:
        yield
    finally:
        _trace_id_ctx.reset(token)


def current_trace_id() -> Optional[str]:
    return _trace_id_ctx.get()


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are emitted as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        trace_id = getattr(record, "trace_id", None)
        if trace_id:
            payload["trace_id"] = trace_id

        payload.update(
            (key, value) for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", json_format: bool = False, stream: Optional[TextIO] = None):
    """Replaces the root handlers with a single stream handler.

    Args:
        level (str): Root logging level.
        json_format (bool): Emit JSON lines instead of text.
        stream: Destination stream; defaults to stderr so stdout stays free for results.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(TraceContextFilter())
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
