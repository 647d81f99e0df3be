"""Structured JSON logging configuration."""

import contextvars
import logging
import uuid

from pythonjsonlogger.json import JsonFormatter

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
conversation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "conversation_id", default=""
)


class ContextFilter(logging.Filter):
    """Inject request_id and conversation_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")  # type: ignore[attr-defined]
        record.conversation_id = conversation_id_var.get("")  # type: ignore[attr-defined]
        return True


def setup_logging(*, debug: bool = False) -> None:
    """Configure root logger with JSON formatter and context filter."""
    handler = logging.StreamHandler()
    formatter = JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s %(conversation_id)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    # httpx logs full URLs at INFO, which can include customer emails in query strings
    logging.getLogger("httpx").setLevel(logging.WARNING)


def generate_request_id() -> str:
    """Generate a new request ID."""
    return uuid.uuid4().hex[:16]
