"""Logging setup with per-request correlation ids."""
from contextvars import ContextVar
import logging

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [correlation_id=%(correlation_id)s] %(message)s"


class CorrelationIdFilter(logging.Filter):
    """Attach the current request's correlation id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in root.handlers:
        if any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    root.addHandler(handler)
