# salon_booking/utils/my_logging.py
"""
Logging configuration.

Every record carries a ``correlation_id``: the HTTP middleware binds the
request's id, Celery binds the task id, anything else logs "-".
"""
import logging
import sys
from contextvars import ContextVar

from salon_booking.config.settings import get_settings

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

# Quiet at WARNING even in verbose mode; discovery logs request URLs with tokens
TOKEN_LEAKING_LOGGERS = ["googleapiclient.discovery", "google_auth_oauthlib"]

NOISY_LOGGERS = [
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic",
    "celery",
    "uvicorn.access",
]


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id_var.get()
        return True


def bind_correlation_id(value: str):
    """Bind an id for the current context. Returns the token for ``reset``."""
    return correlation_id_var.set(value)


def setup_logging(verbose=True):
    """Configure application logging"""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO) if verbose else logging.WARNING

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[handler], force=True)

    for name in TOKEN_LEAKING_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not verbose:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.ERROR)
