# therapy_booking/utils/my_logging.py
"""Logging configuration"""
import logging
import sys

from therapy_booking.config.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

# Captures, signature failures and refunds feed fraud review and reconciliation,
# so these keep INFO even when the rest of the app is quiet.
MONEY_LOGGERS = (
    "therapy_booking.services.payment",
    "therapy_booking.services.booking.cancellation_service",
    "therapy_booking.webhooks",
    "therapy_booking.tasks",
)

NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic",
    "httpx",
    "httpcore",
    "celery",
    "uvicorn.access",
)


class CorrelationIdFilter(logging.Filter):
    """Default ``correlation_id`` for records logged outside a request (worker, startup)"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


def setup_logging(verbose: bool = True):
    """Send logs to stdout; ``verbose=False`` keeps only warnings plus money events"""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO) if verbose else logging.WARNING

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler])

    if not verbose:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
        for name in MONEY_LOGGERS:
            logging.getLogger(name).setLevel(logging.INFO)
