import logging

from therapy_booking.utils.my_logging import CorrelationIdFilter, MONEY_LOGGERS, setup_logging


def test_records_outside_requests_get_placeholder_correlation_id():
    record = logging.LogRecord("worker", logging.INFO, __file__, 1, "scan done", None, None)

    assert CorrelationIdFilter().filter(record) is True
    assert record.correlation_id == "-"


def test_request_correlation_id_is_kept():
    record = logging.LogRecord("api", logging.INFO, __file__, 1, "hello", None, None)
    record.correlation_id = "abc-123"

    CorrelationIdFilter().filter(record)

    assert record.correlation_id == "abc-123"


def test_quiet_mode_still_logs_payment_events():
    setup_logging(verbose=False)

    assert not logging.getLogger("sqlalchemy.engine").isEnabledFor(logging.INFO)
    for name in MONEY_LOGGERS:
        assert logging.getLogger(f"{name}.child").isEnabledFor(logging.INFO)
    assert logging.getLogger("therapy_booking.services.payment.payment_service").isEnabledFor(logging.WARNING)
