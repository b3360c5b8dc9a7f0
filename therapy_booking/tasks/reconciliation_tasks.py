# ===== therapy_booking/tasks/reconciliation_tasks.py =====
import logging

from therapy_booking.config.celery_config import celery_app
from therapy_booking.config.database import get_db
from therapy_booking.services.payment.payment_service import PaymentService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def scan_unrefunded_cancellations(self):
    """
    Report cancelled bookings whose payment is still paid.

    Read-only: refunds move money and are never issued from a background job.
    """
    db = next(get_db())
    try:
        items = PaymentService.unrefunded_cancellations(db)
    except Exception as exc:
        logger.error(f"Reconciliation scan failed: {exc}")
        raise self.retry(exc=exc, countdown=60)
    finally:
        db.close()

    if items:
        logger.warning(
            f"{len(items)} cancelled booking(s) still hold a paid payment: "
            f"{', '.join(item['booking_id'] for item in items)}"
        )
    else:
        logger.info("Reconciliation scan clean: no unrefunded cancellations")

    return {"status": "success", "count": len(items), "items": items}
