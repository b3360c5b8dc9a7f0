# therapy_booking/webhooks/razorpay_handler.py
"""
Razorpay webhook handler.

Backs up the browser-driven verify call: if the client never comes back from
checkout, ``payment.captured`` still marks the order paid. Captures are
idempotent, so receiving both is harmless.
"""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from therapy_booking.api.dependencies import get_gateway
from therapy_booking.config.database import get_db
from therapy_booking.core.exceptions import BookingDomainError
from therapy_booking.services.payment.payment_service import PaymentService
from therapy_booking.services.payment.razorpay_gateway import RazorpayGateway

router = APIRouter()
logger = logging.getLogger(__name__)

HANDLED_EVENTS = ("payment.captured", "payment.failed")


@router.post("")
async def handle_razorpay_event(
        request: Request,
        db: Session = Depends(get_db),
        gateway: RazorpayGateway = Depends(get_gateway)
):
    raw_body = await request.body()
    signature = request.headers.get("X-Razorpay-Signature", "")

    if not gateway.verify_webhook_signature(raw_body, signature):
        logger.warning("Rejected Razorpay webhook with invalid signature")
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed webhook body")

    event_type = event.get("event")
    if event_type not in HANDLED_EVENTS:
        logger.info(f"Ignoring Razorpay event {event_type}")
        return {"status": "ignored", "event": event_type}

    entity = (((event.get("payload") or {}).get("payment") or {}).get("entity")) or {}
    order_id = entity.get("order_id")
    payment_id = entity.get("id")
    if not order_id or not payment_id:
        raise HTTPException(status_code=400, detail="Event is missing order or payment id")

    service = PaymentService(db, gateway)
    try:
        if event_type == "payment.captured":
            payment = service.capture_from_webhook(order_id, payment_id)
        else:
            reason = entity.get("error_description") or entity.get("error_code")
            payment = service.mark_failed(order_id, reason)
    except BookingDomainError as e:
        # Acknowledge so the gateway stops retrying; the state is already final or unknown to us
        logger.warning(f"Razorpay {event_type} for order {order_id} not applied: {e.message}")
        return {"status": "not_applied", "event": event_type, "reason": e.code}

    logger.info(f"Razorpay {event_type} applied to order {order_id}")
    return {"status": "processed", "event": event_type, "payment_status": payment.status}
