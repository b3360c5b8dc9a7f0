# therapy_booking/webhooks/router.py
from fastapi import APIRouter

webhook_router = APIRouter()

# Import handlers inside a function to avoid circular imports
def register_handlers():
    from therapy_booking.webhooks import razorpay_handler
    webhook_router.include_router(razorpay_handler.router, prefix="/razorpay")

register_handlers()

@webhook_router.get("/")
async def webhook_info():
    return {
        "endpoints": {
            "razorpay": "/webhooks/razorpay",
        },
        "note": "Events must carry a valid X-Razorpay-Signature header"
    }
