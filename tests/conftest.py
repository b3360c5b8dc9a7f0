import os

# Settings are read once at import time; pin the test configuration first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

import json
import uuid
from datetime import date, datetime, time, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from therapy_booking.api.dependencies import get_gateway
from therapy_booking.config.database import get_db
from therapy_booking.core.identity import Identity, Role
from therapy_booking.models import Base, Booking, BookingStatus, Coupon, Payment, PaymentStatus
from therapy_booking.services.payment.payment_service import PaymentService
from therapy_booking.services.payment.razorpay_gateway import RazorpayGateway
from therapy_booking.utils.time_utils import practice_tz

KEY_ID = "rzp_test_key"
KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"
JWT_SECRET = "test-jwt-secret"


class FakeRazorpay:
    """In-process stand-in for the Razorpay REST API, wired in via httpx.MockTransport"""

    def __init__(self):
        self.requests = []
        self.fail_refunds = False
        self.timeout_refunds = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.requests.append((request.method, request.url.path, body))

        if request.url.path.endswith("/orders"):
            return httpx.Response(200, json={
                "id": f"order_{uuid.uuid4().hex[:14]}",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            })

        if request.url.path.endswith("/refund"):
            if self.timeout_refunds:
                raise httpx.ReadTimeout("timed out", request=request)
            if self.fail_refunds:
                return httpx.Response(400, json={"error": {"description": "The payment has been fully refunded"}})
            return httpx.Response(200, json={
                "id": f"rfnd_{uuid.uuid4().hex[:14]}",
                "amount": body.get("amount"),
                "status": "processed",
            })

        return httpx.Response(404, json={"error": {"description": "not found"}})

    def calls_to(self, suffix):
        return [r for r in self.requests if r[1].endswith(suffix)]


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


# ============================================================================
# Gateway
# ============================================================================

@pytest.fixture
def fake_razorpay():
    return FakeRazorpay()


@pytest.fixture
def gateway(fake_razorpay):
    return RazorpayGateway(
        key_id=KEY_ID,
        key_secret=KEY_SECRET,
        webhook_secret=WEBHOOK_SECRET,
        base_url="https://api.razorpay.test/v1",
        timeout=2.0,
        transport=httpx.MockTransport(fake_razorpay.handler),
    )


@pytest.fixture
def payment_service(db, gateway):
    return PaymentService(db, gateway)


def sign(order_id, payment_id, secret=KEY_SECRET):
    return RazorpayGateway.sign(f"{order_id}|{payment_id}", secret)


# ============================================================================
# Identities and tokens
# ============================================================================

USER = Identity(user_id="user-1", email="asha@example.com", role=Role.USER)
OTHER_USER = Identity(user_id="user-2", email="ravi@example.com", role=Role.USER)
ADMIN = Identity(user_id="admin-1", email="admin@practice.example", role=Role.ADMIN)
THERAPIST = Identity(user_id="therapist-1", email="dr@practice.example", role=Role.THERAPIST)


def make_token(identity: Identity, expires_in=timedelta(hours=1)):
    claims = {
        "sub": identity.user_id,
        "email": identity.email,
        "aud": "authenticated",
        "role": "authenticated",
        "app_metadata": {"role": identity.role.value},
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


def auth_header(identity: Identity):
    return {"Authorization": f"Bearer {make_token(identity)}"}


# ============================================================================
# Data helpers
# ============================================================================

def next_open_weekday(days_ahead=14):
    """A Monday at least ``days_ahead`` days out, so catalog slots are bookable."""
    day = date.today() + timedelta(days=days_ahead)
    return day + timedelta(days=(7 - day.weekday()) % 7)


def session_start(day, hhmm):
    local = datetime.combine(day, time.fromisoformat(hhmm), tzinfo=practice_tz())
    return local.astimezone(timezone.utc)


def make_booking(db, day=None, hhmm="17:00", status=BookingStatus.CONFIRMED, **overrides):
    values = dict(
        customer_name="Asha Rao",
        customer_email=USER.email,
        user_id=USER.user_id,
        session_type="individual",
        session_format="video",
        duration_minutes=60,
        scheduled_date=day or next_open_weekday(),
        scheduled_time=hhmm,
        timezone="Asia/Kolkata",
        status=status.value,
    )
    values.update(overrides)
    booking = Booking(**values)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def make_paid_payment(db, booking=None, amount=150000, payment_id=None, **overrides):
    values = dict(
        booking_id=booking.id if booking else None,
        gateway_order_id=f"order_{uuid.uuid4().hex[:14]}",
        gateway_payment_id=payment_id or f"pay_{uuid.uuid4().hex[:14]}",
        amount_minor=amount,
        currency="INR",
        status=PaymentStatus.PAID.value,
        paid_at=datetime.now(timezone.utc),
        metadata_={},
    )
    values.update(overrides)
    payment = Payment(**values)
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def make_coupon(db, code="WELCOME10", discount_type="percent", discount_value=10, **overrides):
    values = dict(
        code=code,
        discount_type=discount_type,
        discount_value=discount_value,
        min_amount_minor=0,
        is_active=True,
        used_count=0,
    )
    values.update(overrides)
    coupon = Coupon(**values)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


# ============================================================================
# API client
# ============================================================================

@pytest.fixture
def client(engine, gateway):
    from therapy_booking.main import app

    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
