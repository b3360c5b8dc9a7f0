"""Health checks and monitoring endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from therapy_booking.config.database import get_db
from therapy_booking.config.redis import get_redis
from therapy_booking.config.settings import get_settings

health_router = APIRouter()


@health_router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": get_settings().APP_NAME}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Detailed health check with dependencies"""
    settings = get_settings()
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "payment_gateway": "configured" if settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET
        else "not_configured",
        "overall": "unknown"
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    # Check Redis
    try:
        redis_client = await get_redis()
        await redis_client.ping()
        checks["redis"] = "healthy"
        await redis_client.aclose()
    except Exception as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    # Overall status
    infra = (checks["api"], checks["database"], checks["redis"])
    checks["overall"] = "healthy" if all(s == "healthy" for s in infra) else "degraded"

    return checks
