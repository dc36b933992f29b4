"""Health check endpoints for monitoring."""

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from trademart.api.deps import DB, Capabilities
from trademart.core.config import settings
from trademart.utils.envelopes import api_success

router = APIRouter(tags=["health"])


@router.get("/health", response_model=dict)
async def health_check(db: DB, capabilities: Capabilities):
    """Health check endpoint for load balancers and monitoring."""
    try:
        await db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {e.__class__.__name__}"

    health_data = {
        "status": "ok" if db_status == "healthy" else "degraded",
        "service": settings.APP_NAME,
        "database": db_status,
        "features": {
            "lead_status_history": capabilities.lead_status_history,
            "vendor_preferences": capabilities.vendor_preferences,
            "notifications": capabilities.notifications,
        },
    }

    return api_success(health_data)


@router.get("/health/ready", response_model=dict)
async def readiness_check(db: DB):
    """Kubernetes readiness probe."""
    try:
        await db.execute(text("SELECT 1"))
        return api_success({"ready": True})
    except SQLAlchemyError:
        return api_success({"ready": False})


@router.get("/health/live", response_model=dict)
async def liveness_check():
    """Kubernetes liveness probe."""
    return api_success({"alive": True})
