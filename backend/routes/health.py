"""
Liveness / readiness check.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db, ping_db

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(db: AsyncSession = Depends(get_db)):
    """503 when the database is unreachable; provider flags are informational."""
    if not await ping_db(db):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database_connected": False, "error": "database unavailable"},
        )
    return {
        "status": "healthy",
        "database_connected": True,
        "shiprocket_configured": settings.shiprocket_configured,
        "razorpay_configured": settings.razorpay_configured,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
