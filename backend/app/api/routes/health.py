"""
Health check endpoints.

Provides basic health and status information about the server.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from datetime import datetime, timezone

from app.api.dependencies import get_chat_store
from app.core.chat_store import ChatStore
from app.database import get_db
from app.config import get_settings

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check(
    db: Session = Depends(get_db),
    store: ChatStore = Depends(get_chat_store),
) -> dict:
    """
    Basic health check endpoint.

    Returns:
        dict: Server status information including version and store size.

    Example response:
        {
            "status": "healthy",
            "version": "0.1.0",
            "timestamp": "2024-12-11T23:00:00+00:00",
            "database": "connected",
            "users": 2,
            "messages": 10
        }
    """
    # Test database connection
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": db_status,
        "users": len(store.get_users()),
        "messages": store.message_count(),
    }


@router.get("/health/ready")
async def readiness_check(db: Session = Depends(get_db)) -> dict:
    """
    Readiness check for the service.

    Verifies that the snapshot database is reachable.

    Returns:
        dict: Readiness status.
    """
    try:
        db.execute(text("SELECT 1"))
        return {
            "ready": True,
            "checks": {
                "database": "ok"
            }
        }
    except Exception as e:
        return {
            "ready": False,
            "checks": {
                "database": f"failed: {str(e)}"
            }
        }
