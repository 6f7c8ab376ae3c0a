"""
Health check and readiness probe endpoints.
Provides liveness and readiness checks for Kubernetes and monitoring systems.
"""
import logging
from typing import Dict, Any
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.orm import Session
from huddle import __version__
from huddle.api.connection_registry import ConnectionRegistry
from huddle.api.dependencies import get_db, get_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


def check_database(db: Session) -> Dict[str, Any]:
    """
    Check database connectivity.

    Args:
        db: Database session

    Returns:
        Status dict with healthy=True/False and details
    """
    try:
        db.execute(text("SELECT 1")).fetchone()
        return {"healthy": True, "message": "Database connection OK"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"healthy": False, "message": f"Database connection failed: {str(e)}"}


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """
    Liveness probe endpoint.

    Returns basic service status without checking dependencies.

    Example Response:
        {
            "status": "healthy",
            "service": "Huddle Realtime",
            "version": "1.0.0"
        }
    """
    return {
        "status": "healthy",
        "service": "Huddle Realtime",
        "version": __version__
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
def readiness_check(
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry)
):
    """
    Readiness probe endpoint.

    Checks database connectivity and reports live WebSocket counts.
    Returns 200 OK only if the database is reachable, 503 otherwise.

    Example Response:
        {
            "status": "ready",
            "checks": {"database": {"healthy": true, "message": "Database connection OK"}},
            "realtime": {"connections": 3, "users": 2, "subscriptions": 4}
        }
    """
    checks = {
        "database": check_database(db)
    }
    realtime = {
        "connections": registry.get_connection_count(),
        "users": registry.get_user_count(),
        "subscriptions": registry.get_subscription_count()
    }

    if all(check["healthy"] for check in checks.values()):
        return {
            "status": "ready",
            "checks": checks,
            "realtime": realtime
        }

    unhealthy_services = [
        service for service, check in checks.items()
        if not check["healthy"]
    ]
    logger.warning(f"Readiness check failed for services: {', '.join(unhealthy_services)}")

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "status": "not_ready",
            "checks": checks
        }
    )
