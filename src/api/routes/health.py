"""Health check endpoint."""

import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from api.dependencies import get_session_store
from adapter.mongodb.connection import get_mongodb_client
from port.session_store import SessionStorePort

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


def _service_status(healthy: bool, message: str) -> dict:
    return {"status": "healthy" if healthy else "unhealthy", "message": message}


@router.get("")
async def health(
    sessions: SessionStorePort = Depends(get_session_store),
):
    """Health check endpoint with dependency status."""
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        "services": {}
    }

    # Redis backs OAuth sessions and rate limiting
    redis_ok = sessions.ping()
    health_status["services"]["redis"] = _service_status(
        redis_ok, "Connection successful" if redis_ok else "Connection failed or not configured",
    )

    # get_mongodb_client() pings before returning a client
    mongo_ok = get_mongodb_client() is not None
    health_status["services"]["mongodb"] = _service_status(
        mongo_ok, "Connection successful" if mongo_ok else "Connection failed or not configured",
    )

    overall_healthy = redis_ok and mongo_ok
    if not overall_healthy:
        health_status["status"] = "degraded"
        logger.warning("Health check degraded", extra={"redis": redis_ok, "mongodb": mongo_ok})

    return JSONResponse(
        content=health_status,
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
