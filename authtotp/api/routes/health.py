"""
Health Check Endpoints.

Provides health status for the API and its storage backend.
"""
import time
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from ..models import HealthStatus
from ..deps import get_service
from ... import __version__
from ...auth.errors import UserNotFound
from ...auth.service import TwoFactorService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

HEALTHCHECK_USER_ID = "__healthcheck__"


def _check_storage(service: TwoFactorService) -> None:
    try:
        service.repository.get_user(HEALTHCHECK_USER_ID)
    except UserNotFound:
        pass


@router.get("", response_model=HealthStatus)
async def health_check(service: TwoFactorService = Depends(get_service)):
    """
    Basic health check endpoint.

    Returns overall system status.
    """
    services = {}
    overall_healthy = True

    # Check storage with a lookup that is expected to miss
    try:
        start = time.time()
        await run_in_threadpool(_check_storage, service)
        latency = (time.time() - start) * 1000
        services["storage"] = f"healthy ({latency:.1f}ms, {type(service.repository).__name__})"
    except Exception as e:
        logger.error(f"Storage health check failed: {e}")
        services["storage"] = f"unhealthy: {str(e)}"
        overall_healthy = False

    services["rate_limiter"] = f"in-memory ({len(service.limiter)} identities tracked)"

    return HealthStatus(
        status="healthy" if overall_healthy else "unhealthy",
        version=__version__,
        services=services,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/live")
async def liveness():
    """
    Kubernetes liveness check.

    Returns 200 if the service is running.
    """
    return {"status": "alive"}
