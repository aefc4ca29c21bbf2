"""
Health Check Router

Reports process liveness plus reachability of the two backing stores, so a
load balancer can drain an instance whose Redis or database is unreachable.
"""

from fastapi import APIRouter, Response, status
from sqlalchemy import text

from academy_auth.core.cache import RedisClient
from academy_auth.core.database import DbSession
from academy_auth.core.errors import StoreUnavailable, store_errors
from academy_auth.models.contracts.common import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession, redis_client: RedisClient, response: Response) -> HealthResponse:
    """
    Health check endpoint.

    Returns:
        HealthResponse; status is "degraded" (HTTP 503) when a store is down
    """
    checks: dict[str, bool] = {}

    try:
        with store_errors("database"):
            await db.execute(text("SELECT 1"))
        checks["database"] = True
    except StoreUnavailable:
        checks["database"] = False

    try:
        with store_errors("redis"):
            await redis_client.ping()
        checks["redis"] = True
    except StoreUnavailable:
        checks["redis"] = False

    if all(checks.values()):
        return HealthResponse(status="healthy", checks=checks)

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(status="degraded", checks=checks)
