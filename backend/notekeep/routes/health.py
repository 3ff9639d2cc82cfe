"""
NoteKeep Backend — Health & Instance Routes
===========================================

What:  Liveness/readiness probe and a description of this deployment's plan.
Who:   Docker health checks, load balancers, and clients that want to show
       plan limits before hitting them.

Health Check:
    The service is "healthy" only if the database answers `SELECT 1`.
    - healthy:   HTTP 200
    - unhealthy: HTTP 503, stop routing traffic
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text

from notekeep import __version__
from notekeep.database import engine
from notekeep.deps import get_quota_gate
from notekeep.schemas.common import HealthResponse, InstanceResponse
from notekeep.services.quota_service import QuotaGate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Module-level: set once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
    description="Returns 200 when the database is reachable, 503 otherwise.",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        response.status_code = 503
        logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )


@router.get(
    "/instance",
    response_model=InstanceResponse,
    summary="Instance plan, limits and features",
)
async def instance_info(gate: QuotaGate = Depends(get_quota_gate)) -> InstanceResponse:
    config = gate.config
    return InstanceResponse(
        instance_id=config.instance_id,
        instance_name=config.instance_name,
        plan=config.plan,
        limits=config.limits.model_dump(),
        features=config.features.model_dump(),
    )
