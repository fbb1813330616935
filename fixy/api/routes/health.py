import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness probe.

    Returns 503 during graceful shutdown so the load balancer stops routing traffic.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "fixy-backend"},
        )
    return {"status": "healthy", "service": "fixy-backend"}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness probe: storage and Redis must both answer."""
    checks = {"database": False, "redis": False}
    services = getattr(request.app.state, "services", None)

    if services is not None:
        try:
            async with services.session_factory() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = True
        except Exception as exc:
            logger.error("database_health_check_failed", error=str(exc))

        try:
            await services.redis.ping()
            checks["redis"] = True
        except Exception as exc:
            logger.error("redis_health_check_failed", error=str(exc))

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
