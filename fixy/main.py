"""Fixy backend: FastAPI application entry point."""

import asyncio
import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog MUST run before the other fixy imports: structlog
# caches the processor chain on first use.
from fixy.core.logging import configure_structlog
from fixy.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fixy.api.routes import api_router
from fixy.core.config import get_settings
from fixy.core.exceptions import EntitlementDenied, FixyError
from fixy.db import close_db, close_redis, get_redis, get_session_factory, init_db, init_redis
from fixy.middleware.correlation import get_correlation_id, setup_correlation_middleware
from fixy.services.container import build_services

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the component graph on startup; drain replies on shutdown."""
    # SIGTERM flips this so /api/health returns 503 while connections drain
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    await init_db()
    logger.info("db_initialized")

    await init_redis()
    logger.info("redis_initialized")

    services = build_services(settings, get_session_factory(), get_redis())
    app.state.services = services
    reset_task = asyncio.create_task(services.reset_runner.run_forever(), name="credit-reset-runner")
    logger.info("services_ready", providers=[p.value for p in services.gateway.clients])

    yield

    logger.info("shutdown_begin", in_flight_replies=services.dispatcher.active_count)
    app.state.shutting_down = True
    await services.dispatcher.shutdown(grace_seconds=settings.provider_timeout_seconds)
    reset_task.cancel()
    await asyncio.gather(reset_task, return_exceptions=True)
    await services.ledger.drain_alerts()
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


async def fixy_exception_handler(request: Request, exc: FixyError) -> JSONResponse:
    """Map domain errors to their status code.

    Entitlement denials are expected outcomes: logged at info, and the body
    carries the reason plus upgrade/BYOK hints for the client.
    """
    user_id = getattr(request.state, "user_id", None)

    if isinstance(exc, EntitlementDenied):
        logger.info(
            "entitlement_denied",
            reason=exc.reason,
            path=request.url.path,
            user_id=user_id,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": str(exc),
                "reason": exc.reason,
                "upgrade_required": exc.upgrade_required,
                "byok_required": exc.byok_required,
            },
        )

    debug_id = str(uuid.uuid4())
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "domain_error",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=user_id,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    detail = str(exc) if exc.status_code < 500 else "Internal server error"
    return JSONResponse(status_code=exc.status_code, content={"detail": detail, "debug_id": debug_id})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTPException handler with debug_id tracking.

    Logs server-side with full context, returns a sanitized body.
    """
    debug_id = str(uuid.uuid4())
    corr_id = get_correlation_id()
    user_id = getattr(request.state, "user_id", None)

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=corr_id,
        path=request.url.path,
        method=request.method,
        user_id=user_id,
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors: log with traceback, return a generic 500."""
    debug_id = str(uuid.uuid4())
    corr_id = get_correlation_id()
    user_id = getattr(request.state, "user_id", None)

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=corr_id,
        path=request.url.path,
        method=request.method,
        user_id=user_id,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.exception_handler(FixyError)(fixy_exception_handler)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Credit-metered AI replies in shared chatrooms",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(dict.fromkeys([settings.frontend_url, *settings.allowed_origins])),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    install_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fixy.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
