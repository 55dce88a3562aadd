"""ASGI entry point: builds the app, wires services at startup, serves /api/v1."""

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from tybee.config import Settings, get_settings
from tybee.core.exceptions import TybeeError
from tybee.core.logging import bind_request_id, configure_logging, get_logger, unbind_request_id
from tybee.schemas.common import HealthCheckResponse

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Bring up storage, clients and the catalog service; tear down in reverse.

    The background runner starts before the catalog service so the first
    request on an empty cache can queue a build. The scheduler starts last
    because its first job needs everything above.
    """
    from tybee.core.database import close_db, create_tables, get_session_factory, init_db
    from tybee.jobs.scheduler import create_scheduler
    from tybee.services.background import BackgroundTaskRunner
    from tybee.services.bgg import BGGService
    from tybee.services.cache import get_cache_service, set_redis_client
    from tybee.services.game_data import GameDataService, set_game_data_service
    from tybee.services.sheets import SheetsCatalogSource

    settings: Settings = app.state.settings
    configure_logging(settings)

    await init_db(settings)
    if settings.database_auto_create:
        await create_tables()

    redis: Redis | None = None
    if settings.cache_enabled:
        redis = Redis.from_url(settings.redis_url, decode_responses=True)
    set_redis_client(redis)
    cache = get_cache_service()

    sheets = SheetsCatalogSource(cache, settings=settings)
    bgg = BGGService(cache, settings=settings)
    runner = BackgroundTaskRunner(maxsize=settings.background_queue_size)
    runner.start()

    catalog = GameDataService(
        cache,
        sheets,
        bgg,
        session_factory=get_session_factory(),
        runner=runner,
        settings=settings,
    )
    set_game_data_service(catalog)
    app.state.runner = runner
    app.state.catalog = catalog

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = create_scheduler(settings, catalog, get_session_factory())
        scheduler.start()

    logger.info(
        "app_started",
        version=settings.app_version,
        environment=settings.app_env.value,
        cache_enabled=settings.cache_enabled,
        scheduler_enabled=settings.scheduler_enabled,
    )
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await runner.stop()
        await bgg.close()
        await sheets.close()
        set_game_data_service(None)
        if redis is not None:
            await redis.aclose()
        set_redis_client(None)
        await close_db()
        logger.info("app_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory; tests pass their own ``Settings``."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Board game rental library: browse the catalog, take the "
            "recommendation quiz, and keep copy inventory in sync."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    _add_middleware(app, settings)
    _add_exception_handlers(app)
    _add_routes(app)
    return app


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    request_logger = get_logger("tybee.request")

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Any) -> Any:
        # Honour an upstream X-Request-ID so traces line up across proxies
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        bind_request_id(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            request_logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
                error=str(exc),
            )
            raise
        else:
            request_logger.info(
                "request_handled",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            unbind_request_id()


def _add_exception_handlers(app: FastAPI) -> None:
    error_logger = get_logger("tybee.errors")

    @app.exception_handler(TybeeError)
    async def handle_tybee_error(request: Request, exc: TybeeError) -> JSONResponse:
        log = error_logger.error if exc.status_code >= 500 else error_logger.warning
        log(
            "request_error",
            error_code=exc.code,
            status_code=exc.status_code,
            path=request.url.path,
            details=exc.details or None,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id=getattr(request.state, "request_id", None)),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        error_logger.exception("unhandled_error", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=TybeeError(code="INTERNAL_SERVER_ERROR").to_dict(
                request_id=getattr(request.state, "request_id", None)
            ),
        )


def _add_routes(app: FastAPI) -> None:
    from tybee.api.v1.router import router as v1_router

    @app.get("/health/live", tags=["Health"], summary="Process is up")
    async def liveness() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(
        "/health/ready",
        response_model=HealthCheckResponse,
        tags=["Health"],
        summary="Database and Redis reachable",
    )
    async def readiness() -> HealthCheckResponse:
        from tybee.core.database import check_db_connection
        from tybee.services.cache import get_cache_service

        checks = {
            "database": "ok" if await check_db_connection() else "error",
            "redis": "ok" if await get_cache_service().ping() else "error",
        }
        healthy = all(value == "ok" for value in checks.values())
        return HealthCheckResponse(status="ok" if healthy else "error", checks=checks)

    @app.get("/", tags=["Root"], include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        settings: Settings = request.app.state.settings
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health/live",
        }

    app.include_router(v1_router, prefix="/api/v1")


app = create_app()


def cli() -> None:
    """``tybee`` console script: run the API under uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tybee.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    cli()
