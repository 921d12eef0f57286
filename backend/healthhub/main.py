from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from healthhub.config import get_settings
from healthhub.database import close_db, init_db, ping_db
from healthhub.exceptions import DomainException
from healthhub.rate_limit import limiter
from healthhub.routers import chat as chat_router
from healthhub.routers import notifications as notifications_router
from healthhub.routers import realtime as realtime_router
from healthhub.services.realtime import RealtimeHub, build_hub
from healthhub.services.socket_service import create_socket_server, get_socket_app, register_handlers
from healthhub.utils.logger import get_logger

logger = get_logger("main")
settings = get_settings()


def create_app(hub: RealtimeHub | None = None, mount_socket: bool = True) -> FastAPI:
    """Build the API. Tests pass their own hub and skip the Socket.IO mount."""
    if hub is None:
        hub = build_hub(create_socket_server(settings), settings)
        register_handlers(hub)

    app = FastAPI(
        title="HealthHub Realtime API",
        debug=settings.APP_DEBUG,
    )
    app.state.hub = hub
    app.state.scheduler = None

    if mount_socket:
        app.mount("/socket.io", get_socket_app(hub.sio))

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router.router)
    app.include_router(notifications_router.router)
    app.include_router(realtime_router.router)

    # Error handlers
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException):
        logger.warning(f"{exc.code}: {exc.message} - Path: {request.url.path}")
        http_exc = exc.to_http_exception()
        return JSONResponse(
            status_code=http_exc.status_code,
            content={"detail": http_exc.detail, "status_code": http_exc.status_code},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP {exc.status_code}: {exc.detail} - Path: {request.url.path}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "status_code": exc.status_code}
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error: {exc.errors()} - Path: {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors(), "status_code": 422}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error", "status_code": 500}
        )

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz():
        if not await ping_db():
            raise HTTPException(status_code=503, detail="Database not ready")
        return {
            "status": "ok",
            "database": "up",
            "live_push": hub.change_feed.live_push_available,
        }

    @app.on_event("startup")
    async def on_startup():
        from apscheduler.schedulers.asyncio import AsyncIOScheduler

        logger.info("🚀 Starting application...")
        await init_db()
        logger.info("Database initialized")

        if not settings.CHANGE_FEED_ENABLED:
            logger.info("Change streams disabled by configuration; clients poll the REST API")
            return

        # Change streams start after a short delay so the Mongo connection can settle.
        try:
            scheduler = AsyncIOScheduler()
            scheduler.add_job(
                hub.change_feed.start,
                trigger="date",
                run_date=datetime.now(timezone.utc) + timedelta(seconds=settings.CHANGE_FEED_SETTLE_SECONDS),
                id="change_feed_setup",
                replace_existing=True,
            )
            scheduler.start()
            app.state.scheduler = scheduler
            logger.info(f"Change stream setup scheduled in {settings.CHANGE_FEED_SETTLE_SECONDS}s")
        except Exception as e:
            logger.error(f"Failed to schedule change stream setup: {e}")

    @app.on_event("shutdown")
    async def on_shutdown():
        scheduler = app.state.scheduler
        if scheduler:
            try:
                scheduler.shutdown(wait=False)
            except Exception as e:
                logger.error(f"Error stopping scheduler: {e}")
        await hub.change_feed.stop()
        await hub.chat.flush_notifications()
        close_db()
        logger.info("Shutting down application...")

    return app


app = create_app()
