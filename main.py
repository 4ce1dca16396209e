"""
main.py
FastAPI application entry point.
Registers all routers, middleware, exception handlers and startup/shutdown.

- Several instances may run behind a load balancer; chat fan-out between
  them goes through Redis pub/sub
- Per-IP rate limiting backed by Redis
- Prometheus metrics at /metrics
"""

import asyncio
import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager, suppress
from logging import LogRecord

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.database import close_db, init_db
from config.redis_client import check_rate_limit, close_redis, get_redis, init_redis
from config.settings import settings
from shared.exceptions import AppError
from shared.middleware.metrics import metrics_router, prometheus_middleware

# Service routers
from services.booking.router import router as booking_router
from services.catalog.router import router as catalog_router
from services.dashboard.router import router as dashboard_router
from services.messaging.relay import chat_relay
from services.messaging.router import router as messaging_router
from services.messaging.router import ws_router as chat_ws_router
from services.profile.router import alumni_router
from services.profile.router import router as profile_router
from services.qna.router import router as qna_router


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", settings.INSTANCE_NAME),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    logger.info("Starting %s v%s (%s)", settings.APP_NAME, settings.APP_VERSION, settings.APP_ENV)

    await init_db()
    logger.info("Database connected")

    listener = None
    try:
        await init_redis()
    except (RedisError, OSError) as exc:
        # Runs degraded: no rate limiting, chat fan-out stays local
        logger.warning("Redis unavailable, continuing without it: %s", exc)
    else:
        logger.info("Redis connected")
        listener = asyncio.create_task(chat_relay.listen(get_redis()))

    yield

    if listener:
        listener.cancel()
        with suppress(asyncio.CancelledError):
            await listener
    await close_redis()
    await close_db()
    logger.info("Server shutdown complete")


# ── Error rendering ───────────────────────────────────────────

def error_response(request: Request, status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "code": code,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


def _describe_validation_errors(errors: list) -> tuple:
    missing = [str(e["loc"][-1]) for e in errors if e.get("type") == "missing" and e.get("loc")]
    if missing:
        return f"Missing fields: {', '.join(missing)}", "MissingFields"
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return (f"{field}: {message}" if field else message), "ValidationError"


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Alumni Connect API

REST API for the student and alumni mentorship platform:
- **Profiles**: upsert, search, preferences, wallet
- **Services**: alumni-authored mentorship offerings
- **Bookings**: atomic wallet debit/credit with a validity window
- **Messages**: direct messages with realtime delivery over `/ws/chat`
- **Q&A**: public question board
- **Dashboard**: alumni and student overviews

### Identity
Members are identified by the identity provider's stable user id.
Service writes require the `X-Profile-Identity` header of the owner.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (order matters: last added is outermost) ────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.middleware("http")(prometheus_middleware)

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """
        Fixed-window per-IP limiter. Fails open when Redis is missing or down.
        Health, docs and metrics are never limited.
        """
        skip_paths = {"/health", "/docs", "/redoc", "/openapi.json", "/metrics"}
        client = get_redis()
        if client is None or request.url.path in skip_paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        try:
            allowed = await check_rate_limit(
                client, f"rate:ip:{client_ip}", settings.RATE_LIMIT_UNAUTH_PER_MINUTE
            )
        except RedisError as exc:
            logger.error("Rate limit check failed: %s", exc)
            allowed = True

        if not allowed:
            logger.warning("Rate limit exceeded for IP %s", client_ip)
            response = error_response(
                request, 429, "Rate limit exceeded. Please slow down.", "RateLimited"
            )
            response.headers["Retry-After"] = "60"
            return response
        return await call_next(request)

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request for tracing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # ── Exception Handlers ─────────────────────────────────────────

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return error_response(request, exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message, code = _describe_validation_errors(exc.errors())
        return error_response(request, 400, message, code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = "NotFound" if exc.status_code == 404 else "HTTPError"
        return error_response(request, exc.status_code, str(exc.detail), code)

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        request_id = getattr(request.state, "request_id", None)
        logger.error("[%s] Storage fault: %s", request_id, type(exc).__name__, exc_info=exc)
        return error_response(request, 500, "Database error", "StorageFault")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all. Never expose exception text outside DEBUG."""
        request_id = getattr(request.state, "request_id", None)
        logger.error("[%s] Unhandled exception: %s", request_id, exc, exc_info=exc)
        detail = str(exc) if settings.DEBUG else "An internal server error occurred"
        return error_response(request, 500, detail, "InternalError")

    # ── Routes ────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check():
        from sqlalchemy import text

        from config.database import AsyncSessionLocal

        checks = {"status": "ok", "version": settings.APP_VERSION}

        try:
            async with AsyncSessionLocal() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except SQLAlchemyError:
            checks["database"] = "error"
            checks["status"] = "degraded"

        client = get_redis()
        if client is None:
            checks["redis"] = "disabled"
        else:
            try:
                await client.ping()
                checks["redis"] = "ok"
            except RedisError:
                checks["redis"] = "error"
                checks["status"] = "degraded"

        status_code = 200 if checks["status"] == "ok" else 503
        return JSONResponse(content=checks, status_code=status_code)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(profile_router)
    app.include_router(alumni_router)
    app.include_router(catalog_router)
    app.include_router(booking_router)
    app.include_router(messaging_router)
    app.include_router(chat_ws_router)
    app.include_router(qna_router)
    app.include_router(dashboard_router)

    # ── Prometheus Metrics ─────────────────────────────────────────
    app.include_router(metrics_router)

    return app


# ── Entry Point ───────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
