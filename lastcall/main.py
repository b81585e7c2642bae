from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import time
import asyncio

from .config import settings
from .core.database import create_pool, close_pool
from .core.redis import create_redis_client, close_redis_client
from .core.logger import setup_logging
from .services.telnyx_service import close_telnyx_service


class SecurityHeadersMiddleware:
    """Add security headers to all responses (pure ASGI, avoids BaseHTTPMiddleware CORS bug)"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                extra_headers = [
                    (b"x-content-type-options", b"nosniff"),
                    (b"x-frame-options", b"DENY"),
                    (b"referrer-policy", b"strict-origin-when-cross-origin"),
                ]
                if not settings.debug:
                    extra_headers.append(
                        (b"strict-transport-security", b"max-age=31536000; includeSubDomains")
                    )
                message["headers"] = list(message.get("headers", [])) + extra_headers
            await send(message)

        await self.app(scope, receive, send_wrapper)

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


def log_step(step_name: str, start_time: float) -> float:
    """Log step completion with timing"""
    elapsed = time.time() - start_time
    logger.info(f"[STARTUP] {step_name} completed in {elapsed:.2f}s")
    return time.time()


async def _safe_background_task(coro_func, *args, name="task", restart_delay=60):
    """Wrapper that restarts background tasks on crash. For long-running tasks only."""
    while True:
        try:
            await coro_func(*args)
            break  # If coroutine completes normally, exit
        except asyncio.CancelledError:
            logger.info(f"[BG] {name} cancelled")
            break
        except Exception as e:
            logger.error(f"[BG] {name} crashed: {e}, restarting in {restart_delay}s")
            await asyncio.sleep(restart_delay)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI app"""
    total_start = time.time()
    background_tasks = []

    # Startup
    logger.info(f"[STARTUP] Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"[STARTUP] Debug: {settings.debug}, scheduler timezone: {settings.scheduler_timezone}")

    try:
        step_start = time.time()

        logger.info("[STARTUP] Connecting to database...")
        pool = await create_pool()
        step_start = log_step("Database pool", step_start)

        logger.info("[STARTUP] Connecting to Redis...")
        redis_client = await create_redis_client()
        step_start = log_step("Redis client", step_start)

        if settings.scheduler_enabled:
            # Slot scheduler (auto-restart on crash)
            logger.info("[STARTUP] Starting slot scheduler in background...")
            from .core.store import PostgresStore
            from .services.scheduler_service import run_slot_scheduler
            from .services.telnyx_service import get_telnyx_service
            background_tasks.append(asyncio.create_task(_safe_background_task(
                run_slot_scheduler, PostgresStore(pool), get_telnyx_service(), redis_client,
                name="slot_scheduler", restart_delay=60,
            )))
        else:
            logger.info("[STARTUP] Slot scheduler disabled")

        total_elapsed = time.time() - total_start
        logger.info(f"[STARTUP] ✅ Application ready in {total_elapsed:.2f}s")

    except Exception as e:
        logger.error(f"[STARTUP] ❌ Failed to initialize: {e}")
        raise

    yield

    # Shutdown
    logger.info("[SHUTDOWN] Shutting down application...")
    for task in background_tasks:
        task.cancel()
    await asyncio.gather(*background_tasks, return_exceptions=True)
    await close_telnyx_service()
    await close_pool()
    await close_redis_client()
    logger.info("[SHUTDOWN] Application shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
    max_age=3600,  # Cache preflight requests for 1 hour
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint with dependency validation"""
    from .core.database import ping
    from .core.redis import get_redis

    checks = {
        "database": "unknown",
        "redis": "unknown",
    }

    try:
        checks["database"] = "healthy" if await ping() else "unhealthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)[:50]}"

    try:
        redis = await get_redis()
        await redis.ping()
        checks["redis"] = "healthy"
    except Exception as e:
        checks["redis"] = f"unhealthy: {str(e)[:50]}"

    all_healthy = all(v == "healthy" for v in checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "app": settings.app_name,
        "version": settings.app_version,
        "checks": checks,
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs" if settings.debug else "disabled",
    }


# Include all routers
from .routers import webhooks, blasts, accounts, metrics

app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(blasts.router, prefix="/accounts/{account_id}/blasts", tags=["Blasts"])
app.include_router(metrics.router, prefix="/accounts/{account_id}/metrics", tags=["Metrics"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lastcall.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
