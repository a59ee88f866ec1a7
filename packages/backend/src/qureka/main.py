"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, maintenance worker,
database engine). Middleware, CORS, exception handlers and routers are
all registered here.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from qureka import __version__
from qureka.api import api_router
from qureka.api.error_handling import register_exception_handlers
from qureka.config import settings
from qureka.logging import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    logger.info(
        "qureka.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from qureka.cache import close_redis, init_redis
    try:
        await init_redis()
        logger.info("qureka.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("qureka.redis_unavailable", error=str(e))
        # Redis is optional — only rate limiting depends on it

    from qureka.auth.locks import registration_lock
    from qureka.services.maintenance import MaintenanceWorker
    worker = MaintenanceWorker(
        registration_lock,
        lock_sweep_interval=settings.lock_sweep_interval,
        token_purge_interval=settings.token_purge_interval,
    )
    worker_task = asyncio.create_task(worker.run_loop())

    yield

    logger.info("qureka.shutdown")

    worker.stop()
    worker_task.cancel()
    try:
        await worker_task
    except asyncio.CancelledError:
        pass

    await close_redis()

    from qureka.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging(settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title="Qureka API",
        description="Accounts and session tokens for the Qureka study app",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → RateLimit → CORS → handler

    from qureka.middleware.rate_limit import RateLimitMiddleware
    from qureka.middleware.request_id import RequestIdMiddleware
    from qureka.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
        register_limit=settings.rate_limit_register_per_window,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: qureka.main:app)
app = create_app()
