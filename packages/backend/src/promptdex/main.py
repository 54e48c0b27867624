"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, database engine).
Middleware, CORS, exception handlers and routers all registered here.

The security gate is an app-level dependency, so it runs in front of
every route, including ones mounted later by other routers. Routes opt
out of authentication only by appearing in the public route table.
"""

from contextlib import asynccontextmanager

import redis.exceptions
import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from promptdex import __version__
from promptdex.api import api_router
from promptdex.api.errors import register_exception_handlers
from promptdex.auth.dependencies import security_gate
from promptdex.cache import close_redis, init_redis
from promptdex.config import settings
from promptdex.middleware.rate_limit import RateLimitMiddleware
from promptdex.middleware.request_id import RequestIdMiddleware
from promptdex.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    logger.info(
        "promptdex.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    try:
        await init_redis()
        logger.info("promptdex.redis_connected", url=settings.redis_url)
    except (redis.exceptions.RedisError, OSError) as e:
        # Redis is optional; without it requests just aren't rate limited
        await close_redis()
        logger.warning("promptdex.redis_unavailable", error=str(e))

    yield

    logger.info("promptdex.shutdown")
    await close_redis()

    from promptdex.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="PromptDex Identity",
        description="Accounts, federated login and bearer-token access control for PromptDex",
        version=__version__,
        lifespan=lifespan,
        dependencies=[Depends(security_gate)],
    )

    register_exception_handlers(app)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app


# Default app instance (used by uvicorn: promptdex.main:app)
app = create_app()
