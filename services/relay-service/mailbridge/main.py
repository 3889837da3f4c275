"""FastAPI application wiring for the relay service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import AsyncConnectionPool
from redis import asyncio as aioredis
from starlette.types import ASGIApp, Receive, Scope, Send

from .api.errors import install_error_handlers
from .api.relay import router as relay_router
from .api.routes import router as auth_router
from .config import Settings, get_settings
from .domain.relay import RelayDispatcher
from .domain.service import AccountService
from .mail import AccountMailer, SMTPTransport
from .repository import AccountRepository
from .security.passwords import PasswordHasher
from .security.rate_limiter import FixedWindowRateLimiter
from .security.redis_rate_limiter import RedisFixedWindowRateLimiter

logger = logging.getLogger(__name__)

settings = get_settings()

_DEV_ORIGINS = ["http://localhost:5173", "http://localhost:4173"]


class SplitCORSMiddleware:
    """Apply credentialed CORS to ``/auth`` and open CORS to the relay endpoints.

    The account API is only called by the dashboard frontend, while relay
    endpoints are posted to from arbitrary static sites; their per-account
    origin allow-list is enforced by the dispatcher rather than by CORS.
    """

    def __init__(self, app: ASGIApp, *, account_origins: list[str]) -> None:
        self._account = CORSMiddleware(
            app,
            allow_origins=account_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )
        self._relay = CORSMiddleware(
            app,
            allow_origins=["*"],
            allow_methods=["POST", "OPTIONS"],
            allow_headers=["*"],
            max_age=600,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        path = scope.get("path", "")
        if path == "/auth" or path.startswith("/auth/"):
            await self._account(scope, receive, send)
        else:
            await self._relay(scope, receive, send)


async def build_rate_limiter(
    config: Settings,
) -> tuple[FixedWindowRateLimiter | RedisFixedWindowRateLimiter, aioredis.Redis | None]:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if config.rate_limit_backend == "redis" and config.redis_url:
        client = aioredis.from_url(config.redis_url)
        try:
            # ensure connectivity early to fail fast and fall back
            await client.ping()
        except Exception as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
            await client.aclose()
        else:
            logger.info("rate limiter configured for redis backend at %s", config.redis_url)
            limiter = RedisFixedWindowRateLimiter(
                client,
                max_requests=config.rate_limit_requests,
                window_seconds=config.rate_limit_window_seconds,
            )
            return limiter, client

    logger.info("rate limiter using in-memory backend")
    limiter = FixedWindowRateLimiter(
        max_requests=config.rate_limit_requests,
        window_seconds=config.rate_limit_window_seconds,
    )
    return limiter, None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, SMTP, limiter, services) for the app lifecycle."""
    missing = settings.missing_required()
    if missing:
        logger.error("missing required environment variables: %s", ", ".join(missing))
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    pool = AsyncConnectionPool(settings.database_url, open=False)
    await pool.open()
    transport = SMTPTransport.from_settings(settings)
    if not await transport.verify():
        logger.warning("starting with smtp unreachable; relay and account emails will fail until it recovers")
    repository = AccountRepository(pool)

    app.state.pool = pool
    app.state.account_service = AccountService(
        repository,
        PasswordHasher(rounds=settings.password_hash_rounds, workers=settings.password_hash_workers),
        AccountMailer(transport, sender=settings.mail_from, frontend_url=settings.frontend_url),
    )
    app.state.relay_dispatcher = RelayDispatcher(repository, transport, sender_address=settings.mail_from)
    app.state.rate_limiter, redis_client = await build_rate_limiter(settings)
    try:
        yield
    finally:
        if redis_client is not None:
            await redis_client.aclose()
        await pool.close()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.add_middleware(
        SplitCORSMiddleware,
        account_origins=[*_DEV_ORIGINS, settings.frontend_url],
    )
    install_error_handlers(app)

    @app.get("/", response_class=PlainTextResponse, tags=["health"])
    async def root() -> str:
        return "Email Service is running"

    @app.get("/healthz", tags=["health"])
    async def healthz() -> dict[str, str]:
        """Return a minimal readiness indicator used by orchestration systems."""
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router)
    # Registered last: the relay routes capture every other single-segment path.
    app.include_router(relay_router)
    return app


app = create_app()
