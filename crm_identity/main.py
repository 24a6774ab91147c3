"""FastAPI application wiring for the identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as auth_router
from .background import BackgroundDispatcher
from .config import Settings, get_settings
from .domain.confirmation import EmailConfirmationFlow
from .domain.service import AuthOrchestrator
from .notifications.email import EmailSender, SmtpEmailSender
from .repository import AccountRepository
from .security.confirmation_tokens import JwtConfirmationTokenProvider
from .security.redis_refresh_store import RedisRefreshTokenStore
from .security.refresh_store import InMemoryRefreshTokenStore, RefreshTokenStore
from .security.tokens import TokenIssuer

logger = logging.getLogger(__name__)


def build_refresh_store(settings: Settings) -> RefreshTokenStore:
    """Instantiate the configured refresh token backend."""
    if settings.refresh_store_backend == "redis":
        if not settings.redis_url:
            raise RuntimeError("REFRESH_STORE_BACKEND=redis requires REDIS_URL")
        import redis

        client = redis.from_url(settings.redis_url)
        client.ping()
        logger.info("refresh tokens stored in redis at %s", settings.redis_url)
        return RedisRefreshTokenStore(client)

    logger.info("refresh tokens stored in process memory")
    return InMemoryRefreshTokenStore()


def build_auth_service(
    settings: Settings,
    repository: AccountRepository,
    store: RefreshTokenStore,
    email_sender: EmailSender,
    dispatcher: BackgroundDispatcher,
) -> AuthOrchestrator:
    """Assemble the auth component graph; raises ``SigningKeyMisconfigured`` on a bad secret."""
    issuer = TokenIssuer(settings, store)
    confirmation = EmailConfirmationFlow(
        repository,
        JwtConfirmationTokenProvider(settings),
        email_sender,
        dispatcher,
        settings.public_base_url,
        settings.confirmation_token_ttl_hours,
    )
    return AuthOrchestrator(repository, issuer, confirmation)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, token store, services) for the app lifecycle."""
    settings = get_settings()
    dispatcher = BackgroundDispatcher()
    pool = ConnectionPool(settings.database_url, open=False)
    try:
        app.state.auth_service = build_auth_service(
            settings,
            AccountRepository(pool),
            build_refresh_store(settings),
            SmtpEmailSender.from_settings(settings),
            dispatcher,
        )
        pool.open()
        app.state.pool = pool
        yield
    finally:
        dispatcher.shutdown(wait=True)
        pool.close()


def create_app(
    settings: Settings | None = None, *, service: AuthOrchestrator | None = None
) -> FastAPI:
    """Build the application; a prebuilt ``service`` skips the Postgres lifespan."""
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=None if service is not None else lifespan,
    )
    if service is not None:
        app.state.auth_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "InternalServerError", "message": "An unexpected error occurred"},
        )

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        """Return a minimal readiness indicator used by orchestration systems."""
        return {"status": "ok"}

    @app.get("/metrics", tags=["health"])
    def metrics() -> Response:
        """Expose Prometheus metrics in the text exposition format."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router)
    return app


app = create_app()


def serve() -> None:
    """Console entry point running the app under uvicorn."""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run("crm_identity.main:app", host=settings.http_host, port=settings.http_port)
