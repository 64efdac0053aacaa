"""Portal Auth - FastAPI Application Factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from portal_auth.api import auth_router, health_router
from portal_auth.core import Settings, create_session_maker, get_settings, setup_logging
from portal_auth.core.logging import get_logger
from portal_auth.middleware import TokenAuthMiddleware
from portal_auth.services.directory import DirectoryClient
from portal_auth.services.revocation import InMemoryRevocationStore, RevocationStore
from portal_auth.services.revocation_db import DatabaseRevocationStore
from portal_auth.services.token_cleanup import TokenCleanupService
from portal_auth.services.token_pair import build_token_pair_service

logger = get_logger("main")


def build_revocation_store(settings: Settings) -> RevocationStore:
    """Select the revocation store for the configured backend."""
    if settings.revocation_backend == "database":
        if not settings.database_url:
            raise ValueError("DATABASE_URL is required when REVOCATION_BACKEND=database")
        session_maker = create_session_maker(
            settings.database_url,
            echo=settings.debug and settings.log_level == "DEBUG",
        )
        return DatabaseRevocationStore(session_maker)
    return InMemoryRevocationStore()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings: Settings = app.state.settings
    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "dev",
    )
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    store = app.state.token_service.store
    if isinstance(store, DatabaseRevocationStore):
        await store.create_tables()

    cleanup: TokenCleanupService = app.state.token_cleanup
    await cleanup.start()

    yield

    logger.info("Shutting down...")
    await cleanup.stop()


def create_app(
    settings: Settings | None = None,
    directory: DirectoryClient | None = None,
    revocation_store: RevocationStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Token keys are validated here, so a broken signing configuration stops
    the process before it serves a single request.
    """
    settings = settings or get_settings()
    store = revocation_store if revocation_store is not None else build_revocation_store(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Token lifecycle service for the IT-service portal",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.state.settings = settings
    app.state.directory = directory
    app.state.token_service = build_token_pair_service(settings, store)
    app.state.token_cleanup = TokenCleanupService(
        store,
        interval_seconds=settings.token_cleanup_interval_seconds,
        retention=settings.revocation_retention,
    )

    app.add_middleware(TokenAuthMiddleware)

    app.include_router(health_router)
    app.include_router(auth_router)

    return app
