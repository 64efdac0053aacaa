"""Health check endpoint with revocation store status."""

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

from portal_auth.core import check_db_connection
from portal_auth.services.revocation import InMemoryRevocationStore
from portal_auth.services.revocation_db import DatabaseRevocationStore

router = APIRouter(tags=["health"])


def _backend_name(store: object) -> str:
    """Name of the revocation store actually in use."""
    if isinstance(store, DatabaseRevocationStore):
        return "database"
    if isinstance(store, InMemoryRevocationStore):
        return "memory"
    return type(store).__name__


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    revocation_backend: str
    database: str = "not_configured"
    cleanup_running: bool = False


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        status.HTTP_200_OK: {"description": "Service is healthy"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Revocation store is unreachable"},
    },
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    """Report whether tokens can be verified and revoked."""
    settings = request.app.state.settings
    store = request.app.state.token_service.store
    cleanup = getattr(request.app.state, "token_cleanup", None)

    result = HealthResponse(
        status="healthy",
        version=settings.app_version,
        revocation_backend=_backend_name(store),
        cleanup_running=bool(cleanup and cleanup.running),
    )

    if isinstance(store, DatabaseRevocationStore):
        if await check_db_connection(store.session_maker):
            result.database = "connected"
        else:
            result.database = "disconnected"
            result.status = "unhealthy"
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return result
