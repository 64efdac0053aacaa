# Portal Auth API
from portal_auth.api.auth import router as auth_router
from portal_auth.api.health import router as health_router

__all__ = [
    "auth_router",
    "health_router",
]
