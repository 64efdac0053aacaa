# Portal Auth Schemas
from portal_auth.schemas.auth import (
    ClaimsResponse,
    CookieOptions,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    Principal,
    RefreshRequest,
    RevokeRequest,
    RevokeResponse,
    SessionResponse,
)

__all__ = [
    "ClaimsResponse",
    "CookieOptions",
    "LoginRequest",
    "LogoutRequest",
    "MessageResponse",
    "Principal",
    "RefreshRequest",
    "RevokeRequest",
    "RevokeResponse",
    "SessionResponse",
]
