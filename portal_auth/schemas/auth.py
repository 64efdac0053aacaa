"""Pydantic schemas for authentication API and token transport."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Principal(BaseModel):
    """Authenticated identity as supplied by the directory.

    The token core treats ``attributes`` as opaque and embeds them into
    the credential next to the registered claims.
    """

    model_config = ConfigDict(frozen=True)

    subject: str = Field(description="Stable subject identifier (e.g. directory uid)")
    username: str | None = None
    attributes: dict[str, str | list[str]] = Field(default_factory=dict)


class CookieOptions(BaseModel):
    """Recommended cookie attributes for carrying a credential.

    Field names match ``starlette.responses.Response.set_cookie`` so callers
    can do ``response.set_cookie(value=token, **options.as_set_cookie_kwargs())``.
    """

    key: str
    http_only: bool = True
    secure: bool = True
    same_site: Literal["strict", "lax", "none"] = "strict"
    max_age: int = Field(description="Cookie lifetime in seconds")
    path: str = "/"
    domain: str | None = None

    def as_set_cookie_kwargs(self) -> dict:
        return {
            "key": self.key,
            "httponly": self.http_only,
            "secure": self.secure,
            "samesite": self.same_site,
            "max_age": self.max_age,
            "path": self.path,
            "domain": self.domain,
        }

    def as_delete_cookie_kwargs(self) -> dict:
        return {
            "key": self.key,
            "httponly": self.http_only,
            "secure": self.secure,
            "samesite": self.same_site,
            "path": self.path,
            "domain": self.domain,
        }


class LoginRequest(BaseModel):
    """Request for login."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Request for token refresh when the refresh cookie is not available."""

    refresh_token: str | None = None


class LogoutRequest(BaseModel):
    """Request for logout with optional refresh token revocation."""

    refresh_token: str | None = Field(
        None,
        description="Refresh token to revoke. Falls back to the refresh cookie when omitted.",
    )


class RevokeRequest(BaseModel):
    """Request to revoke a single credential."""

    token: str = Field(..., min_length=1)
    token_type: Literal["access", "refresh"] | None = None


class SessionResponse(BaseModel):
    """Response after login or refresh. Credentials travel in cookies only."""

    subject: str
    username: str | None = None
    token_type: str = "cookie"
    expires_in: int = Field(description="Access token expiry in seconds")
    refresh_expires_in: int = Field(description="Refresh token expiry in seconds")


class RevokeResponse(BaseModel):
    """Response after a revocation."""

    jti: str
    token_type: str | None
    expires_at: datetime


class ClaimsResponse(BaseModel):
    """Decoded claims of the presented access token."""

    subject: str
    type: str
    jti: str
    issued_at: datetime
    expires_at: datetime
    audience: str | None = None
    issuer: str | None = None
    attributes: dict[str, str | list[str]] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
