"""Request authentication middleware for the portal API.

Every /api/* request (except login, refresh and logout) must carry a valid access
token, either in the access cookie or in ``Authorization: Bearer <token>``.
Decoded claims are attached to ``request.state.token_claims``.
"""

import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from portal_auth.services.claims import TokenType
from portal_auth.services.errors import TokenError

logger = logging.getLogger(__name__)

# Paths under /api that handle their own authentication
EXCLUDED_PATHS = [
    "/api/auth/login",
    "/api/auth/refresh",
    "/api/auth/logout",
]

PROTECTED_PREFIX = "/api"

REAUTHENTICATE_DETAIL = "Authentication required. Please sign in again."


def error_response(error: TokenError) -> JSONResponse:
    """Map a token error to a response without exposing which check failed."""
    if error.requires_reauthentication:
        return JSONResponse(
            status_code=error.status_code,
            content={"detail": REAUTHENTICATE_DETAIL},
            headers={"WWW-Authenticate": "Bearer"} if error.status_code == 401 else None,
        )
    return JSONResponse(status_code=error.status_code, content={"detail": error.message})


class TokenAuthMiddleware(BaseHTTPMiddleware):
    """Middleware to authenticate API requests using access tokens.

    - Token from the access cookie, falling back to the Authorization header
    - Returns 401 for expired, invalid or revoked tokens
    - Returns 500 when verification fails unexpectedly
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        # Skip auth for CORS preflight requests (OPTIONS)
        if request.method == "OPTIONS":
            return await call_next(request)

        # Skip auth for excluded paths (exact or segment-boundary match)
        for excluded in EXCLUDED_PATHS:
            if path == excluded or path.startswith(excluded + "/"):
                return await call_next(request)

        if not (path == PROTECTED_PREFIX or path.startswith(PROTECTED_PREFIX + "/")):
            return await call_next(request)

        service = request.app.state.token_service
        token = self._extract_token(request, service.transport.access_cookie_name)

        if not token:
            logger.debug(f"API request without token: {request.method} {path}")
            return JSONResponse(
                status_code=401,
                content={"detail": REAUTHENTICATE_DETAIL},
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            claims = await service.verifier.verify(token, TokenType.ACCESS)
        except TokenError as e:
            log = logger.debug if e.code == "TOKEN_EXPIRED" else logger.warning
            log(
                f"Rejected token for {request.method} {path}: {e.code}",
                extra={"event": "token_rejected", "error_code": e.code},
            )
            return error_response(e)

        request.state.token_claims = claims
        return await call_next(request)

    def _extract_token(self, request: Request, cookie_name: str) -> str | None:
        """Extract the access token from the cookie or the Authorization header."""
        token = request.cookies.get(cookie_name)
        if token:
            return token
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header[7:]  # Remove "Bearer " prefix
        return None
