"""Authentication API endpoints.

Credentials travel as HttpOnly cookies; the response bodies only describe
the session. The access cookie is sent with every request, the refresh
cookie only to ``/api/auth/refresh``.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from portal_auth.middleware.token_auth import error_response
from portal_auth.schemas.auth import (
    ClaimsResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RevokeRequest,
    RevokeResponse,
    SessionResponse,
)
from portal_auth.services.claims import TokenClaims, TokenType
from portal_auth.services.directory import DirectoryAuthError, DirectoryUnavailableError
from portal_auth.services.errors import InvalidTokenFormatError, TokenError
from portal_auth.services.token_pair import TokenPair, TokenPairService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def get_token_service(request: Request) -> TokenPairService:
    """Dependency to get the token pair service."""
    return request.app.state.token_service


def get_token_claims(request: Request) -> TokenClaims:
    """Dependency to get the claims verified by TokenAuthMiddleware."""
    claims = getattr(request.state, "token_claims", None)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims


def _set_pair_cookies(response: Response, pair: TokenPair) -> None:
    response.set_cookie(
        value=pair.access.credential,
        **pair.cookies[TokenType.ACCESS].as_set_cookie_kwargs(),
    )
    response.set_cookie(
        value=pair.refresh.credential,
        **pair.cookies[TokenType.REFRESH].as_set_cookie_kwargs(),
    )


def _clear_cookies(response: Response, service: TokenPairService, *token_types: TokenType) -> None:
    for token_type in token_types:
        options = service.transport.cookie_for(token_type, max_age=0)
        response.delete_cookie(**options.as_delete_cookie_kwargs())


def _session_response(pair: TokenPair) -> SessionResponse:
    username = pair.access.claims.attributes.get("username")
    return SessionResponse(
        subject=pair.subject,
        username=username if isinstance(username, str) else None,
        expires_in=pair.access.expires_in,
        refresh_expires_in=pair.refresh.expires_in,
    )


def _access_token_from(request: Request, service: TokenPairService) -> str | None:
    token = request.cookies.get(service.transport.access_cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    service: TokenPairService = Depends(get_token_service),
) -> SessionResponse:
    """Authenticate against the directory and issue a token pair."""
    directory = getattr(request.app.state, "directory", None)
    if directory is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Directory service is not configured",
        )

    try:
        principal = await directory.authenticate(body.username, body.password)
    except DirectoryAuthError as e:
        logger.info(f"Failed login for {body.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        ) from e
    except DirectoryUnavailableError as e:
        logger.error(f"Directory unavailable during login: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Directory service unavailable",
        ) from e

    try:
        pair = service.issue_pair(principal)
    except TokenError as e:
        logger.error(f"Could not issue tokens for {body.username}: {e.code}")
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    _set_pair_cookies(response, pair)
    logger.info(f"User logged in: {body.username}")
    return _session_response(pair)


@router.post("/refresh", response_model=SessionResponse)
async def refresh_tokens(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    service: TokenPairService = Depends(get_token_service),
) -> Response | SessionResponse:
    """Rotate the refresh token and issue a new pair.

    The old refresh token is revoked before the new pair is issued.
    """
    token = request.cookies.get(service.transport.refresh_cookie_name)
    if not token and body is not None:
        token = body.refresh_token

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No refresh token provided",
        )

    try:
        pair = await service.rotate(token)
    except TokenError as e:
        logger.warning(
            f"Token refresh rejected: {e.code}",
            extra={"event": "refresh_rejected", "error_code": e.code},
        )
        failure = error_response(e)
        _clear_cookies(failure, service, TokenType.REFRESH)
        return failure

    _set_pair_cookies(response, pair)
    return _session_response(pair)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    body: LogoutRequest | None = None,
    service: TokenPairService = Depends(get_token_service),
) -> JSONResponse:
    """Log out: revoke the presented access token and, if given, the refresh token.

    Not guarded by ``TokenAuthMiddleware``: an access token that has
    already expired or been revoked still ends the session, as long as its
    signature is valid.
    """
    access_token = _access_token_from(request, service)
    if not access_token:
        return error_response(InvalidTokenFormatError("No access token provided"))

    refresh_token = body.refresh_token if body is not None else None
    refresh_token = refresh_token or request.cookies.get(service.transport.refresh_cookie_name)

    try:
        claims = service.verifier.decode_for_revocation(access_token, TokenType.ACCESS)
        if refresh_token:
            await service.revoke_pair(access_token, refresh_token, owner_id=claims.subject)
        else:
            await service.revoke(access_token, owner_id=claims.subject, token_type=TokenType.ACCESS)
    except TokenError as e:
        logger.warning(f"Logout revocation failed: {e.code}")
        return error_response(e)

    result = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    _clear_cookies(result, service, TokenType.ACCESS, TokenType.REFRESH)
    logger.info(f"User logged out: {claims.subject}")
    return result


@router.post("/revoke", response_model=RevokeResponse)
async def revoke_token(
    body: RevokeRequest,
    claims: TokenClaims = Depends(get_token_claims),
    service: TokenPairService = Depends(get_token_service),
) -> Response | RevokeResponse:
    """Revoke one of the caller's own credentials."""
    try:
        target = service.verifier.decode_for_revocation(body.token, body.token_type)
        if target.subject != claims.subject:
            logger.warning(
                f"User {claims.subject} tried to revoke a token of {target.subject}",
                extra={"event": "revoke_denied", "owner_id": claims.subject},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Cannot revoke a token issued to another user",
            )
        record = await service.revoke(body.token, owner_id=claims.subject, token_type=target.type)
    except TokenError as e:
        logger.warning(f"Revocation by {claims.subject} failed: {e.code}")
        return error_response(e)
    return RevokeResponse(
        jti=record.jti,
        token_type=record.token_type,
        expires_at=record.expires_at,
    )


@router.get("/me", response_model=ClaimsResponse)
async def get_current_claims(
    claims: TokenClaims = Depends(get_token_claims),
) -> ClaimsResponse:
    """Return the claims of the presented access token."""
    return ClaimsResponse(
        subject=claims.subject,
        type=claims.type.value,
        jti=claims.jti or "",
        issued_at=claims.issued_at,
        expires_at=claims.expires_at,
        audience=claims.audience,
        issuer=claims.issuer,
        attributes=claims.attributes,
    )
