"""Access/refresh pair orchestration: login, logout and refresh rotation."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from portal_auth.core.config import Settings
from portal_auth.core.logging import get_logger
from portal_auth.schemas.auth import CookieOptions, Principal
from portal_auth.services.claims import ClaimsBuilder, TokenClaims, TokenType
from portal_auth.services.errors import (
    InvalidTokenFormatError,
    RevocationFailedError,
    TokenError,
    TokenRevokedError,
)
from portal_auth.services.issuer import Clock, IssuedToken, TokenIssuer, TokenKeyConfig, utcnow
from portal_auth.services.revocation import RevocationRecord, RevocationStore
from portal_auth.services.verifier import TokenVerifier

logger = get_logger("token_pair")


@dataclass(frozen=True)
class TransportPolicy:
    """Cookie attributes recommended for each token type.

    The refresh cookie is scoped to the refresh endpoint only, so browsers
    do not send the long-lived credential with every request.
    """

    access_cookie_name: str = "access_token"
    refresh_cookie_name: str = "refresh_token"
    refresh_path: str = "/api/auth/refresh"
    secure: bool = True
    same_site: str = "strict"
    domain: str | None = None

    def cookie_for(self, token_type: TokenType, max_age: int) -> CookieOptions:
        if token_type == TokenType.REFRESH:
            key, path = self.refresh_cookie_name, self.refresh_path
        else:
            key, path = self.access_cookie_name, "/"
        return CookieOptions(
            key=key,
            http_only=True,
            secure=self.secure,
            same_site=self.same_site,  # type: ignore[arg-type]
            max_age=max_age,
            path=path,
            domain=self.domain,
        )


@dataclass(frozen=True)
class TokenPair:
    """Access and refresh credentials issued together for one subject."""

    access: IssuedToken
    refresh: IssuedToken
    cookies: Mapping[TokenType, CookieOptions]

    @property
    def subject(self) -> str:
        return self.access.claims.subject


class TokenPairService:
    """Issues, revokes and rotates access/refresh credential pairs."""

    def __init__(
        self,
        issuer: TokenIssuer,
        verifier: TokenVerifier,
        store: RevocationStore,
        transport: TransportPolicy | None = None,
        claims_builder: ClaimsBuilder | None = None,
        clock: Clock = utcnow,
    ):
        self.issuer = issuer
        self.verifier = verifier
        self.store = store
        self.transport = transport or TransportPolicy()
        self.claims_builder = claims_builder or ClaimsBuilder()
        self._clock = clock

    def _issue(self, principal: Principal | Mapping[str, Any], token_type: TokenType) -> IssuedToken:
        claims = self.claims_builder.build(principal, token_type)
        return self.issuer.issue(claims)

    def issue_pair(self, principal: Principal | Mapping[str, Any]) -> TokenPair:
        """Issue a fresh access/refresh pair with their cookie options.

        Raises:
            InvalidPrincipalError, TokenGenerationError
        """
        access = self._issue(principal, TokenType.ACCESS)
        refresh = self._issue(principal, TokenType.REFRESH)
        cookies = {
            TokenType.ACCESS: self.transport.cookie_for(TokenType.ACCESS, access.expires_in),
            TokenType.REFRESH: self.transport.cookie_for(TokenType.REFRESH, refresh.expires_in),
        }
        logger.debug(f"Issued token pair for subject {access.claims.subject}")
        return TokenPair(access=access, refresh=refresh, cookies=cookies)

    def _record_expiry(self, claims: TokenClaims) -> datetime:
        # A record never has to outlive the longest possible credential of its type
        if claims.expires_at is None:
            raise InvalidTokenFormatError()
        ceiling = self._clock() + self.issuer.ttl_for(claims.type)
        return min(claims.expires_at, ceiling)

    async def _revoke_claims(self, claims: TokenClaims, owner_id: str) -> tuple[RevocationRecord, bool]:
        if claims.jti is None:
            raise InvalidTokenFormatError()
        expires_at = self._record_expiry(claims)
        try:
            created = await self.store.insert(
                claims.jti, owner_id, expires_at, token_type=claims.type.value
            )
        except TokenError:
            raise
        except Exception as e:
            logger.error(f"Revocation store write failed: {type(e).__name__}: {e}")
            raise RevocationFailedError() from e

        logger.info(
            f"Revoked {claims.type.value} token for {claims.subject}",
            extra={
                "event": "token_revoked",
                "jti": claims.jti,
                "owner_id": owner_id,
                "token_type": claims.type.value,
            },
        )
        record = RevocationRecord(
            jti=claims.jti,
            owner_id=owner_id,
            revoked_at=self._clock(),
            expires_at=expires_at,
            token_type=claims.type.value,
        )
        return record, created

    async def revoke(
        self,
        credential: str,
        owner_id: str,
        token_type: TokenType | str | None = None,
    ) -> RevocationRecord:
        """Revoke a single credential, even one that has already expired.

        Raises:
            InvalidTokenFormatError: no jti can be extracted; store untouched.
            RevocationFailedError: the store write failed.
        """
        claims = self.verifier.decode_for_revocation(credential, token_type)
        record, _ = await self._revoke_claims(claims, owner_id)
        return record

    async def revoke_pair(
        self,
        access_credential: str,
        refresh_credential: str,
        owner_id: str,
    ) -> list[RevocationRecord]:
        """Revoke both halves of a pair (logout).

        Both credentials are decoded before anything is written, so a
        corrupt credential leaves the store unchanged.
        """
        access_claims = self.verifier.decode_for_revocation(access_credential, TokenType.ACCESS)
        refresh_claims = self.verifier.decode_for_revocation(refresh_credential, TokenType.REFRESH)
        if access_claims.subject != refresh_claims.subject:
            raise InvalidTokenFormatError("Access and refresh tokens belong to different subjects")
        records = []
        for claims in (access_claims, refresh_claims):
            record, _ = await self._revoke_claims(claims, owner_id)
            records.append(record)
        return records

    async def rotate(self, old_refresh_credential: str) -> TokenPair:
        """Exchange a refresh credential for a new pair.

        The old refresh credential is verified and revoked before anything
        new is issued. If the revocation shows another request consumed it
        first, no pair is issued.

        Raises:
            InvalidTokenError, TokenExpiredError, TokenRevokedError,
            VerificationFailedError, RevocationFailedError,
            InvalidPrincipalError, TokenGenerationError
        """
        claims = await self.verifier.verify(old_refresh_credential, TokenType.REFRESH)
        _, created = await self._revoke_claims(claims, owner_id=claims.subject)
        if not created:
            logger.warning(
                f"Refresh token for {claims.subject} was already rotated",
                extra={"event": "refresh_reuse", "jti": claims.jti, "owner_id": claims.subject},
            )
            raise TokenRevokedError()
        return self.issue_pair(claims.to_principal())


def build_token_keys(settings: Settings) -> dict[TokenType, TokenKeyConfig]:
    """Per-type signing configuration from settings."""
    return {
        TokenType.ACCESS: TokenKeyConfig(
            signing_key=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            ttl=settings.access_token_ttl,
            verification_key=settings.jwt_public_key,
        ),
        TokenType.REFRESH: TokenKeyConfig(
            signing_key=settings.refresh_secret,
            algorithm=settings.refresh_algorithm,
            ttl=settings.refresh_token_ttl,
            verification_key=settings.refresh_public_key,
        ),
    }


def build_token_pair_service(
    settings: Settings,
    store: RevocationStore,
    clock: Clock = utcnow,
) -> TokenPairService:
    """Wire issuer, verifier and transport policy from settings."""
    keys = build_token_keys(settings)
    issuer = TokenIssuer(keys, audience=settings.jwt_audience, issuer=settings.jwt_issuer, clock=clock)
    verifier = TokenVerifier(
        keys, store, audience=settings.jwt_audience, issuer=settings.jwt_issuer, clock=clock
    )
    transport = TransportPolicy(
        access_cookie_name=settings.access_cookie_name,
        refresh_cookie_name=settings.refresh_cookie_name,
        refresh_path=settings.refresh_cookie_path,
        secure=settings.cookie_secure,
        same_site=settings.cookie_samesite,
        domain=settings.cookie_domain,
    )
    return TokenPairService(issuer, verifier, store, transport=transport, clock=clock)
