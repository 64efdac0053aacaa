"""Credential issuing - signs claim sets into JWTs."""

import logging
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from portal_auth.services.claims import TokenClaims, TokenType
from portal_auth.services.errors import TokenGenerationError

logger = logging.getLogger(__name__)

# 32 random bytes -> 64 hex chars (fits the token_blacklist.jti column)
JTI_BYTES = 32

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def generate_jti() -> str:
    """Return a fresh credential identifier with 256 bits of entropy."""
    return secrets.token_hex(JTI_BYTES)


@dataclass(frozen=True)
class TokenKeyConfig:
    """Signing configuration for one token type."""

    signing_key: str
    algorithm: str
    ttl: timedelta
    # Public key for asymmetric algorithms; HMAC verifies with signing_key
    verification_key: str | None = None

    @property
    def verifying_key(self) -> str:
        return self.verification_key or self.signing_key

    def __repr__(self) -> str:
        # Never render key material
        return f"TokenKeyConfig(algorithm={self.algorithm!r}, ttl={self.ttl!r})"


def validate_key_configs(keys: Mapping[TokenType, TokenKeyConfig]) -> None:
    """Check that every token type has its own key and a positive lifetime."""
    missing = [t.value for t in TokenType if t not in keys]
    if missing:
        raise ValueError(f"No signing key configured for: {', '.join(missing)}")
    if keys[TokenType.ACCESS].signing_key == keys[TokenType.REFRESH].signing_key:
        raise ValueError("Access and refresh tokens must not share a signing key")
    for token_type, config in keys.items():
        if config.ttl <= timedelta(0):
            raise ValueError(f"{token_type.value} token lifetime must be positive")


@dataclass(frozen=True)
class IssuedToken:
    """A signed credential together with the claims it carries."""

    credential: str
    jti: str
    claims: TokenClaims

    @property
    def expires_in(self) -> int:
        """Lifetime in whole seconds at the moment of issuing."""
        if self.claims.expires_at is None or self.claims.issued_at is None:
            return 0
        return int((self.claims.expires_at - self.claims.issued_at).total_seconds())


class TokenIssuer:
    """Signs claim sets with the key configured for their token type."""

    def __init__(
        self,
        keys: Mapping[TokenType, TokenKeyConfig],
        audience: str | None = None,
        issuer: str | None = None,
        clock: Clock = utcnow,
    ):
        validate_key_configs(keys)
        self._keys = dict(keys)
        self.audience = audience
        self.issuer = issuer
        self._clock = clock

    def ttl_for(self, token_type: TokenType) -> timedelta:
        return self._keys[token_type].ttl

    def issue(self, claims: TokenClaims) -> IssuedToken:
        """Stamp ``claims`` with jti/iat/exp/aud/iss and sign them.

        Raises:
            TokenGenerationError: on any signing or serialization fault.
        """
        try:
            config = self._keys[claims.type]
            # JWT NumericDate has whole-second precision
            issued_at = self._clock().replace(microsecond=0)
            jti = generate_jti()
            stamped = claims.stamp(
                jti=jti,
                issued_at=issued_at,
                expires_at=issued_at + config.ttl,
                audience=self.audience,
                issuer=self.issuer,
            )
            token = jwt.encode(
                stamped.to_payload(),
                config.signing_key,
                algorithm=config.algorithm,
            )
        except Exception as e:
            logger.error(f"Token generation failed for {claims.type} token: {type(e).__name__}")
            raise TokenGenerationError() from e

        # PyJWT 2.x returns str; older type stubs may declare bytes
        return IssuedToken(credential=str(token), jti=jti, claims=stamped)
