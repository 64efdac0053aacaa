"""Credential verification.

Checks run in a fixed order and stop at the first failure:

1. structure and signature (key of the expected token type)
2. expiry / not-before, audience / issuer, required claims, token type
3. revocation lookup by ``jti``

The store is only consulted for credentials that passed 1 and 2, so
malformed or forged input never learns anything about revocation state.
"""

import logging
from collections.abc import Mapping
from typing import Any

import jwt

from portal_auth.services.claims import TokenClaims, TokenType
from portal_auth.services.errors import (
    InvalidTokenError,
    InvalidTokenFormatError,
    TokenExpiredError,
    TokenRevokedError,
    VerificationFailedError,
)
from portal_auth.services.issuer import Clock, TokenKeyConfig, utcnow, validate_key_configs
from portal_auth.services.revocation import RevocationStore

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["sub", "jti", "type", "iat", "exp"]


class TokenVerifier:
    """Validates presented credentials against keys and the revocation store."""

    def __init__(
        self,
        keys: Mapping[TokenType, TokenKeyConfig],
        store: RevocationStore,
        audience: str | None = None,
        issuer: str | None = None,
        leeway: int = 0,
        clock: Clock = utcnow,
    ):
        validate_key_configs(keys)
        self._keys = dict(keys)
        self._store = store
        self.audience = audience
        self.issuer = issuer
        self.leeway = leeway
        self._clock = clock

    def _decode(self, credential: str, token_type: TokenType, check_times: bool) -> dict[str, Any]:
        config = self._keys[token_type]
        required = REQUIRED_CLAIMS + (["aud"] if self.audience else []) + (
            ["iss"] if self.issuer else []
        )
        # Time claims are checked against the injected clock, not wall time
        payload = jwt.decode(
            credential,
            config.verifying_key,
            algorithms=[config.algorithm],
            audience=self.audience,
            issuer=self.issuer,
            options={
                "require": required,
                "verify_exp": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )
        if check_times:
            self._check_times(payload)
        return payload

    def _check_times(self, payload: dict[str, Any]) -> None:
        """Apply PyJWT's exp/nbf/iat rules using ``clock()`` and ``leeway``."""
        now = self._clock().timestamp()
        if payload["exp"] <= now - self.leeway:
            raise jwt.ExpiredSignatureError("Signature has expired")
        if "nbf" in payload and payload["nbf"] > now + self.leeway:
            raise jwt.ImmatureSignatureError("The token is not yet valid (nbf)")
        if payload["iat"] > now + self.leeway:
            raise jwt.ImmatureSignatureError("The token is not yet valid (iat)")

    def decode(self, credential: str, expected_type: TokenType | str) -> TokenClaims:
        """Run the signature and claim checks without touching the store.

        Raises:
            InvalidTokenError: malformed, bad signature, claim mismatch or wrong type.
            TokenExpiredError: valid signature but past expiry.
            VerificationFailedError: anything unexpected.
        """
        if not credential or not isinstance(credential, str):
            raise InvalidTokenError("Invalid token provided")

        try:
            token_type = TokenType(expected_type)
            payload = self._decode(credential, token_type, check_times=True)
            claims = TokenClaims.from_payload(payload)
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError() from e
        except (KeyError, ValueError, TypeError) as e:
            # Payload decoded but core claims are unusable, or unknown expected_type
            raise InvalidTokenError() from e
        except Exception as e:
            logger.error(f"Unexpected error decoding token: {type(e).__name__}")
            raise VerificationFailedError() from e

        if claims.type != token_type:
            raise InvalidTokenError(f"Expected a {token_type.value} token")
        return claims

    async def verify(self, credential: str, expected_type: TokenType | str) -> TokenClaims:
        """Fully verify a credential, including revocation.

        Raises:
            InvalidTokenError, TokenExpiredError, TokenRevokedError,
            VerificationFailedError
        """
        claims = self.decode(credential, expected_type)
        if claims.jti is None:
            raise InvalidTokenError()

        try:
            revoked = await self._store.contains(claims.jti)
        except Exception as e:
            logger.error(f"Revocation lookup failed: {type(e).__name__}: {e}")
            raise VerificationFailedError() from e

        if revoked:
            raise TokenRevokedError()
        return claims

    def decode_for_revocation(
        self, credential: str, token_type: TokenType | str | None = None
    ) -> TokenClaims:
        """Decode a credential so it can be revoked, ignoring expiry.

        The signature is still checked, so only credentials this service
        issued can create revocation records. When ``token_type`` is not
        given the unverified ``type`` claim selects the key.

        Raises:
            InvalidTokenFormatError: no jti/exp can be extracted, or the
                credential was not signed by this service.
        """
        if not credential or not isinstance(credential, str):
            raise InvalidTokenFormatError()

        try:
            if token_type is None:
                unverified = jwt.decode(credential, options={"verify_signature": False})
                token_type = unverified.get("type")
            kind = TokenType(token_type)  # type: ignore[arg-type]
            payload = self._decode(credential, kind, check_times=False)
            claims = TokenClaims.from_payload(payload)
        except Exception as e:
            raise InvalidTokenFormatError() from e

        if claims.type != kind:
            raise InvalidTokenFormatError(f"Expected a {kind.value} token")
        return claims
