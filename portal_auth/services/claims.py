"""Claim sets embedded in portal credentials."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from portal_auth.schemas.auth import Principal
from portal_auth.services.errors import InvalidPrincipalError

# Claim names owned by the token core; directory attributes may not use them
RESERVED_CLAIMS = frozenset({"sub", "jti", "type", "iat", "exp", "nbf", "aud", "iss"})

AttributeValue = str | list[str]


class TokenType(StrEnum):
    """Kind of credential. Each kind has its own key and lifetime."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Typed claim set of a credential.

    ``jti``, ``issued_at``, ``expires_at``, ``audience`` and ``issuer`` are
    unset on claims fresh from ``ClaimsBuilder`` and filled in by the issuer.
    Claims returned from verification always carry ``jti``, ``issued_at``
    and ``expires_at``.
    """

    subject: str
    type: TokenType
    jti: str | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    audience: str | None = None
    issuer: str | None = None
    attributes: dict[str, AttributeValue] = field(default_factory=dict)

    def stamp(self, **changes: Any) -> "TokenClaims":
        """Return a copy with the given core fields replaced."""
        return replace(self, **changes)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to a JWT payload. Core claims win over attributes."""
        payload: dict[str, Any] = dict(self.attributes)
        payload["sub"] = self.subject
        payload["type"] = self.type.value
        if self.jti is not None:
            payload["jti"] = self.jti
        if self.issued_at is not None:
            payload["iat"] = self.issued_at
        if self.expires_at is not None:
            payload["exp"] = self.expires_at
        if self.audience is not None:
            payload["aud"] = self.audience
        if self.issuer is not None:
            payload["iss"] = self.issuer
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TokenClaims":
        """Build claims from a decoded JWT payload.

        Raises ValueError/KeyError on a payload missing core claims; the
        verifier turns those into InvalidTokenError.
        """
        audience = payload.get("aud")
        if isinstance(audience, list):
            audience = audience[0] if len(audience) == 1 else ",".join(audience)
        return cls(
            subject=str(payload["sub"]),
            type=TokenType(payload["type"]),
            jti=str(payload["jti"]),
            issued_at=_from_timestamp(payload["iat"]),
            expires_at=_from_timestamp(payload["exp"]),
            audience=audience,
            issuer=payload.get("iss"),
            attributes={k: v for k, v in payload.items() if k not in RESERVED_CLAIMS},
        )

    def to_principal(self) -> Principal:
        """Reconstruct the principal a credential was issued for."""
        attributes = dict(self.attributes)
        username = attributes.pop("username", None)
        return Principal(
            subject=self.subject,
            username=username if isinstance(username, str) else None,
            attributes=attributes,
        )


def _from_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime.fromtimestamp(int(value), tz=UTC)


def _coerce_principal(principal: Principal | Mapping[str, Any]) -> Principal:
    if isinstance(principal, Principal):
        return principal
    if not isinstance(principal, Mapping):
        raise InvalidPrincipalError("Principal must be a mapping or Principal instance")
    subject = principal.get("subject", principal.get("sub"))
    if not isinstance(subject, str):
        raise InvalidPrincipalError("Principal is missing a subject identifier")
    try:
        return Principal(
            subject=subject,
            username=principal.get("username"),
            attributes=principal.get("attributes") or {},
        )
    except ValueError as e:
        raise InvalidPrincipalError("Principal attributes are not valid claim values") from e


class ClaimsBuilder:
    """Turns a directory principal into the claim set of a credential."""

    def build(
        self,
        principal: Principal | Mapping[str, Any],
        token_type: TokenType | str,
    ) -> TokenClaims:
        """Build unsigned claims for ``principal``.

        Raises:
            InvalidPrincipalError: subject missing or blank, unknown token
                type, or an attribute named like a reserved claim.
        """
        record = _coerce_principal(principal)

        if not record.subject or not record.subject.strip():
            raise InvalidPrincipalError("Principal subject must not be empty")

        try:
            kind = TokenType(token_type)
        except ValueError as e:
            raise InvalidPrincipalError(f"Unknown token type: {token_type!r}") from e

        clashing = RESERVED_CLAIMS.intersection(record.attributes)
        if clashing:
            raise InvalidPrincipalError(
                f"Principal attributes use reserved claim names: {', '.join(sorted(clashing))}"
            )

        attributes: dict[str, AttributeValue] = {
            key: list(value) if isinstance(value, list) else value
            for key, value in record.attributes.items()
        }
        if record.username:
            attributes["username"] = record.username

        return TokenClaims(subject=record.subject, type=kind, attributes=attributes)
