"""Tests for claim building and claim serialization."""

from datetime import UTC, datetime

import pytest

from portal_auth.schemas.auth import Principal
from portal_auth.services.claims import RESERVED_CLAIMS, ClaimsBuilder, TokenClaims, TokenType
from portal_auth.services.errors import InvalidPrincipalError


class TestClaimsBuilder:
    """Tests for ClaimsBuilder.build."""

    def test_build_copies_subject_type_and_attributes(self, claims_builder, principal):
        claims = claims_builder.build(principal, TokenType.ACCESS)

        assert claims.subject == "alice"
        assert claims.type == TokenType.ACCESS
        assert claims.attributes["groups"] == ["studierende", "vpn-users"]
        assert claims.attributes["mail"] == "alice@example.edu"
        assert claims.attributes["username"] == "alice"

    def test_build_leaves_issuer_fields_unset(self, claims_builder, principal):
        """jti and timestamps are the issuer's job."""
        claims = claims_builder.build(principal, TokenType.REFRESH)

        assert claims.jti is None
        assert claims.issued_at is None
        assert claims.expires_at is None
        assert claims.audience is None
        assert claims.issuer is None

    def test_build_is_deterministic(self, claims_builder, principal):
        assert claims_builder.build(principal, "access") == claims_builder.build(
            principal, "access"
        )

    def test_build_accepts_plain_mapping(self, claims_builder):
        claims = claims_builder.build(
            {"subject": "bob", "attributes": {"groups": ["mitarbeiter"]}}, "refresh"
        )
        assert claims.subject == "bob"
        assert claims.type == TokenType.REFRESH
        assert claims.attributes == {"groups": ["mitarbeiter"]}

    def test_build_accepts_sub_key_in_mapping(self, claims_builder):
        claims = claims_builder.build({"sub": "carol"}, TokenType.ACCESS)
        assert claims.subject == "carol"

    def test_build_does_not_share_attribute_lists(self, claims_builder, principal):
        claims = claims_builder.build(principal, TokenType.ACCESS)
        claims.attributes["groups"].append("itszadmins")
        assert principal.attributes["groups"] == ["studierende", "vpn-users"]

    @pytest.mark.parametrize("subject", ["", "   "])
    def test_blank_subject_rejected(self, claims_builder, subject):
        with pytest.raises(InvalidPrincipalError):
            claims_builder.build(Principal(subject=subject), TokenType.ACCESS)

    def test_missing_subject_rejected(self, claims_builder):
        with pytest.raises(InvalidPrincipalError):
            claims_builder.build({"username": "nobody"}, TokenType.ACCESS)

    def test_non_mapping_principal_rejected(self, claims_builder):
        with pytest.raises(InvalidPrincipalError):
            claims_builder.build("alice", TokenType.ACCESS)  # type: ignore[arg-type]

    def test_invalid_attribute_values_rejected(self, claims_builder):
        with pytest.raises(InvalidPrincipalError):
            claims_builder.build({"subject": "alice", "attributes": {"quota": {"gb": 5}}}, "access")

    def test_unknown_token_type_rejected(self, claims_builder, principal):
        with pytest.raises(InvalidPrincipalError) as exc_info:
            claims_builder.build(principal, "session")
        assert "session" in str(exc_info.value)

    @pytest.mark.parametrize("reserved", sorted(RESERVED_CLAIMS))
    def test_reserved_attribute_names_rejected(self, claims_builder, reserved):
        principal = Principal(subject="alice", attributes={reserved: "x"})
        with pytest.raises(InvalidPrincipalError) as exc_info:
            claims_builder.build(principal, TokenType.ACCESS)
        assert reserved in str(exc_info.value)


class TestTokenClaimsPayload:
    """Tests for TokenClaims payload conversion."""

    def test_payload_round_trip(self):
        issued = datetime(2026, 10, 19, 8, 0, tzinfo=UTC)
        claims = TokenClaims(
            subject="alice",
            type=TokenType.ACCESS,
            jti="ab" * 32,
            issued_at=issued,
            expires_at=datetime(2026, 10, 19, 8, 15, tzinfo=UTC),
            audience="portal",
            issuer="portal-auth",
            attributes={"groups": ["studierende"]},
        )
        payload = claims.to_payload()
        payload["iat"] = int(payload["iat"].timestamp())
        payload["exp"] = int(payload["exp"].timestamp())

        assert TokenClaims.from_payload(payload) == claims

    def test_core_claims_win_over_attributes(self):
        claims = TokenClaims(subject="alice", type=TokenType.ACCESS, attributes={"sub": "mallory"})
        assert claims.to_payload()["sub"] == "alice"

    def test_from_payload_requires_core_claims(self):
        with pytest.raises(KeyError):
            TokenClaims.from_payload({"sub": "alice", "type": "access"})

    def test_to_principal_restores_username(self, claims_builder, principal):
        claims = claims_builder.build(principal, TokenType.REFRESH)
        restored = claims.to_principal()
        assert restored.subject == principal.subject
        assert restored.username == principal.username
        assert restored.attributes == principal.attributes
