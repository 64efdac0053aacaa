# Portal Auth Services
from portal_auth.services.claims import ClaimsBuilder, TokenClaims, TokenType
from portal_auth.services.errors import (
    InvalidPrincipalError,
    InvalidTokenError,
    InvalidTokenFormatError,
    RevocationFailedError,
    TokenError,
    TokenExpiredError,
    TokenGenerationError,
    TokenRevokedError,
    VerificationFailedError,
)
from portal_auth.services.issuer import IssuedToken, TokenIssuer, TokenKeyConfig, generate_jti
from portal_auth.services.revocation import (
    InMemoryRevocationStore,
    RevocationRecord,
    RevocationStore,
)
from portal_auth.services.token_cleanup import TokenCleanupService
from portal_auth.services.token_pair import (
    TokenPair,
    TokenPairService,
    TransportPolicy,
    build_token_pair_service,
)
from portal_auth.services.verifier import TokenVerifier

__all__ = [
    "ClaimsBuilder",
    "InMemoryRevocationStore",
    "InvalidPrincipalError",
    "InvalidTokenError",
    "InvalidTokenFormatError",
    "IssuedToken",
    "RevocationFailedError",
    "RevocationRecord",
    "RevocationStore",
    "TokenClaims",
    "TokenCleanupService",
    "TokenError",
    "TokenExpiredError",
    "TokenGenerationError",
    "TokenIssuer",
    "TokenKeyConfig",
    "TokenPair",
    "TokenPairService",
    "TokenRevokedError",
    "TokenType",
    "TokenVerifier",
    "TransportPolicy",
    "VerificationFailedError",
    "build_token_pair_service",
    "generate_jti",
]
