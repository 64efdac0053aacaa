"""Token lifecycle errors.

Every failure inside the token core surfaces as one of these classes.
Raw PyJWT and SQLAlchemy exceptions are translated at the module boundary
and chained, so their text only reaches the server log, never a client.
"""


class TokenError(Exception):
    """Base token lifecycle error."""

    code = "TOKEN_ERROR"
    status_code = 401
    default_message = "Token error"

    # True when the right client reaction is "sign in again"
    requires_reauthentication = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidPrincipalError(TokenError):
    """Claims could not be built from the supplied principal."""

    code = "INVALID_PRINCIPAL"
    status_code = 500
    default_message = "Invalid principal"


class TokenGenerationError(TokenError):
    """Signing failed (configuration or crypto backend fault)."""

    code = "GENERATION_FAILED"
    status_code = 500
    default_message = "Failed to generate token"


class InvalidTokenError(TokenError):
    """Malformed credential, wrong signature or claim mismatch."""

    code = "INVALID_TOKEN"
    default_message = "Invalid token"
    requires_reauthentication = True


class TokenExpiredError(TokenError):
    """Signature valid, but the credential is past its expiry."""

    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"
    requires_reauthentication = True


class TokenRevokedError(TokenError):
    """Signature and expiry valid, but the credential has been revoked."""

    code = "TOKEN_REVOKED"
    default_message = "Token has been revoked"
    requires_reauthentication = True


class VerificationFailedError(TokenError):
    """Unexpected fault while decoding or verifying a credential."""

    code = "VERIFICATION_FAILED"
    status_code = 500
    default_message = "Token verification failed"
    requires_reauthentication = True


class InvalidTokenFormatError(TokenError):
    """Credential cannot be decoded far enough to extract its jti."""

    code = "INVALID_FORMAT"
    default_message = "Invalid token format"
    requires_reauthentication = True


class RevocationFailedError(TokenError):
    """Writing the revocation record failed (store unavailable)."""

    code = "REVOCATION_FAILED"
    status_code = 503
    default_message = "Failed to revoke token"
