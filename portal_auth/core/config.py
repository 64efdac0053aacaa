"""Portal Auth Configuration - environment-driven settings.

Settings are read once at import of ``portal_auth.core`` so that a missing
or inconsistent signing configuration stops the process at startup rather
than on the first login.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Algorithms whose verification key differs from the signing key
ASYMMETRIC_ALGORITHM_PREFIXES = ("RS", "PS", "ES", "EdDSA")

SUPPORTED_ALGORITHMS = {
    "HS256",
    "HS384",
    "HS512",
    "RS256",
    "RS384",
    "RS512",
    "PS256",
    "PS384",
    "PS512",
    "ES256",
    "ES384",
    "ES512",
    "EdDSA",
}


def is_asymmetric(algorithm: str) -> bool:
    """Return True for public-key signing algorithms."""
    return algorithm.startswith(ASYMMETRIC_ALGORITHM_PREFIXES)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Portal Auth"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Signing keys - access and refresh tokens MUST use different keys.
    # For HMAC algorithms these are shared secrets, for RSA/EC/EdDSA they
    # are PEM private keys and the matching *_public_key is required.
    jwt_secret: str = Field(..., min_length=32)
    refresh_secret: str = Field(..., min_length=32)
    jwt_public_key: str | None = None
    refresh_public_key: str | None = None
    jwt_algorithm: str = "HS512"
    refresh_algorithm: str = "HS512"

    # Claim binding
    jwt_audience: str | None = None
    jwt_issuer: str | None = None

    # Lifetimes
    access_token_expire_minutes: int = Field(default=15, gt=0)
    refresh_token_expire_days: int = Field(default=7, gt=0)

    # Revocation store
    revocation_backend: Literal["memory", "database"] = "memory"
    database_url: str | None = None
    token_cleanup_interval_seconds: int = Field(default=3600, gt=0)
    revocation_retention_hours: int = Field(default=24, ge=0)

    # Cookie transport
    cookie_secure: bool = True
    cookie_samesite: Literal["strict", "lax", "none"] = "strict"
    cookie_domain: str | None = None
    access_cookie_name: str = "access_token"
    refresh_cookie_name: str = "refresh_token"
    refresh_cookie_path: str = "/api/auth/refresh"

    @model_validator(mode="after")
    def validate_token_configuration(self) -> "Settings":
        """Reject signing setups that would fail or weaken tokens at runtime."""
        for name in ("jwt_algorithm", "refresh_algorithm"):
            algorithm = getattr(self, name)
            if algorithm not in SUPPORTED_ALGORITHMS:
                raise ValueError(f"{name.upper()} '{algorithm}' is not a supported algorithm")

        if self.jwt_secret == self.refresh_secret:
            raise ValueError("JWT_SECRET and REFRESH_SECRET must be different")

        if is_asymmetric(self.jwt_algorithm) and not self.jwt_public_key:
            raise ValueError(f"JWT_PUBLIC_KEY is required for {self.jwt_algorithm}")
        if is_asymmetric(self.refresh_algorithm) and not self.refresh_public_key:
            raise ValueError(f"REFRESH_PUBLIC_KEY is required for {self.refresh_algorithm}")

        if self.revocation_backend == "database" and not self.database_url:
            raise ValueError("DATABASE_URL is required when REVOCATION_BACKEND=database")

        if self.cookie_samesite == "none" and not self.cookie_secure:
            raise ValueError("COOKIE_SAMESITE=none requires COOKIE_SECURE=true")
        return self

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.refresh_token_expire_days)

    @property
    def revocation_retention(self) -> timedelta:
        return timedelta(hours=self.revocation_retention_hours)

    def check_security_configuration(self) -> list[str]:
        """Return warnings for settings that are valid but weak."""
        warnings: list[str] = []
        if not self.cookie_secure:
            warnings.append("COOKIE_SECURE is disabled - cookies will be sent over plain HTTP")
        if not self.jwt_audience or not self.jwt_issuer:
            warnings.append("JWT_AUDIENCE/JWT_ISSUER not set - tokens are not bound to this portal")
        if self.revocation_backend == "memory":
            warnings.append(
                "In-memory revocation store: revocations are lost on restart "
                "and not shared between instances"
            )
        return warnings


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


settings = get_settings()
