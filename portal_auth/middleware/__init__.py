"""Middleware module for Portal Auth."""

from portal_auth.middleware.token_auth import TokenAuthMiddleware

__all__ = [
    "TokenAuthMiddleware",
]
