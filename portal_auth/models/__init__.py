# Portal Auth Models
from portal_auth.models.revoked_token import RevokedToken

__all__ = [
    "RevokedToken",
]
