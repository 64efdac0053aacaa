"""Directory collaborator interface.

The portal authenticates users against LDAP; that client lives outside
this package and is handed to ``create_app``. The token core only needs
"given credentials, return the principal to embed".
"""

from typing import Protocol, runtime_checkable

from portal_auth.schemas.auth import Principal


class DirectoryAuthError(Exception):
    """Invalid username or password, or account not allowed to sign in."""

    pass


class DirectoryUnavailableError(Exception):
    """The directory could not be reached."""

    pass


@runtime_checkable
class DirectoryClient(Protocol):
    async def authenticate(self, username: str, password: str) -> Principal:
        """Return the principal for valid credentials.

        Raises:
            DirectoryAuthError: credentials rejected.
            DirectoryUnavailableError: directory unreachable.
        """
        ...
