"""Revocation store interface and the in-process implementation.

The verifier and the pair service depend only on ``RevocationStore``.
``InMemoryRevocationStore`` suits a single instance; deployments with more
than one instance (or that must keep revocations across restarts) use
``portal_auth.services.revocation_db.DatabaseRevocationStore``.
"""

import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable

from portal_auth.core.logging import get_logger

logger = get_logger("revocation")


@dataclass(frozen=True)
class RevocationRecord:
    """Marker that a credential must be rejected regardless of signature/expiry."""

    jti: str
    owner_id: str
    revoked_at: datetime
    expires_at: datetime
    token_type: str | None = None

    def is_evictable(self, now: datetime, retention_margin: timedelta) -> bool:
        return self.expires_at + retention_margin < now


@runtime_checkable
class RevocationStore(Protocol):
    """Keyed set of revoked credential identifiers."""

    async def insert(
        self,
        jti: str,
        owner_id: str,
        expires_at: datetime,
        token_type: str | None = None,
    ) -> bool:
        """Record ``jti`` as revoked.

        Idempotent: inserting an existing jti refreshes ``revoked_at`` and
        keeps the stored ``expires_at``. Returns True only when the record
        did not exist before.
        """
        ...

    async def contains(self, jti: str) -> bool:
        """Return True if ``jti`` has been revoked and not yet evicted."""
        ...

    async def get(self, jti: str) -> RevocationRecord | None: ...

    async def evict_expired(self, now: datetime, retention_margin: timedelta) -> int:
        """Remove records with ``expires_at + retention_margin < now``. Returns count removed."""
        ...


class InMemoryRevocationStore:
    """Revocation store backed by a dict guarded by a lock.

    All operations are O(1) except eviction, and each one holds the lock
    for its whole duration, so reads and writes are linearizable per key
    whether called from the event loop or from worker threads.
    """

    def __init__(self, clock=None) -> None:
        self._records: dict[str, RevocationRecord] = {}
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def insert(
        self,
        jti: str,
        owner_id: str,
        expires_at: datetime,
        token_type: str | None = None,
    ) -> bool:
        now = self._clock()
        with self._lock:
            existing = self._records.get(jti)
            if existing is not None:
                self._records[jti] = replace(existing, revoked_at=now)
                return False
            self._records[jti] = RevocationRecord(
                jti=jti,
                owner_id=owner_id,
                revoked_at=now,
                expires_at=expires_at,
                token_type=token_type,
            )
            return True

    async def contains(self, jti: str) -> bool:
        with self._lock:
            return jti in self._records

    async def get(self, jti: str) -> RevocationRecord | None:
        with self._lock:
            return self._records.get(jti)

    async def evict_expired(self, now: datetime, retention_margin: timedelta) -> int:
        with self._lock:
            expired = [
                jti
                for jti, record in self._records.items()
                if record.is_evictable(now, retention_margin)
            ]
            for jti in expired:
                del self._records[jti]
        if expired:
            logger.debug(f"Evicted {len(expired)} revocation records from memory")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
