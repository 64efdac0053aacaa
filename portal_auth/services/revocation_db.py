"""Database-backed revocation store (SQLAlchemy async).

Shared by every instance pointing at the same database and survives
process restarts. Each operation runs in its own committed transaction,
so a revocation is visible to all instances as soon as ``insert`` returns.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portal_auth.core.database import Base
from portal_auth.core.logging import get_logger
from portal_auth.models.revoked_token import RevokedToken
from portal_auth.services.errors import RevocationFailedError
from portal_auth.services.revocation import RevocationRecord

logger = get_logger("revocation_db")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class DatabaseRevocationStore:
    """Revocation store persisted in the ``token_blacklist`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], clock=None):
        self._session_maker = session_maker
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        return self._session_maker

    async def create_tables(self) -> None:
        """Create the revocation table if it does not exist."""
        engine = self._session_maker.kw["bind"]
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, tables=[RevokedToken.__table__])

    async def insert(
        self,
        jti: str,
        owner_id: str,
        expires_at: datetime,
        token_type: str | None = None,
    ) -> bool:
        now = _as_utc(self._clock())
        try:
            async with self._session_maker() as session:
                session.add(
                    RevokedToken(
                        jti=jti,
                        owner_id=owner_id,
                        token_type=token_type,
                        revoked_at=now,
                        expires_at=_as_utc(expires_at),
                    )
                )
                try:
                    await session.commit()
                    return True
                except IntegrityError:
                    # Already revoked (possibly by a concurrent request)
                    await session.rollback()

                await session.execute(
                    update(RevokedToken).where(RevokedToken.jti == jti).values(revoked_at=now)
                )
                await session.commit()
                return False
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist revocation for jti {jti[:8]}...: {e}")
            raise RevocationFailedError() from e

    async def contains(self, jti: str) -> bool:
        async with self._session_maker() as session:
            result = await session.execute(
                select(RevokedToken.jti).where(RevokedToken.jti == jti)
            )
            return result.scalar_one_or_none() is not None

    async def get(self, jti: str) -> RevocationRecord | None:
        async with self._session_maker() as session:
            row = await session.get(RevokedToken, jti)
            if row is None:
                return None
            return RevocationRecord(
                jti=row.jti,
                owner_id=row.owner_id,
                revoked_at=_as_utc(row.revoked_at),
                expires_at=_as_utc(row.expires_at),
                token_type=row.token_type,
            )

    async def evict_expired(self, now: datetime, retention_margin: timedelta) -> int:
        cutoff = _as_utc(now) - retention_margin
        async with self._session_maker() as session:
            result: CursorResult[Any] = await session.execute(  # type: ignore[assignment]
                delete(RevokedToken).where(RevokedToken.expires_at < cutoff)
            )
            await session.commit()
            return result.rowcount
