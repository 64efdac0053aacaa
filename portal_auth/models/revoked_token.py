"""Revoked JWT credentials - survives process restarts and is shared between instances."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from portal_auth.core.database import Base


class RevokedToken(Base):
    """A revoked credential identified by its JTI claim.

    Rows are created on logout, administrative revocation and refresh
    rotation, and removed by the cleanup task once ``expires_at`` plus the
    retention margin has passed.
    """

    __tablename__ = "token_blacklist"

    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    token_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    revoked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<RevokedToken {self.jti[:8]}... owner={self.owner_id}>"
