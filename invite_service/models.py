# invite_service/models.py
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    String,
)
from sqlalchemy.sql import text

from invite_service.db.base import Base

# Cross-DB timestamp default (SQLite + Postgres)
DB_NOW = text("CURRENT_TIMESTAMP")


class TokenStatus(str, Enum):
    UNUSED = "unused"
    USED = "used"


class InviteToken(Base):
    """
    One invitation grant.

    Lifecycle: inserted as 'unused', flipped to 'used' exactly once by a
    conditional UPDATE, removed only by a full-table reset.
    """
    __tablename__ = "tokens"

    token = Column(String(16), primary_key=True)

    status = Column(
        String(16),
        nullable=False,
        default=TokenStatus.UNUSED.value,
        server_default=text("'unused'"),
    )

    # Set in Python at insert for microsecond ordering; server default is a fallback
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=DB_NOW)
    used_at = Column(DateTime(timezone=True), nullable=True)

    # Free-form attribution; never read by lifecycle logic
    recipient = Column(String(255), nullable=True)
    consumer_identity = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('unused', 'used')", name="ck_tokens_status"),
        CheckConstraint(
            "(status = 'unused' AND used_at IS NULL) OR (status = 'used' AND used_at IS NOT NULL)",
            name="ck_tokens_used_at_matches_status",
        ),
        Index("ix_tokens_status", "status"),
        Index("ix_tokens_used_at", "used_at"),
        Index("ix_tokens_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<InviteToken {self.token} status={self.status}>"
