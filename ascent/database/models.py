"""
ascent.database.models — SQLAlchemy 2.0 Data Models
====================================================

The progression record is a document: one row per user, scalar fields as
columns (so experience and level can be incremented atomically in SQL) and
collections as JSON (JSONB on PostgreSQL).

Tables:
- user_progress — level, experience, achievements, challenges, quests,
                  stats, streak and last activity for one user
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON (TEXT) everywhere else: keeps SQLite tests honest.
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Ascent ORM models."""


# ---------------------------------------------------------------------------
# UserProgress: one row per user, created lazily on first access
# ---------------------------------------------------------------------------
class UserProgressRow(Base):
    __tablename__ = "user_progress"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    experience: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_active: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    achievements: Mapped[list[dict[str, Any]]] = mapped_column(JsonDocument, default=list)
    active_challenges: Mapped[list[dict[str, Any]]] = mapped_column(JsonDocument, default=list)
    completed_challenges: Mapped[list[dict[str, Any]]] = mapped_column(JsonDocument, default=list)
    active_quests: Mapped[list[dict[str, Any]]] = mapped_column(JsonDocument, default=list)
    completed_quests: Mapped[list[dict[str, Any]]] = mapped_column(JsonDocument, default=list)
    stats: Mapped[list[dict[str, Any]]] = mapped_column(JsonDocument, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_user_progress_experience_desc", "experience"),
    )

    def __repr__(self) -> str:
        return f"<UserProgressRow user={self.user_id!r} lvl={self.level} xp={self.experience}>"


# Field groups used by the store to decide merge semantics
SCALAR_FIELDS: frozenset[str] = frozenset({"level", "experience", "streak", "last_active"})
COUNTER_FIELDS: frozenset[str] = frozenset({"level", "experience", "streak"})
ARRAY_FIELDS: frozenset[str] = frozenset({
    "achievements",
    "active_challenges",
    "completed_challenges",
    "active_quests",
    "completed_quests",
    "stats",
})
DOCUMENT_FIELDS: frozenset[str] = SCALAR_FIELDS | ARRAY_FIELDS
