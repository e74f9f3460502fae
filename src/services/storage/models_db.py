"""
SQLAlchemy ORM models for the SpeakLoop schema.

Tables: ``speaking_sessions``, ``transcripts``, ``insights``,
``pattern_profiles``.

Transcripts and insights belong to their session and cascade-delete with it.
Pattern profiles belong to the user and are never removed with a session.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from src.core.models import SessionStatus
from src.services.storage.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SpeakingSession(Base):
    """One recording-to-feedback lifecycle."""

    __tablename__ = "speaking_sessions"
    __table_args__ = (Index("ix_speaking_sessions_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.CREATED.value, index=True)
    duration_secs: Mapped[int | None] = mapped_column(nullable=True)
    language: Mapped[str] = mapped_column(String(10), default="en")
    topic: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Kept after deletion as the historical key; audio_deleted_at marks the purge.
    audio_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    audio_deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    focus_next: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow, onupdate=_utcnow)

    transcript: Mapped["Transcript | None"] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
    )
    insights: Mapped[list["Insight"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<SpeakingSession id={self.id} status={self.status!r}>"


class Transcript(Base):
    """The single, immutable transcript of a session."""

    __tablename__ = "transcripts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("speaking_sessions.id", ondelete="CASCADE"), unique=True
    )
    text: Mapped[str] = mapped_column(Text, default="")
    word_count: Mapped[int] = mapped_column(default=0)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)

    session: Mapped["SpeakingSession"] = relationship(back_populates="transcript")

    def __repr__(self) -> str:
        return f"<Transcript id={self.id} session={self.session_id} words={self.word_count}>"


class Insight(Base):
    """One detected recurring speaking pattern."""

    __tablename__ = "insights"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("speaking_sessions.id", ondelete="CASCADE"), index=True
    )
    category: Mapped[str] = mapped_column(String(32))
    pattern: Mapped[str] = mapped_column(String(255))
    detail: Mapped[str] = mapped_column(Text, default="")
    frequency: Mapped[int | None] = mapped_column(nullable=True)
    severity: Mapped[str | None] = mapped_column(String(10), nullable=True)
    examples: Mapped[list | None] = mapped_column(JSON, nullable=True)
    suggestion: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)

    session: Mapped["SpeakingSession"] = relationship(back_populates="insights")

    def __repr__(self) -> str:
        return f"<Insight id={self.id} session={self.session_id} {self.category}:{self.pattern}>"


class PatternProfile(Base):
    """Per-user running count of ``category:pattern`` occurrences."""

    __tablename__ = "pattern_profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True)
    patterns: Mapped[dict] = mapped_column(JSON, default=dict)
    last_updated: Mapped[datetime] = mapped_column(default=_utcnow)

    def __repr__(self) -> str:
        return f"<PatternProfile user={self.user_id} keys={len(self.patterns or {})}>"
