"""SQLAlchemy models for quiz results, download tokens, and saved progress.

The scored result is stored as an opaque JSON payload; core type and subtype
are copied into their own columns so results can be queried without decoding it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC now. Every datetime column stores naive UTC."""
    return datetime.utcnow()


class Base(DeclarativeBase):
    pass


class QuizResultRecord(Base):
    """One scored quiz submission, plus the PDF artifact once it exists."""

    __tablename__ = "quiz_results"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    quiz_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    edna_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    core_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    subtype: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    pdf_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    s3_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_quiz_email", "email"),
        Index("idx_quiz_created_at", "created_at"),
    )


class DownloadTokenRecord(Base):
    """A time-limited download token bound to a stored PDF."""

    __tablename__ = "pdf_download_tokens"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    quiz_result_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("quiz_results.id", ondelete="CASCADE"),
        nullable=False,
    )
    s3_key: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_token_expires", "expires_at"),
        Index("idx_token_quiz_id", "quiz_result_id"),
    )


class QuizProgressRecord(Base):
    """Answers saved mid-quiz so a user can resume later."""

    __tablename__ = "quiz_progress"

    email: Mapped[str] = mapped_column(String(255), primary_key=True)
    progress_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
