import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from autopilot.infrastructure.db.base import Base


class ContentType(StrEnum):
    LINKEDIN = "linkedin"
    BLOG = "blog"


class ContentPieceStatus(StrEnum):
    DRAFT = "draft"
    QUEUED = "queued"
    PUBLISHED = "published"
    FAILED = "failed"


class ContentPiece(Base):
    __tablename__ = "content_pieces"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'queued', 'published', 'failed')",
            name="ck_content_pieces_status_values",
        ),
        CheckConstraint(
            "type IN ('linkedin', 'blog')",
            name="ck_content_pieces_type_values",
        ),
        CheckConstraint(
            "(status = 'queued') = (queue_position IS NOT NULL)",
            name="ck_content_pieces_queue_position_iff_queued",
        ),
        CheckConstraint("queue_position IS NULL OR queue_position >= 1", name="ck_content_pieces_queue_position_positive"),
        Index("ix_content_pieces_type_status_position", "type", "status", "queue_position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    idea_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=ContentPieceStatus.DRAFT.value)
    queue_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
