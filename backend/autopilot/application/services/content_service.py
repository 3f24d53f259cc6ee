"""Draft lifecycle outside the queue: generation, regeneration and manual edits."""

import asyncio
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autopilot.application.services.draft_generator import DraftGenerator
from autopilot.application.services.idea_service import get_idea
from autopilot.core.config import settings
from autopilot.core.errors import AutopilotError, ExternalServiceError, NotFoundError, PersistenceError, ValidationError
from autopilot.domain.channels import get_channel_spec
from autopilot.domain.models.content_piece import ContentPiece, ContentPieceStatus, ContentType
from autopilot.domain.models.idea import Idea, IdeaStatus

logger = logging.getLogger(__name__)


def validate_generation_counts(*, linkedin_count: int, blog_count: int) -> None:
    counts = {ContentType.LINKEDIN: linkedin_count, ContentType.BLOG: blog_count}
    for content_type, count in counts.items():
        spec = get_channel_spec(content_type)
        if count < 0:
            raise ValidationError(f"{spec.label} count must not be negative", error_code="invalid_counts")
        if count > spec.max_drafts:
            raise ValidationError(
                f"{spec.label} count must be at most {spec.max_drafts}",
                error_code="invalid_counts",
            )
    total = linkedin_count + blog_count
    if total > settings.max_total_drafts:
        raise ValidationError(
            f"At most {settings.max_total_drafts} drafts can be generated at once",
            error_code="invalid_counts",
        )
    if total < 1:
        raise ValidationError("At least one draft must be requested", error_code="invalid_counts")


def generate_drafts(
    db: Session,
    idea_id: UUID,
    *,
    linkedin_count: int,
    blog_count: int,
    generator: DraftGenerator | None = None,
) -> list[ContentPiece]:
    validate_generation_counts(linkedin_count=linkedin_count, blog_count=blog_count)
    idea = get_idea(db, idea_id)
    previous_status = idea.status
    generator = generator or DraftGenerator()

    if previous_status != IdeaStatus.DRAFTED.value:
        # Idea status only moves forward; a drafted idea stays drafted while more drafts are generated.
        idea.status = IdeaStatus.GENERATING.value
        db.commit()
    logger.info(
        "draft_generation_started idea_id=%s linkedin_count=%s blog_count=%s",
        idea_id,
        linkedin_count,
        blog_count,
    )

    try:
        drafts = asyncio.run(
            generator.generate(idea_content=idea.content, linkedin_count=linkedin_count, blog_count=blog_count)
        )
    except Exception as exc:
        _restore_idea_status(db, idea_id, previous_status)
        logger.exception("draft_generation_failed idea_id=%s", idea_id)
        if isinstance(exc, AutopilotError):
            raise
        raise ExternalServiceError("Failed to generate content") from exc

    try:
        pieces = [
            ContentPiece(
                idea_id=idea.id,
                type=draft.type,
                title=draft.title if draft.type == ContentType.BLOG.value else None,
                content=draft.content,
                status=ContentPieceStatus.DRAFT.value,
            )
            for draft in drafts
        ]
        db.add_all(pieces)
        idea.status = IdeaStatus.DRAFTED.value
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        _restore_idea_status(db, idea_id, previous_status)
        logger.exception("draft_generation_persist_failed idea_id=%s", idea_id)
        raise PersistenceError("Generated drafts could not be saved") from exc

    for piece in pieces:
        db.refresh(piece)
    logger.info("draft_generation_completed idea_id=%s pieces=%s", idea_id, len(pieces))
    return pieces


def _restore_idea_status(db: Session, idea_id: UUID, status: str) -> None:
    db.rollback()
    idea = db.get(Idea, idea_id)
    if idea is None:
        return
    idea.status = status
    db.commit()


def list_pieces(
    db: Session,
    *,
    content_type: ContentType | None = None,
    status: ContentPieceStatus | None = None,
    idea_id: UUID | None = None,
) -> list[ContentPiece]:
    query = select(ContentPiece).order_by(ContentPiece.created_at.desc())
    if content_type is not None:
        query = query.where(ContentPiece.type == content_type.value)
    if status is not None:
        query = query.where(ContentPiece.status == status.value)
    if idea_id is not None:
        query = query.where(ContentPiece.idea_id == idea_id)
    return list(db.execute(query).scalars().all())


def get_piece(db: Session, piece_id: UUID) -> ContentPiece:
    piece = db.get(ContentPiece, piece_id)
    if piece is None:
        raise NotFoundError("Content not found")
    return piece


def _ensure_editable(piece: ContentPiece) -> None:
    if piece.status == ContentPieceStatus.PUBLISHED.value:
        raise ValidationError("Published content cannot be changed", error_code="already_published")


def update_piece(
    db: Session,
    piece_id: UUID,
    *,
    content: str | None = None,
    title: str | None = None,
    title_set: bool = False,
) -> ContentPiece:
    piece = get_piece(db, piece_id)
    _ensure_editable(piece)
    if content is not None:
        if not content.strip():
            raise ValidationError("Content must not be empty")
        piece.content = content
    if title_set:
        if piece.type == ContentType.BLOG.value and not (title or "").strip():
            raise ValidationError("Blog content requires a title")
        piece.title = title
    db.commit()
    db.refresh(piece)
    logger.info("content_piece_updated piece_id=%s content_type=%s", piece.id, piece.type)
    return piece


def regenerate_piece(db: Session, piece_id: UUID, *, generator: DraftGenerator | None = None) -> ContentPiece:
    piece = get_piece(db, piece_id)
    _ensure_editable(piece)
    idea = get_idea(db, piece.idea_id)
    generator = generator or DraftGenerator()

    try:
        revision = asyncio.run(
            generator.regenerate(idea_content=idea.content, content_type=piece.type, current_content=piece.content)
        )
    except AutopilotError:
        logger.exception("content_regeneration_failed piece_id=%s", piece_id)
        raise
    except Exception as exc:
        logger.exception("content_regeneration_failed piece_id=%s", piece_id)
        raise ExternalServiceError("Failed to regenerate") from exc

    piece.content = revision.content
    if piece.type == ContentType.BLOG.value:
        piece.title = revision.title
    db.commit()
    db.refresh(piece)
    logger.info("content_piece_regenerated piece_id=%s content_type=%s", piece.id, piece.type)
    return piece
