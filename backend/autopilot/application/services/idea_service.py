import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from autopilot.core.errors import NotFoundError, ValidationError
from autopilot.domain.models.idea import IDEA_STATUS_ORDER, Idea, IdeaStatus

logger = logging.getLogger(__name__)


def create_idea(db: Session, *, content: str, source: str | None = None) -> Idea:
    normalized = (content or "").strip()
    if not normalized:
        raise ValidationError("Idea content must not be empty")
    idea = Idea(content=normalized, source=(source or "").strip() or None, status=IdeaStatus.NEW.value)
    db.add(idea)
    db.commit()
    db.refresh(idea)
    logger.info("idea_created idea_id=%s source=%s", idea.id, idea.source)
    return idea


def list_ideas(db: Session, *, status: IdeaStatus | None = None) -> list[Idea]:
    query = select(Idea).order_by(Idea.created_at.desc())
    if status is not None:
        query = query.where(Idea.status == status.value)
    return list(db.execute(query).scalars().all())


def get_idea(db: Session, idea_id: UUID) -> Idea:
    idea = db.get(Idea, idea_id)
    if idea is None:
        raise NotFoundError("Idea not found")
    return idea


def change_idea_status(db: Session, idea_id: UUID, *, status: IdeaStatus) -> Idea:
    """Move an idea forward along new -> generating -> drafted; never backward."""
    idea = get_idea(db, idea_id)
    current_rank = IDEA_STATUS_ORDER.index(IdeaStatus(idea.status))
    target_rank = IDEA_STATUS_ORDER.index(status)
    if target_rank < current_rank:
        raise ValidationError(
            f"Idea status cannot move from '{idea.status}' back to '{status.value}'",
            error_code="invalid_status_transition",
        )
    if target_rank == current_rank:
        return idea
    previous = idea.status
    idea.status = status.value
    db.commit()
    db.refresh(idea)
    logger.info("idea_status_changed idea_id=%s from=%s to=%s", idea.id, previous, idea.status)
    return idea
