from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from autopilot.application.services.content_service import (
    get_piece,
    list_pieces,
    regenerate_piece,
    update_piece,
)
from autopilot.application.services.draft_generator import DraftGenerator
from autopilot.application.services.queue_manager import QueueManager
from autopilot.domain.channels import parse_content_type
from autopilot.domain.models.content_piece import ContentPieceStatus
from autopilot.infrastructure.db.session import get_db
from autopilot.interfaces.api.deps import get_draft_generator, get_queue_manager, require_operator
from autopilot.interfaces.api.serializers import serialize_piece

router = APIRouter(prefix="/content", tags=["content"], dependencies=[Depends(require_operator)])


class ContentUpdateRequest(BaseModel):
    content: str | None = Field(default=None, min_length=1)
    title: str | None = Field(default=None, max_length=255)


@router.get("", status_code=status.HTTP_200_OK)
def list_content(
    content_type: str | None = Query(default=None, alias="type"),
    piece_status: ContentPieceStatus | None = Query(default=None, alias="status"),
    idea_id: UUID | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict:
    rows = list_pieces(
        db,
        content_type=parse_content_type(content_type) if content_type else None,
        status=piece_status,
        idea_id=idea_id,
    )
    return {"items": [serialize_piece(piece) for piece in rows]}


@router.get("/{piece_id}", status_code=status.HTTP_200_OK)
def get_content(piece_id: UUID, db: Session = Depends(get_db)) -> dict:
    return serialize_piece(get_piece(db, piece_id))


@router.patch("/{piece_id}", status_code=status.HTTP_200_OK)
def update_content(piece_id: UUID, payload: ContentUpdateRequest, db: Session = Depends(get_db)) -> dict:
    piece = update_piece(
        db,
        piece_id,
        content=payload.content,
        title=payload.title,
        title_set="title" in payload.model_fields_set,
    )
    return serialize_piece(piece)


@router.post("/{piece_id}/regenerate", status_code=status.HTTP_200_OK)
def regenerate_content(
    piece_id: UUID,
    db: Session = Depends(get_db),
    generator: DraftGenerator = Depends(get_draft_generator),
) -> dict:
    return serialize_piece(regenerate_piece(db, piece_id, generator=generator))


@router.post("/{piece_id}/retry", status_code=status.HTTP_200_OK)
def retry_content(
    piece_id: UUID,
    db: Session = Depends(get_db),
    queue_manager: QueueManager = Depends(get_queue_manager),
) -> dict:
    piece = queue_manager.retry(db, piece_id)
    return {"success": True, "position": piece.queue_position, "item": serialize_piece(piece)}
