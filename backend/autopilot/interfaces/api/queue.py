from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from autopilot.application.services.queue_manager import QueueManager
from autopilot.domain.models.content_piece import ContentType
from autopilot.infrastructure.db.session import get_db
from autopilot.interfaces.api.deps import get_queue_manager, require_operator
from autopilot.interfaces.api.serializers import serialize_piece

router = APIRouter(prefix="/queue", tags=["queue"], dependencies=[Depends(require_operator)])


class QueueAddRequest(BaseModel):
    content_ids: list[UUID] = Field(min_length=1)


class QueueAddSingleRequest(BaseModel):
    content_id: UUID


class QueueReorderRequest(BaseModel):
    item_id: UUID
    new_position: int = Field(ge=1)
    type: ContentType


@router.get("", status_code=status.HTTP_200_OK)
def get_queue(
    db: Session = Depends(get_db),
    queue_manager: QueueManager = Depends(get_queue_manager),
) -> dict:
    return {
        content_type.value: [serialize_piece(piece) for piece in queue_manager.snapshot(db, content_type)]
        for content_type in ContentType
    }


@router.post("/add", status_code=status.HTTP_200_OK)
def add_to_queue(
    payload: QueueAddRequest,
    db: Session = Depends(get_db),
    queue_manager: QueueManager = Depends(get_queue_manager),
) -> dict:
    pieces = queue_manager.insert_many(db, payload.content_ids)
    return {"success": True, "items": [serialize_piece(piece) for piece in pieces]}


@router.post("/add-single", status_code=status.HTTP_200_OK)
def add_single_to_queue(
    payload: QueueAddSingleRequest,
    db: Session = Depends(get_db),
    queue_manager: QueueManager = Depends(get_queue_manager),
) -> dict:
    return serialize_piece(queue_manager.insert(db, payload.content_id))


@router.delete("/{piece_id}", status_code=status.HTTP_200_OK)
def remove_from_queue(
    piece_id: UUID,
    db: Session = Depends(get_db),
    queue_manager: QueueManager = Depends(get_queue_manager),
) -> dict:
    piece = queue_manager.remove(db, piece_id)
    return {"success": True, "item": serialize_piece(piece)}


@router.post("/reorder", status_code=status.HTTP_200_OK)
def reorder_queue(
    payload: QueueReorderRequest,
    db: Session = Depends(get_db),
    queue_manager: QueueManager = Depends(get_queue_manager),
) -> dict:
    result = queue_manager.reorder(db, payload.item_id, payload.new_position, payload.type)
    return {
        "success": True,
        "changed": result.changed,
        "old_position": result.old_position,
        "new_position": result.new_position,
        "queue": [serialize_piece(piece) for piece in queue_manager.snapshot(db, payload.type)],
    }
