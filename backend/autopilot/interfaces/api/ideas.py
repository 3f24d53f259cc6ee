from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from autopilot.application.services.content_service import list_pieces
from autopilot.application.services.idea_service import change_idea_status, create_idea, get_idea, list_ideas
from autopilot.domain.models.idea import IdeaStatus
from autopilot.infrastructure.db.session import get_db
from autopilot.interfaces.api.deps import require_operator
from autopilot.interfaces.api.serializers import serialize_idea

router = APIRouter(prefix="/ideas", tags=["ideas"], dependencies=[Depends(require_operator)])


class IdeaCreateRequest(BaseModel):
    content: str = Field(min_length=1)
    source: str | None = Field(default=None, max_length=512)


class IdeaStatusRequest(BaseModel):
    status: IdeaStatus


@router.get("", status_code=status.HTTP_200_OK)
def list_ideas_endpoint(
    idea_status: IdeaStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> dict:
    return {"items": [serialize_idea(idea) for idea in list_ideas(db, status=idea_status)]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_idea_endpoint(payload: IdeaCreateRequest, db: Session = Depends(get_db)) -> dict:
    idea = create_idea(db, content=payload.content, source=payload.source)
    return serialize_idea(idea, pieces=[])


@router.get("/{idea_id}", status_code=status.HTTP_200_OK)
def get_idea_endpoint(idea_id: UUID, db: Session = Depends(get_db)) -> dict:
    idea = get_idea(db, idea_id)
    return serialize_idea(idea, pieces=list_pieces(db, idea_id=idea.id))


@router.patch("/{idea_id}/status", status_code=status.HTTP_200_OK)
def change_idea_status_endpoint(
    idea_id: UUID,
    payload: IdeaStatusRequest,
    db: Session = Depends(get_db),
) -> dict:
    return serialize_idea(change_idea_status(db, idea_id, status=payload.status))
