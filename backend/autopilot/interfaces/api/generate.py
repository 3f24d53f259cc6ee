from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from autopilot.application.services.content_service import generate_drafts
from autopilot.application.services.draft_generator import DraftGenerator
from autopilot.infrastructure.db.session import get_db
from autopilot.interfaces.api.deps import get_draft_generator, require_operator
from autopilot.interfaces.api.serializers import serialize_piece

router = APIRouter(tags=["generate"], dependencies=[Depends(require_operator)])


class GenerateRequest(BaseModel):
    idea_id: UUID
    linkedin_count: int = Field(default=0)
    blog_count: int = Field(default=0)


@router.post("/generate", status_code=status.HTTP_201_CREATED)
def generate_endpoint(
    payload: GenerateRequest,
    db: Session = Depends(get_db),
    generator: DraftGenerator = Depends(get_draft_generator),
) -> dict:
    pieces = generate_drafts(
        db,
        payload.idea_id,
        linkedin_count=payload.linkedin_count,
        blog_count=payload.blog_count,
        generator=generator,
    )
    return {"items": [serialize_piece(piece) for piece in pieces]}
