from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from autopilot.application.services.settings_service import is_channel_enabled, set_channel_enabled
from autopilot.domain.channels import parse_content_type
from autopilot.infrastructure.db.session import get_db
from autopilot.interfaces.api.deps import require_operator

router = APIRouter(prefix="/settings", tags=["settings"], dependencies=[Depends(require_operator)])


class ChannelToggleRequest(BaseModel):
    enabled: bool


@router.get("/{content_type}", status_code=status.HTTP_200_OK)
def get_channel_setting(content_type: str, db: Session = Depends(get_db)) -> dict:
    normalized = parse_content_type(content_type)
    return {"type": normalized.value, "enabled": is_channel_enabled(db, content_type=normalized)}


@router.post("/{content_type}", status_code=status.HTTP_200_OK)
def update_channel_setting(
    content_type: str,
    payload: ChannelToggleRequest,
    db: Session = Depends(get_db),
) -> dict:
    normalized = parse_content_type(content_type)
    enabled = set_channel_enabled(db, content_type=normalized, enabled=payload.enabled)
    db.commit()
    return {"success": True, "type": normalized.value, "enabled": enabled}
