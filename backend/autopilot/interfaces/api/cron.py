import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from autopilot.application.services.email_ingest_service import ingest_idea_emails
from autopilot.application.services.publish_cycle import PublishCycleStatus
from autopilot.domain.channels import parse_content_type
from autopilot.infrastructure.db.session import get_db
from autopilot.integrations.gmail_client import GmailClient
from autopilot.interfaces.api.deps import (
    PublishCycleFactory,
    get_gmail_client,
    get_publish_cycle_factory,
    require_cron_secret,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@router.get("/publish/{content_type}", status_code=status.HTTP_200_OK)
def trigger_publish_cycle(
    content_type: str,
    db: Session = Depends(get_db),
    cycle_factory: PublishCycleFactory = Depends(get_publish_cycle_factory),
):
    normalized = parse_content_type(content_type)
    result = cycle_factory(normalized.value).run(db)
    logger.info("cron_publish_cycle_finished content_type=%s status=%s", normalized.value, result.status.value)
    if result.status == PublishCycleStatus.FAILED:
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=result.to_dict())
    return result.to_dict()


@router.get("/email-ingest", status_code=status.HTTP_200_OK)
def trigger_email_ingest(
    db: Session = Depends(get_db),
    client: GmailClient = Depends(get_gmail_client),
) -> dict:
    return ingest_idea_emails(db, client=client).to_dict()
