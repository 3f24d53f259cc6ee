import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from autopilot.core.config import settings
from autopilot.domain.models.idea import Idea, IdeaStatus
from autopilot.integrations.gmail_client import GmailClient, GmailClientError, GmailMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailIngestResult:
    processed: int
    created: int
    mark_read_failed: int = 0

    def to_dict(self) -> dict:
        return {"processed": self.processed, "created": self.created, "mark_read_failed": self.mark_read_failed}


def build_ingest_query(base_query: str, allowed_senders: list[str]) -> str:
    if not allowed_senders:
        return base_query
    return f"{base_query} from:({' OR '.join(allowed_senders)})"


def _store_idea(db: Session, message: GmailMessage, content: str) -> bool:
    already_ingested = db.execute(
        select(Idea.id).where(Idea.source_message_id == message.id)
    ).scalar_one_or_none()
    if already_ingested is not None:
        logger.info("email_ingest_message_already_ingested message_id=%s idea_id=%s", message.id, already_ingested)
        return False
    db.add(
        Idea(
            content=content,
            source=message.sender[:512] or None,
            source_message_id=message.id,
            status=IdeaStatus.NEW.value,
        )
    )
    db.commit()
    return True


def ingest_idea_emails(db: Session, *, client: GmailClient | None = None) -> EmailIngestResult:
    """Turn unread idea emails into new ideas, one message at a time.

    Each idea is committed before its message is marked read. The Gmail message
    id is stored on the idea, so a message left unread by a failed label change
    is only marked read on the next scan, never ingested twice. Messages without
    a plain-text body stay unread.
    """
    client = client or GmailClient()
    query = build_ingest_query(settings.gmail_ingest_query, settings.gmail_allowed_sender_list)
    messages = asyncio.run(client.fetch_unread(query=query, max_results=settings.gmail_max_messages))

    created = 0
    mark_read_failed = 0
    for message in messages:
        content = (message.text_body or "").strip()
        if not content:
            logger.info("email_ingest_message_skipped message_id=%s reason=no_plain_text", message.id)
            continue
        if _store_idea(db, message, content):
            created += 1
        try:
            asyncio.run(client.mark_read([message.id]))
        except GmailClientError:
            mark_read_failed += 1
            logger.warning("email_ingest_mark_read_failed message_id=%s", message.id, exc_info=True)

    logger.info(
        "email_ingest_completed processed=%s created=%s mark_read_failed=%s",
        len(messages),
        created,
        mark_read_failed,
    )
    return EmailIngestResult(processed=len(messages), created=created, mark_read_failed=mark_read_failed)
