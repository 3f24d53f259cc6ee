from collections.abc import Callable

import jwt
from fastapi import Depends, Header, HTTPException, Request, status

from autopilot.application.services.draft_generator import DraftGenerator
from autopilot.application.services.publish_cycle import PublishCycle
from autopilot.application.services.queue_manager import QueueManager
from autopilot.core.config import settings
from autopilot.core.security import OPERATOR_SUBJECT, decode_token, extract_bearer_token, secrets_match
from autopilot.integrations.gmail_client import GmailClient

PublishCycleFactory = Callable[[str], PublishCycle]


def require_operator(request: Request, authorization: str | None = Header(default=None)) -> str:
    token = request.cookies.get(settings.auth_cookie_name) or extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        claims = decode_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    if claims.get("type") != "access" or claims.get("sub") != OPERATOR_SUBJECT:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    return OPERATOR_SUBJECT


def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    if not secrets_match(extract_bearer_token(authorization), settings.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_queue_manager() -> QueueManager:
    return QueueManager()


def get_publish_cycle_factory(
    queue_manager: QueueManager = Depends(get_queue_manager),
) -> PublishCycleFactory:
    def _factory(content_type: str) -> PublishCycle:
        return PublishCycle(content_type, queue_manager=queue_manager)

    return _factory


def get_draft_generator() -> DraftGenerator:
    return DraftGenerator()


def get_gmail_client() -> GmailClient:
    return GmailClient()
