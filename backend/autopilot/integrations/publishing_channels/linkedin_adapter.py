import httpx
from sqlalchemy.orm import Session

from autopilot.core.config import settings
from autopilot.domain.models.content_piece import ContentPiece, ContentType
from autopilot.integrations.publishing_channels.base_adapter import (
    AdapterAuthError,
    AdapterPermanentError,
    AdapterRetryableError,
    BasePublishingChannel,
    PublishOutcome,
)


class LinkedInAdapter(BasePublishingChannel):
    content_type = ContentType.LINKEDIN.value

    def __init__(
        self,
        db: Session | None = None,
        *,
        access_token: str | None = None,
        person_urn: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.db = db
        self.access_token = access_token if access_token is not None else settings.linkedin_access_token
        self.person_urn = person_urn if person_urn is not None else settings.linkedin_person_urn
        self.transport = transport

    async def validate_credentials(self) -> None:
        if not (self.access_token or "").strip():
            raise AdapterAuthError("LinkedIn access token missing")
        if not (self.person_urn or "").strip():
            raise AdapterAuthError("LinkedIn person URN missing")

    async def publish_piece(self, *, piece: ContentPiece) -> PublishOutcome:
        payload = {
            "author": self.person_urn,
            "lifecycleState": "PUBLISHED",
            "specificContent": {
                "com.linkedin.ugc.ShareContent": {
                    "shareCommentary": {"text": piece.content},
                    "shareMediaCategory": "NONE",
                }
            },
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "X-Restli-Protocol-Version": "2.0.0",
        }

        async with httpx.AsyncClient(timeout=20.0, transport=self.transport) as client:
            try:
                response = await client.post(settings.linkedin_ugc_posts_url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                raise AdapterRetryableError(f"LinkedIn publish request failed: {exc}") from exc

        if response.status_code >= 400:
            if response.status_code in {401, 403}:
                raise AdapterAuthError(f"LinkedIn publish unauthorized: {response.status_code} {response.text}")
            if response.status_code == 429 or response.status_code >= 500:
                raise AdapterRetryableError(
                    f"LinkedIn publish temporary failure: {response.status_code} {response.text}"
                )
            raise AdapterPermanentError(f"LinkedIn publish failed: {response.status_code} {response.text}")

        external_id = response.headers.get("x-restli-id")
        if not external_id:
            try:
                response_json = response.json() if response.content else {}
            except ValueError:
                response_json = {}
            external_id = str(response_json.get("id") or "")
        if not external_id:
            raise AdapterPermanentError("LinkedIn publish response missing post id")

        return PublishOutcome(external_id=external_id)
