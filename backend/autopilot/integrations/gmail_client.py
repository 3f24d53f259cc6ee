import base64
from dataclasses import dataclass
from typing import Any

import httpx

from autopilot.core.config import settings
from autopilot.core.errors import ExternalServiceError


class GmailClientError(ExternalServiceError):
    error_code = "gmail_error"


@dataclass(frozen=True)
class GmailMessage:
    id: str
    sender: str
    subject: str
    text_body: str | None


def decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def extract_plain_text(payload: dict[str, Any] | None) -> str | None:
    """Depth-first search for the first text/plain part that carries inline data."""
    if not payload:
        return None
    body_data = (payload.get("body") or {}).get("data")
    if payload.get("mimeType") == "text/plain" and body_data:
        return decode_base64url(body_data)
    for part in payload.get("parts") or []:
        text = extract_plain_text(part)
        if text is not None:
            return text
    return None


def header_value(payload: dict[str, Any] | None, name: str) -> str:
    for header in (payload or {}).get("headers") or []:
        if str(header.get("name", "")).lower() == name.lower():
            return str(header.get("value") or "")
    return ""


class GmailClient:
    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id if client_id is not None else settings.gmail_client_id
        self.client_secret = client_secret if client_secret is not None else settings.gmail_client_secret
        self.refresh_token = refresh_token if refresh_token is not None else settings.gmail_refresh_token
        self.api_base_url = settings.gmail_api_base_url.rstrip("/")
        self.transport = transport
        self._access_token: str | None = None

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    async def _ensure_access_token(self, client: httpx.AsyncClient) -> str:
        if self._access_token:
            return self._access_token
        if not self.is_configured():
            raise GmailClientError("Gmail OAuth credentials are not configured")
        response = await client.post(
            settings.gmail_token_url,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code >= 400:
            raise GmailClientError(f"Gmail token refresh failed: {response.status_code} {response.text[:300]}")
        access_token = (response.json() or {}).get("access_token")
        if not access_token:
            raise GmailClientError("Gmail token refresh response missing access_token")
        self._access_token = str(access_token)
        return self._access_token

    async def _request(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> dict[str, Any]:
        access_token = await self._ensure_access_token(client)
        try:
            response = await client.request(
                method,
                f"{self.api_base_url}{path}",
                headers={"Authorization": f"Bearer {access_token}"},
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise GmailClientError(f"Gmail request failed: {exc}") from exc
        if response.status_code >= 400:
            raise GmailClientError(f"Gmail API error {response.status_code}: {response.text[:300]}")
        return response.json() if response.content else {}

    async def fetch_unread(self, *, query: str, max_results: int) -> list[GmailMessage]:
        async with httpx.AsyncClient(timeout=settings.gmail_timeout_seconds, transport=self.transport) as client:
            listing = await self._request(
                client,
                "GET",
                "/messages",
                params={"q": query, "maxResults": max_results},
            )
            messages: list[GmailMessage] = []
            for item in listing.get("messages") or []:
                raw = await self._request(client, "GET", f"/messages/{item['id']}", params={"format": "full"})
                payload = raw.get("payload") or {}
                messages.append(
                    GmailMessage(
                        id=str(item["id"]),
                        sender=header_value(payload, "From"),
                        subject=header_value(payload, "Subject"),
                        text_body=extract_plain_text(payload),
                    )
                )
            return messages

    async def mark_read(self, message_ids: list[str]) -> None:
        if not message_ids:
            return
        async with httpx.AsyncClient(timeout=settings.gmail_timeout_seconds, transport=self.transport) as client:
            for message_id in message_ids:
                await self._request(
                    client,
                    "POST",
                    f"/messages/{message_id}/modify",
                    json={"removeLabelIds": ["UNREAD"]},
                )
