from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from autopilot.core.config import settings
from autopilot.core.errors import ExternalServiceError


class AIProviderError(ExternalServiceError):
    error_code = "ai_provider_error"


class AIProviderValidationError(AIProviderError):
    error_code = "ai_output_invalid"


@dataclass(frozen=True)
class AICompletionRequest:
    system_prompt: str
    user_prompt: str
    max_tokens: int | None = None


class BaseAIProvider(ABC):
    name: str = "base"

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.transport = transport
        self.timeout_seconds = settings.ai_timeout_seconds
        self.temperature = settings.ai_temperature
        self.max_tokens = settings.ai_max_tokens

    @abstractmethod
    async def complete(self, request: AICompletionRequest) -> str:
        """Return the raw text of the model's reply."""
        raise NotImplementedError

    async def _post(self, url: str, *, headers: dict[str, str], json_body: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
            try:
                response = await client.post(url, headers=headers, json=json_body)
            except httpx.HTTPError as exc:
                raise AIProviderError(f"{self.name} request failed: {exc}") from exc
        if response.status_code >= 400:
            raise AIProviderError(f"{self.name} API error {response.status_code}: {response.text[:500]}")
        try:
            data = response.json()
        except ValueError as exc:
            raise AIProviderError(f"{self.name} API returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise AIProviderError(f"{self.name} API returned an unexpected body")
        return data


class OpenAIProvider(BaseAIProvider):
    name = "openai"

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        super().__init__(transport=transport)
        self.api_key = settings.openai_api_key
        self.model = settings.openai_model
        self.base_url = settings.openai_base_url.rstrip("/")

    async def complete(self, request: AICompletionRequest) -> str:
        if not self.api_key:
            raise AIProviderError("OPENAI_API_KEY is not configured")

        request_body = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": request.max_tokens or self.max_tokens,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        data = await self._post(f"{self.base_url}/chat/completions", headers=headers, json_body=request_body)
        choices = data.get("choices") or []
        if not choices:
            raise AIProviderError("OpenAI API returned no choices")
        content = choices[0].get("message", {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise AIProviderError("OpenAI response content is empty")
        return content


class AnthropicProvider(BaseAIProvider):
    name = "anthropic"

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        super().__init__(transport=transport)
        self.api_key = settings.anthropic_api_key
        self.model = settings.anthropic_model
        self.base_url = settings.anthropic_base_url.rstrip("/")
        self.api_version = settings.anthropic_version

    async def complete(self, request: AICompletionRequest) -> str:
        if not self.api_key:
            raise AIProviderError("ANTHROPIC_API_KEY is not configured")

        request_body = {
            "model": self.model,
            "max_tokens": request.max_tokens or self.max_tokens,
            "temperature": self.temperature,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "content-type": "application/json",
        }
        data = await self._post(f"{self.base_url}/messages", headers=headers, json_body=request_body)
        text_blocks = [
            block.get("text", "")
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        content = "".join(text_blocks)
        if not content.strip():
            raise AIProviderError("Anthropic response content is empty")
        return content


def get_ai_provider() -> BaseAIProvider:
    provider = settings.ai_provider.strip().lower()
    if provider == "openai":
        return OpenAIProvider()
    if provider == "anthropic":
        return AnthropicProvider()
    raise AIProviderError(f"Unsupported AI provider: {settings.ai_provider}")
