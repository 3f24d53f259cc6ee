from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

from autopilot.core.errors import ExternalServiceError
from autopilot.domain.models.content_piece import ContentPiece


class AdapterResolutionError(RuntimeError):
    pass


class AdapterError(ExternalServiceError):
    retryable: bool = True
    error_code: str = "adapter_error"


class AdapterRetryableError(AdapterError):
    retryable = True
    error_code = "adapter_retryable_error"


class AdapterPermanentError(AdapterError):
    retryable = False
    error_code = "adapter_permanent_error"


class AdapterAuthError(AdapterPermanentError):
    error_code = "adapter_auth_error"


@dataclass(frozen=True)
class PublishOutcome:
    external_id: str | None
    slug: str | None = None


class BasePublishingChannel(ABC):
    content_type: ClassVar[str] = ""

    @abstractmethod
    async def validate_credentials(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def publish_piece(self, *, piece: ContentPiece) -> PublishOutcome:
        raise NotImplementedError

    async def publish(self, *, piece: ContentPiece) -> PublishOutcome:
        """Publish flow used by the publish cycle: credentials first, then the channel call."""
        if piece.type != self.content_type:
            raise AdapterPermanentError(
                f"{self.__class__.__name__} cannot publish content of type '{piece.type}'"
            )
        await self.validate_credentials()
        return await self.publish_piece(piece=piece)
