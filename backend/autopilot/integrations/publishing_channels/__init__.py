from autopilot.integrations.publishing_channels.base_adapter import (
    AdapterAuthError,
    AdapterError,
    AdapterPermanentError,
    AdapterResolutionError,
    AdapterRetryableError,
    BasePublishingChannel,
    PublishOutcome,
)
from autopilot.integrations.publishing_channels.factory import (
    get_publishing_channel,
    list_registered_channel_types,
)

__all__ = [
    "AdapterResolutionError",
    "AdapterError",
    "AdapterRetryableError",
    "AdapterPermanentError",
    "AdapterAuthError",
    "BasePublishingChannel",
    "PublishOutcome",
    "get_publishing_channel",
    "list_registered_channel_types",
]
