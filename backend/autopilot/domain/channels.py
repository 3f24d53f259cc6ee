from dataclasses import dataclass

from autopilot.core.config import settings
from autopilot.core.errors import ValidationError
from autopilot.domain.models.content_piece import ContentType


@dataclass(frozen=True)
class ChannelSpec:
    content_type: ContentType
    label: str
    setting_key: str
    requires_title: bool

    @property
    def max_drafts(self) -> int:
        if self.content_type == ContentType.LINKEDIN:
            return settings.max_linkedin_drafts
        if self.content_type == ContentType.BLOG:
            return settings.max_blog_drafts
        return 0


CHANNEL_SPECS: dict[ContentType, ChannelSpec] = {
    ContentType.LINKEDIN: ChannelSpec(
        content_type=ContentType.LINKEDIN,
        label="LinkedIn",
        setting_key="linkedin_posting_enabled",
        requires_title=False,
    ),
    ContentType.BLOG: ChannelSpec(
        content_type=ContentType.BLOG,
        label="Blog",
        setting_key="blog_posting_enabled",
        requires_title=True,
    ),
}


def parse_content_type(value: str) -> ContentType:
    try:
        return ContentType(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(
            f"Unsupported content type '{value}'",
            error_code="unsupported_content_type",
        ) from exc


def get_channel_spec(content_type: ContentType | str) -> ChannelSpec:
    return CHANNEL_SPECS[parse_content_type(content_type)]
