from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autopilot.application.services.publishing_service import build_excerpt, generate_unique_blog_slug
from autopilot.domain.models.blog_post import BlogPost
from autopilot.domain.models.content_piece import ContentPiece, ContentType
from autopilot.integrations.publishing_channels.base_adapter import (
    AdapterPermanentError,
    BasePublishingChannel,
    PublishOutcome,
)


class BlogAdapter(BasePublishingChannel):
    """Publishes to the site's own blog table; the row id is the external id."""

    content_type = ContentType.BLOG.value

    def __init__(self, db: Session) -> None:
        self.db = db

    async def validate_credentials(self) -> None:
        return None

    async def publish_piece(self, *, piece: ContentPiece) -> PublishOutcome:
        if not (piece.title or "").strip():
            raise AdapterPermanentError("Blog post requires a title")

        existing = self.db.execute(
            select(BlogPost).where(BlogPost.content_piece_id == piece.id)
        ).scalar_one_or_none()
        if existing is not None:
            return PublishOutcome(external_id=str(existing.id), slug=existing.slug)

        try:
            slug = generate_unique_blog_slug(self.db, title=piece.title)
            blog_post = BlogPost(
                content_piece_id=piece.id,
                slug=slug,
                title=piece.title,
                content=piece.content,
                excerpt=build_excerpt(piece.content),
                published_at=datetime.now(UTC),
            )
            self.db.add(blog_post)
            self.db.flush()
        except SQLAlchemyError as exc:
            raise AdapterPermanentError(f"Failed to create blog post: {exc}") from exc

        return PublishOutcome(external_id=str(blog_post.id), slug=slug)
