import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from autopilot.domain.models.blog_post import BlogPost

SLUG_SANITIZE_PATTERN = re.compile(r"[^a-z0-9]+")
SLUG_PLACEHOLDER = "untitled"
EXCERPT_LENGTH = 200


def build_slug_base(title: str | None) -> str:
    normalized = SLUG_SANITIZE_PATTERN.sub("-", (title or "").lower()).strip("-")
    return normalized or SLUG_PLACEHOLDER


def generate_unique_blog_slug(db: Session, *, title: str | None) -> str:
    base = build_slug_base(title)
    candidate = base
    counter = 1
    while db.execute(select(BlogPost.id).where(BlogPost.slug == candidate)).first() is not None:
        counter += 1
        candidate = f"{base}-{counter}"
    return candidate


def build_excerpt(content: str) -> str:
    return (content or "")[:EXCERPT_LENGTH]
