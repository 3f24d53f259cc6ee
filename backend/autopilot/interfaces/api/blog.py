from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from autopilot.core.errors import NotFoundError
from autopilot.domain.models.blog_post import BlogPost
from autopilot.infrastructure.db.session import get_db
from autopilot.interfaces.api.serializers import serialize_blog_post

router = APIRouter(prefix="/blog", tags=["blog"])


@router.get("/posts", status_code=status.HTTP_200_OK)
def list_blog_posts(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> dict:
    rows = db.execute(
        select(BlogPost).order_by(BlogPost.published_at.desc()).limit(limit).offset(offset)
    ).scalars().all()
    return {"items": [serialize_blog_post(row, include_content=False) for row in rows]}


@router.get("/posts/{slug}", status_code=status.HTTP_200_OK)
def get_blog_post(slug: str, db: Session = Depends(get_db)) -> dict:
    blog_post = db.execute(select(BlogPost).where(BlogPost.slug == slug)).scalar_one_or_none()
    if blog_post is None:
        raise NotFoundError("Blog post not found")
    return serialize_blog_post(blog_post)
