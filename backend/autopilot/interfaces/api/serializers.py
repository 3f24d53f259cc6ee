from autopilot.domain.models.blog_post import BlogPost
from autopilot.domain.models.content_piece import ContentPiece
from autopilot.domain.models.idea import Idea


def _isoformat(value) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_piece(piece: ContentPiece) -> dict:
    return {
        "id": str(piece.id),
        "idea_id": str(piece.idea_id),
        "type": piece.type,
        "title": piece.title,
        "content": piece.content,
        "status": piece.status,
        "queue_position": piece.queue_position,
        "external_id": piece.external_id,
        "error_message": piece.error_message,
        "published_at": _isoformat(piece.published_at),
        "created_at": _isoformat(piece.created_at),
        "updated_at": _isoformat(piece.updated_at),
    }


def serialize_idea(idea: Idea, *, pieces: list[ContentPiece] | None = None) -> dict:
    payload = {
        "id": str(idea.id),
        "content": idea.content,
        "source": idea.source,
        "status": idea.status,
        "created_at": _isoformat(idea.created_at),
        "updated_at": _isoformat(idea.updated_at),
    }
    if pieces is not None:
        payload["content_pieces"] = [serialize_piece(piece) for piece in pieces]
    return payload


def serialize_blog_post(blog_post: BlogPost, *, include_content: bool = True) -> dict:
    payload = {
        "id": str(blog_post.id),
        "content_piece_id": str(blog_post.content_piece_id) if blog_post.content_piece_id else None,
        "slug": blog_post.slug,
        "title": blog_post.title,
        "excerpt": blog_post.excerpt,
        "published_at": _isoformat(blog_post.published_at),
        "created_at": _isoformat(blog_post.created_at),
    }
    if include_content:
        payload["content"] = blog_post.content
    return payload
