from autopilot.domain.models.blog_post import BlogPost
from autopilot.domain.models.content_piece import ContentPiece
from autopilot.domain.models.idea import Idea
from autopilot.domain.models.setting import Setting

__all__ = [
    "Idea",
    "ContentPiece",
    "Setting",
    "BlogPost",
]
