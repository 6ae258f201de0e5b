from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.micomunity.audit import record_event
from app.micomunity.constants import ROLE_ADMIN, ROLE_PRESIDENT, ROLE_RESIDENT
from app.micomunity.errors import NotFound, PermissionDenied, ValidationError
from app.micomunity.models import Community, User
from app.micomunity.modules.community.service import require_community
from app.micomunity.modules.posts.models import Post
from app.micomunity.utils import local_now

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session

logger = logging.getLogger(__name__)

TITLE_MAX = 255
CONTENT_MAX = 2000


def create_post(s: "Session", user: User, *, title: str, content: str) -> Post:
    community = require_community(user)
    title = (title or "").strip()
    content = (content or "").strip()
    errors: dict[str, str] = {}
    if not title:
        errors["title"] = "Title is required."
    elif len(title) > TITLE_MAX:
        errors["title"] = f"Title must be at most {TITLE_MAX} characters."
    if not content:
        errors["content"] = "Content is required."
    elif len(content) > CONTENT_MAX:
        errors["content"] = f"Content must be at most {CONTENT_MAX} characters."
    if errors:
        raise ValidationError("Invalid post.", details=errors)

    post = Post(
        title=title,
        content=content,
        author_id=user.id,
        community_id=community.id,
        created_at=local_now(),
    )
    s.add(post)
    s.flush()
    record_event(s, actor=user, action="post.create", entity_type="Post", entity_id=str(post.id))
    return post


def community_posts_query(s: "Session", user: User, community_code: str) -> "Query":
    community_code = (community_code or "").strip()
    if not community_code:
        raise ValidationError("Community code is required.")
    community = s.query(Community).filter(Community.community_code == community_code).one_or_none()
    if not community:
        raise NotFound(f"Community not found: {community_code}")
    if user.role != ROLE_ADMIN and user.community_id != community.id:
        raise PermissionDenied("You can only read posts of your own community.")
    return (
        s.query(Post)
        .filter(Post.community_id == community.id)
        .order_by(Post.created_at.desc(), Post.id.desc())
    )


def can_delete(user: User, post: Post) -> bool:
    if user.role == ROLE_PRESIDENT:
        return user.community_id == post.community_id
    if user.role == ROLE_RESIDENT:
        return post.author_id == user.id
    return False


def delete_post(s: "Session", user: User, post_id: int) -> None:
    post = s.get(Post, post_id)
    if not post:
        raise NotFound(f"Post not found: {post_id}")
    if not can_delete(user, post):
        raise PermissionDenied("You do not have permission to delete this post.")
    record_event(s, actor=user, action="post.delete", entity_type="Post", entity_id=str(post.id))
    s.delete(post)
    logger.debug("Post %s deleted by %s", post_id, user.email)
