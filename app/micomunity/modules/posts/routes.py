from flask import Blueprint, g

from app.micomunity.db import db_session
from app.micomunity.modules.posts.models import Post
from app.micomunity.modules.posts.service import can_delete, community_posts_query, create_post, delete_post
from app.micomunity.rbac import require_permission
from app.micomunity.utils import iso, json_body, page_args, paginate


def _post_payload(p: Post) -> dict:
    return {
        "id": p.id,
        "title": p.title,
        "content": p.content,
        "author_id": p.author_id,
        "author_name": p.author.full_name if p.author else None,
        "author_role": p.author.role if p.author else None,
        "community_code": p.community.community_code if p.community else None,
        "created_at": iso(p.created_at),
        "can_delete": can_delete(g.current_user, p),
    }


def make_blueprint(name: str) -> Blueprint:
    """Posts are served under both /posts and /api/posts; each mount needs its own blueprint name."""
    bp = Blueprint(name, __name__)

    @bp.post("/")
    @require_permission("posts.create")
    def post_post():
        s = db_session()
        data = json_body()
        post = create_post(
            s,
            g.current_user,
            title=str(data.get("title") or ""),
            content=str(data.get("content") or ""),
        )
        s.commit()
        return _post_payload(post), 201

    @bp.get("/community/<code>")
    @require_permission("posts.view")
    def list_community_posts(code: str):
        page, size = page_args()
        return paginate(community_posts_query(db_session(), g.current_user, code), page, size, _post_payload)

    @bp.delete("/<int:post_id>")
    @require_permission("posts.delete")
    def remove_post(post_id: int):
        s = db_session()
        delete_post(s, g.current_user, post_id)
        s.commit()
        return {"ok": True}

    return bp


bp = make_blueprint("posts")
api_bp = make_blueprint("api_posts")
