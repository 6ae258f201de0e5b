from flask import Blueprint, current_app, g, request
from flask_sock import Sock
from simple_websocket import ConnectionClosed

from app.micomunity.constants import ROLE_ADMIN
from app.micomunity.db import db_session, session_scope
from app.micomunity.modules.chat.service import (
    ChatConnection,
    ChatHub,
    count_messages,
    delete_message,
    history,
    message_frame,
)
from app.micomunity.rbac import require_permission
from app.micomunity.utils import local_now, parse_int

bp = Blueprint("chat", __name__)
ws_bp = Blueprint("chat_ws", __name__)
sock = Sock()


def chat_hub() -> ChatHub:
    return current_app.extensions["chat_hub"]


def run_chat_session(ws) -> None:
    """Serve one socket until the client closes it."""
    app = current_app._get_current_object()
    hub = chat_hub()
    user = getattr(g, "current_user", None)
    conn = ChatConnection(
        ws=ws,
        remote_addr=request.remote_addr,
        user_name=user.full_name if user else None,
        community_id=user.community_id if user else None,
    )
    with session_scope(app) as s:
        hub.connect(conn, s)
    try:
        while True:
            data = ws.receive()
            if data is None:
                continue
            with session_scope(app) as s:
                hub.receive(conn, data, s)
    except ConnectionClosed:
        pass
    finally:
        hub.disconnect(conn)


@sock.route("/ws/chat", bp=ws_bp)
def chat_socket(ws):
    run_chat_session(ws)


@bp.get("/history")
def get_history():
    default = current_app.config["CHAT_HISTORY_LIMIT"]
    limit = parse_int(request.args.get("limit"), "limit", default=default) or default
    limit = max(1, min(limit, 500))
    return {"messages": [message_frame(m) for m in history(db_session(), limit)]}


@bp.get("/stats")
@require_permission("chat.stats")
def get_stats():
    user = g.current_user
    community_id = None if user.role == ROLE_ADMIN else user.community_id
    return {
        "total_messages": count_messages(db_session(), community_id),
        "connected_sessions": chat_hub().connection_count(community_id),
        "timestamp": int(local_now().timestamp() * 1000),
    }


@bp.delete("/messages/<int:message_id>")
@require_permission("chat.moderate")
def remove_message(message_id: int):
    s = db_session()
    delete_message(s, message_id)
    s.commit()
    return {"ok": True, "message": "Message deleted."}


@bp.get("/status")
def get_status():
    return {
        "active": True,
        "endpoint": "/ws/chat",
        "history_available": True,
        "total_messages": count_messages(db_session()),
        "connected_sessions": len(chat_hub()),
    }
