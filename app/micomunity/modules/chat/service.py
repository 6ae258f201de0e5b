"""
Chat hub for the ``/ws/chat`` socket.

Every open socket receives every message. The sender's community is stored on
each ``ChatMessage`` so stats and moderation can be scoped, but history and
broadcasts are shared by all connections.

Frames sent to clients are JSON objects::

    {"id": 1, "type": "message", "content": "...", "user_name": "...", "timestamp": "..."}

with ``type`` one of ``history``, ``message``, ``user_connected``,
``user_disconnected`` and ``error``.
"""
from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from app.micomunity.constants import DEFAULT_CHAT_NAME, SYSTEM_NAME
from app.micomunity.errors import NotFound, ValidationError
from app.micomunity.modules.chat.models import ChatMessage
from app.micomunity.utils import iso, local_now

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

TYPE_HISTORY = "history"
TYPE_MESSAGE = "message"
TYPE_USER_CONNECTED = "user_connected"
TYPE_USER_DISCONNECTED = "user_disconnected"
TYPE_ERROR = "error"

CONTENT_MAX = 2000
USER_NAME_MAX = 255


class Socket(Protocol):
    def send(self, data: str) -> None: ...


@dataclass
class ChatConnection:
    ws: Socket
    remote_addr: str | None = None
    user_name: str | None = None
    community_id: int | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


def frame(
    type_: str,
    content: str,
    *,
    user_name: str = SYSTEM_NAME,
    message_id: int | None = None,
    timestamp: datetime | None = None,
) -> dict:
    return {
        "id": message_id,
        "type": type_,
        "content": content,
        "user_name": user_name,
        "timestamp": iso(timestamp or local_now()),
    }


def message_frame(m: ChatMessage, type_: str = TYPE_MESSAGE) -> dict:
    return frame(type_, m.content, user_name=m.user_name, message_id=m.id, timestamp=m.timestamp)


def parse_incoming(payload: str | bytes, default_name: str | None = None) -> tuple[str, str]:
    """
    Returns (content, user_name) of a client frame.

    JSON objects carry ``content`` and optionally ``user_name``; anything not
    starting with ``{`` is plain text.
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError("Message must be UTF-8 text.") from e
    text = (payload or "").strip()
    name = default_name or DEFAULT_CHAT_NAME
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError("Malformed JSON message.") from e
        if not isinstance(data, dict):
            raise ValidationError("Malformed JSON message.")
        content = str(data.get("content") or "").strip()
        if not default_name:
            name = str(data.get("user_name") or "").strip() or DEFAULT_CHAT_NAME
    else:
        content = text
    if not content:
        raise ValidationError("Message content is empty.")
    if len(content) > CONTENT_MAX:
        raise ValidationError(f"Message must be at most {CONTENT_MAX} characters.")
    return content, name[:USER_NAME_MAX]


def save_message(
    s: "Session",
    content: str,
    user_name: str | None,
    source_ip: str | None,
    community_id: int | None,
) -> ChatMessage:
    m = ChatMessage(
        content=content,
        user_name=user_name or DEFAULT_CHAT_NAME,
        source_ip=source_ip,
        community_id=community_id,
        timestamp=local_now(),
    )
    s.add(m)
    s.flush()
    logger.debug("Chat message %s saved from %s", m.id, source_ip)
    return m


def history(s: "Session", limit: int) -> list[ChatMessage]:
    """Latest ``limit`` messages, oldest first."""
    latest = (
        s.query(ChatMessage)
        .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
        .limit(max(limit, 0))
        .all()
    )
    latest.reverse()
    return latest


def count_messages(s: "Session", community_id: int | None = None) -> int:
    q = s.query(ChatMessage)
    if community_id is not None:
        q = q.filter(ChatMessage.community_id == community_id)
    return q.count()


def delete_message(s: "Session", message_id: int) -> None:
    m = s.get(ChatMessage, message_id)
    if not m:
        raise NotFound("Message not found.")
    s.delete(m)
    logger.info("Chat message %s deleted", message_id)


class ChatHub:
    """Thread-safe registry of open chat sockets."""

    def __init__(self, history_limit: int = 50) -> None:
        self.history_limit = history_limit
        self._connections: dict[str, ChatConnection] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def connection_count(self, community_id: int | None = None) -> int:
        with self._lock:
            if community_id is None:
                return len(self._connections)
            return sum(1 for c in self._connections.values() if c.community_id == community_id)

    def connect(self, conn: ChatConnection, s: "Session") -> None:
        with self._lock:
            self._connections[conn.id] = conn
        logger.info("Chat socket %s connected from %s", conn.id, conn.remote_addr)
        for m in history(s, self.history_limit):
            self._send(conn, message_frame(m, TYPE_HISTORY))
        self.broadcast(frame(TYPE_USER_CONNECTED, "A user has joined the chat"), exclude=conn.id)

    def receive(self, conn: ChatConnection, payload: str | bytes, s: "Session") -> ChatMessage | None:
        try:
            content, name = parse_incoming(payload, conn.user_name)
        except ValidationError as e:
            logger.info("Rejected chat frame from %s: %s", conn.id, e.message)
            self._send(conn, frame(TYPE_ERROR, "Error processing the message"))
            return None
        m = save_message(s, content, name, conn.remote_addr, conn.community_id)
        s.commit()
        self.broadcast(message_frame(m))
        return m

    def disconnect(self, conn: ChatConnection) -> None:
        with self._lock:
            removed = self._connections.pop(conn.id, None)
        if removed is None:
            return
        logger.info("Chat socket %s disconnected", conn.id)
        self.broadcast(frame(TYPE_USER_DISCONNECTED, "A user has left the chat"))

    def broadcast(self, event: dict[str, Any], *, exclude: str | None = None) -> None:
        with self._lock:
            targets = [c for c in self._connections.values() if c.id != exclude]
        for c in targets:
            if not self._send(c, event):
                with self._lock:
                    self._connections.pop(c.id, None)

    def _send(self, conn: ChatConnection, event: dict[str, Any]) -> bool:
        try:
            conn.ws.send(json.dumps(event))
            return True
        except Exception as e:  # closed sockets raise library-specific errors
            logger.warning("Dropping chat socket %s: %s", conn.id, e)
            return False
