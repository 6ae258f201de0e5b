from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from sqlalchemy import extract

from app.micomunity.audit import record_event
from app.micomunity.constants import ROLE_PRESIDENT
from app.micomunity.errors import NotFound, PermissionDenied, ValidationError
from app.micomunity.models import User
from app.micomunity.modules.community.service import require_community
from app.micomunity.modules.documents.models import Document, DocumentFile
from app.micomunity.utils import StoredUpload, local_now

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ("MINUTES", "NOTICE", "INVOICE", "BUDGET", "OTHER")
COMMENT_MAX = 1000


def normalize_doc_type(value: str | None) -> str:
    doc_type = (value or "").strip().upper()
    if doc_type not in DOCUMENT_TYPES:
        raise ValidationError(
            f"Unknown document type: {value!r}",
            details={"allowed": list(DOCUMENT_TYPES)},
        )
    return doc_type


def can_delete(user: User, document: Document) -> bool:
    return user.role == ROLE_PRESIDENT and document.author_id == user.id


def publish_document(
    s: "Session",
    user: User,
    *,
    comment: str,
    doc_type: str,
    uploads: Iterable[StoredUpload],
) -> Document:
    if user.role != ROLE_PRESIDENT:
        raise PermissionDenied("Only the president can publish documents.")
    community = require_community(user)
    doc_type = normalize_doc_type(doc_type)
    comment = (comment or "").strip()
    if len(comment) > COMMENT_MAX:
        raise ValidationError(f"Comment must be at most {COMMENT_MAX} characters.")
    uploads = list(uploads)
    if not uploads:
        raise ValidationError("At least one file must be attached.")

    document = Document(
        comment=comment,
        doc_type=doc_type,
        published_at=local_now(),
        author_id=user.id,
        community_id=community.id,
    )
    for up in uploads:
        document.files.append(
            DocumentFile(
                storage_key=up.storage_key,
                filename=up.filename,
                content_type=up.content_type,
                sha256=up.sha256,
                size_bytes=up.size_bytes,
            )
        )
    s.add(document)
    s.flush()

    record_event(
        s,
        actor=user,
        action="document.publish",
        entity_type="Document",
        entity_id=str(document.id),
        metadata={"doc_type": doc_type, "files": [u.filename for u in uploads]},
    )
    logger.info("Document %s (%s) published by %s with %d file(s)", document.id, doc_type, user.email, len(uploads))
    return document


def documents_query(
    s: "Session",
    user: User,
    doc_type: str,
    *,
    day: int | None = None,
    month: int | None = None,
    year: int | None = None,
) -> "Query":
    community = require_community(user)
    q = s.query(Document).filter(
        Document.community_id == community.id,
        Document.doc_type == normalize_doc_type(doc_type),
    )
    if day is not None:
        q = q.filter(extract("day", Document.published_at) == day)
    if month is not None:
        q = q.filter(extract("month", Document.published_at) == month)
    if year is not None:
        q = q.filter(extract("year", Document.published_at) == year)
    return q.order_by(Document.published_at.desc(), Document.id.desc())


def delete_document(s: "Session", user: User, document_id: int) -> list[str]:
    """Delete a document; returns the storage keys of its files."""
    document = s.get(Document, document_id)
    if not document:
        raise NotFound("Document not found.")
    if not can_delete(user, document):
        raise PermissionDenied("You do not have permission to delete this document.")

    keys = [f.storage_key for f in document.files]
    record_event(
        s,
        actor=user,
        action="document.delete",
        entity_type="Document",
        entity_id=str(document.id),
        metadata={"doc_type": document.doc_type, "files": len(keys)},
    )
    s.delete(document)
    return keys


def get_file_for_download(s: "Session", user: User, storage_key: str) -> DocumentFile:
    f = s.query(DocumentFile).filter(DocumentFile.storage_key == storage_key).one_or_none()
    if not f or f.document.community_id != user.community_id:
        raise NotFound("File not found.")
    return f
