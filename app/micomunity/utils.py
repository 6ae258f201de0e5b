from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Callable

from flask import current_app, request, send_file
from sqlalchemy.orm import Query
from werkzeug.datastructures import FileStorage

from app.micomunity.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.micomunity.errors import NotFound, ValidationError
from app.micomunity.storage import (
    StorageError,
    file_extension,
    new_storage_key,
    sanitize_upload_filename,
    storage_from_config,
)

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    """Wall-clock time of the community (naive, server local time)."""
    return datetime.now()


def parse_date(s: Any, field: str = "date") -> date | None:
    """Parse YYYY-MM-DD date string."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError as e:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format.") from e


def parse_time(s: Any, field: str = "time") -> time | None:
    """Parse HH:MM (or HH:MM:SS) time string."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    try:
        t = time.fromisoformat(s)
    except ValueError as e:
        raise ValidationError(f"{field} must be a time in HH:MM format.") from e
    if t.tzinfo is not None:
        raise ValidationError(f"{field} must be a local time without offset.")
    return t


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def parse_int(value: Any, field: str, *, default: int | None = None) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be an integer.") from e


def json_body() -> dict:
    """Request JSON object (400 when the body is not a JSON object)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def form_or_json() -> dict:
    """Fields of a multipart/urlencoded form, or of a JSON body."""
    if request.form:
        return request.form.to_dict()
    return json_body()


def page_args() -> tuple[int, int]:
    """Zero-based page and size from the query string."""
    page = parse_int(request.args.get("page"), "page", default=0) or 0
    size = parse_int(request.args.get("size"), "size", default=DEFAULT_PAGE_SIZE) or DEFAULT_PAGE_SIZE
    if page < 0:
        page = 0
    if size < 1:
        size = DEFAULT_PAGE_SIZE
    return page, min(size, MAX_PAGE_SIZE)


def paginate(query: Query, page: int, size: int, serialize: Callable[[Any], dict]) -> dict:
    total = query.order_by(None).count()
    items = query.offset(page * size).limit(size).all()
    total_pages = math.ceil(total / size) if total else 0
    return {
        "content": [serialize(x) for x in items],
        "page": page,
        "size": size,
        "total_elements": total,
        "total_pages": total_pages,
        "first": page == 0,
        "last": page >= total_pages - 1,
    }


def read_upload(f: FileStorage) -> bytes:
    data = f.read()
    f.close()
    return data


@dataclass(frozen=True)
class StoredUpload:
    storage_key: str
    filename: str
    content_type: str
    size_bytes: int
    sha256: str


def has_upload(f: FileStorage | None) -> bool:
    return bool(f and f.filename)


def store_upload(
    f: FileStorage,
    area: str,
    *,
    allowed_extensions: tuple[str, ...] | list[str],
    max_size: int | None = None,
) -> StoredUpload:
    """Validate an uploaded file and write it to the configured storage."""
    filename = sanitize_upload_filename(f.filename or "")
    ext = file_extension(filename)
    if ext not in allowed_extensions:
        raise ValidationError(
            f"File type not allowed: {f.filename}",
            details={"allowed": list(allowed_extensions)},
        )
    data = read_upload(f)
    if not data:
        raise ValidationError(f"File is empty: {f.filename}")
    if max_size is not None and len(data) > max_size:
        raise ValidationError(f"File exceeds the maximum size of {max_size} bytes: {f.filename}")

    key = new_storage_key(area, filename)
    content_type = f.mimetype or "application/octet-stream"
    storage_from_config(current_app.config).put_bytes(key, data, content_type=content_type)
    return StoredUpload(
        storage_key=key,
        filename=filename,
        content_type=content_type,
        size_bytes=len(data),
        sha256=hashlib.sha256(data).hexdigest(),
    )


def delete_stored_file(storage_key: str | None) -> None:
    """Best-effort removal; the database row is the source of truth."""
    if not storage_key:
        return
    try:
        storage_from_config(current_app.config).delete(storage_key)
    except (StorageError, OSError):
        logger.warning("Could not delete stored file %s", storage_key, exc_info=True)


def send_stored_file(storage_key: str, *, download_name: str | None = None, as_attachment: bool = False):
    storage = storage_from_config(current_app.config)
    try:
        if not storage.exists(storage_key):
            raise NotFound("File not found.")
        fobj = storage.open(storage_key)
    except StorageError as e:
        raise NotFound("File not found.") from e
    return send_file(
        fobj,
        as_attachment=as_attachment,
        download_name=download_name or storage_key.rsplit("/", 1)[-1],
        max_age=0,
    )


def iso(value: date | datetime | time | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return value.isoformat()
