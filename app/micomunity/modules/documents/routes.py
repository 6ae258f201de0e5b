from flask import Blueprint, current_app, g, request, url_for

from app.micomunity.db import db_session
from app.micomunity.errors import ValidationError
from app.micomunity.modules.documents.models import Document
from app.micomunity.modules.documents.service import (
    can_delete,
    delete_document,
    documents_query,
    get_file_for_download,
    normalize_doc_type,
    publish_document,
)
from app.micomunity.rbac import require_permission
from app.micomunity.utils import (
    delete_stored_file,
    has_upload,
    iso,
    page_args,
    paginate,
    parse_int,
    send_stored_file,
    store_upload,
)

bp = Blueprint("documents", __name__)


def _document_payload(d: Document) -> dict:
    return {
        "id": d.id,
        "comment": d.comment,
        "type": d.doc_type,
        "published_at": iso(d.published_at),
        "author_name": d.author.full_name if d.author else None,
        "author_email": d.author.email if d.author else None,
        "files": [
            {
                "filename": f.filename,
                "content_type": f.content_type,
                "size_bytes": f.size_bytes,
                "url": url_for("documents.download", key=f.storage_key),
            }
            for f in d.files
        ],
        "can_delete": can_delete(g.current_user, d),
    }


@bp.post("/")
@require_permission("documents.publish")
def post_document():
    s = db_session()
    doc_type = normalize_doc_type(request.form.get("type"))
    files = [f for f in request.files.getlist("files") if has_upload(f)]
    if not files:
        raise ValidationError("At least one file must be attached.")

    stored = []
    try:
        for f in files:
            stored.append(
                store_upload(
                    f,
                    "documents",
                    allowed_extensions=current_app.config["DOCUMENT_ALLOWED_EXTENSIONS"],
                    max_size=current_app.config["DOCUMENT_MAX_FILE_SIZE"],
                )
            )
        document = publish_document(
            s,
            g.current_user,
            comment=request.form.get("comment", ""),
            doc_type=doc_type,
            uploads=stored,
        )
    except Exception:
        for up in stored:
            delete_stored_file(up.storage_key)
        raise
    s.commit()
    return _document_payload(document), 201


@bp.get("/")
@require_permission("documents.view")
def list_documents():
    s = db_session()
    page, size = page_args()
    q = documents_query(
        s,
        g.current_user,
        request.args.get("type", ""),
        day=parse_int(request.args.get("day"), "day"),
        month=parse_int(request.args.get("month"), "month"),
        year=parse_int(request.args.get("year"), "year"),
    )
    return paginate(q, page, size, _document_payload)


@bp.delete("/<int:document_id>")
@require_permission("documents.delete")
def remove_document(document_id: int):
    s = db_session()
    keys = delete_document(s, g.current_user, document_id)
    s.commit()
    for key in keys:
        delete_stored_file(key)
    return {"ok": True}


@bp.get("/download/<path:key>")
@require_permission("documents.view")
def download(key: str):
    f = get_file_for_download(db_session(), g.current_user, key)
    return send_stored_file(f.storage_key, download_name=f.filename, as_attachment=True)
