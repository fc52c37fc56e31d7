from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from app.errors import NotFoundError, PermissionDeniedError, ValidationError, api_response
from app.repositories import bookmarks_repo, content_repo
from app.services import storage

from . import bool_arg, current_user_id, int_arg, page_args, paginated

bp = Blueprint("documents", __name__, url_prefix="/api/documents")


def _can_open_premium() -> bool:
    return current_user.is_authenticated and (current_user.is_premium or current_user.is_admin)


@bp.get("")
def list_documents():
    page, limit, offset = page_args()
    sort = request.args.get("sort", "newest")
    if sort not in content_repo.DOCUMENT_SORTS:
        raise ValidationError("Sort must be newest, popular or title.", {"sort": "invalid"})
    items, total = content_repo.list_documents(
        subject=request.args.get("subject") or None,
        grade=int_arg("grade"),
        search=(request.args.get("search") or "").strip() or None,
        tag=request.args.get("tag") or None,
        is_premium=bool_arg("premium"),
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return api_response(paginated(items, total, page, limit))


@bp.get("/<document_id>")
def get_document(document_id: str):
    document = content_repo.fetch_document(document_id)
    if document is None:
        raise NotFoundError("Document not found.")
    user_id = current_user_id()
    document["is_bookmarked"] = bool(user_id) and bookmarks_repo.is_bookmarked(user_id, document_id, "document")
    return api_response(document)


@bp.get("/<document_id>/download")
@login_required
def download_document(document_id: str):
    document = content_repo.fetch_document(document_id)
    if document is None:
        raise NotFoundError("Document not found.")
    if document.get("is_premium") and not _can_open_premium():
        raise PermissionDeniedError("Premium subscription required to download this document.")

    url = storage.download_url(document.get("file_url"))
    if url is None:
        raise NotFoundError("This document has no file attached.")
    updated = content_repo.increment_document_downloads(document_id) or document
    return api_response({"download_url": url, "downloads": updated.get("downloads", 0)})
