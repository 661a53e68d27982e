from __future__ import annotations

from flask import Blueprint, abort, send_from_directory

from sectorstock.components import get_collaborators
from sectorstock.storage import LocalBlobStore


bp = Blueprint("files", __name__, url_prefix="/files")


@bp.route("/<path:key>")
def download(key: str):
    blob_store = get_collaborators().blob_store
    if not isinstance(blob_store, LocalBlobStore):
        abort(404)
    response = send_from_directory(blob_store.root, key)
    # Stored blobs come from anonymous signers; never let a browser run them as a page.
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Content-Security-Policy"] = "default-src 'none'; sandbox"
    return response
