"""Blob storage for transfer forms and signature artifacts.

Blobs are written below ``BLOB_STORAGE_FOLDER`` under a date-partitioned key
with a random suffix, and served back by the ``files`` blueprint.
"""

from __future__ import annotations

import logging
import mimetypes
import os
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote

from werkzeug.datastructures import FileStorage
from werkzeug.utils import safe_join

from sectorstock.errors import ConfigurationError, InvalidInput, StorageFailure


logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class StoredBlob:
    key: str
    url: str
    mime: str
    size: int


def sanitize_filename(filename: str) -> str:
    cleaned = _UNSAFE_NAME_CHARS.sub("-", filename or "").strip("-.")
    return cleaned or "upload"


def build_object_key(prefix: str, filename: str, *, now: datetime | None = None) -> str:
    safe_prefix = (prefix or "").strip("/")
    safe_prefix = f"{safe_prefix}/" if safe_prefix else ""
    partition = (now or datetime.utcnow()).strftime("%Y/%m/%d/")
    return f"{safe_prefix}{partition}{secrets.token_hex(8)}-{sanitize_filename(filename)}"


class LocalBlobStore:
    def __init__(self, root: str | None, public_url: str):
        if not root:
            raise ConfigurationError("BLOB_STORAGE_FOLDER is not configured.")
        self.root = os.path.abspath(root)
        self.public_url = public_url.rstrip("/")

    def url_for(self, key: str) -> str:
        return f"{self.public_url}/{quote(key)}"

    def path_for(self, key: str) -> str:
        path = safe_join(self.root, key)
        if path is None:
            raise InvalidInput("Invalid storage key.")
        return path

    def put(self, data: bytes, mime: str, filename: str, prefix: str = "inventory/") -> StoredBlob:
        key = build_object_key(prefix, filename)
        path = self.path_for(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "xb") as handle:
                handle.write(data)
        except OSError as exc:
            logger.exception("Failed to write blob %s", key)
            raise StorageFailure() from exc

        logger.info("Stored blob %s (%s, %d bytes)", key, mime, len(data))
        return StoredBlob(key=key, url=self.url_for(key), mime=mime, size=len(data))

    def delete(self, key: str) -> bool:
        try:
            os.remove(self.path_for(key))
        except FileNotFoundError:
            return False
        except OSError:
            logger.warning("Could not delete blob %s", key, exc_info=True)
            return False
        return True

    def exists(self, key: str) -> bool:
        return os.path.isfile(self.path_for(key))


@dataclass(frozen=True)
class UploadedFile:
    data: bytes
    mime: str
    filename: str


def _allowed_extension(filename: str, allowed: frozenset[str]) -> bool:
    if not filename or "." not in filename:
        return False
    return filename.rsplit(".", 1)[1].lower() in allowed


def read_upload(
    file_storage: FileStorage | None,
    *,
    allowed_extensions: frozenset[str],
    max_bytes: int,
) -> UploadedFile | None:
    """Validate a multipart upload and return its bytes.

    ``None`` means nothing was uploaded; anything uploaded but unusable is an
    :class:`InvalidInput`.
    """

    if file_storage is None or not file_storage.filename:
        return None

    filename = file_storage.filename
    if not _allowed_extension(filename, allowed_extensions):
        allowed_list = ", ".join(sorted(allowed_extensions)) if allowed_extensions else "(none)"
        raise InvalidInput(f"File not accepted. Allowed file types: {allowed_list}")

    stream = getattr(file_storage, "stream", None)
    if stream is None:
        raise InvalidInput("Temporary upload missing.")

    try:
        data = stream.read(max_bytes + 1)
    except OSError as exc:
        raise InvalidInput("Unable to read uploaded file.") from exc

    if not data:
        raise InvalidInput("The uploaded file is empty.")
    if len(data) > max_bytes:
        raise InvalidInput(
            f"The uploaded file is larger than {max_bytes // (1024 * 1024) or 1} MB."
        )

    # The stored type follows the accepted extension, not the client header.
    mime = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return UploadedFile(data=data, mime=mime, filename=filename)
