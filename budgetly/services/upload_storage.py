# budgetly/services/upload_storage.py
"""
Upload handling: validate an incoming invoice file, write it to disk and
create its pending UploadRecord.

The file write and the record insert are one unit: a failed write commits
nothing, and a failed commit removes the file again.
"""

import hashlib
import mimetypes
import os
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from models import UploadRecord, UploadStatus
from budgetly.errors import StorageError, UploadRejected
from budgetly.log import get_logger

log = get_logger("budgetly.upload")

# Leading bytes of each allowed type
_MAGIC_PREFIXES = {
    "application/pdf": (b"%PDF-",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/gif": (b"GIF87a", b"GIF89a"),
}

_GENERIC_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def resolve_mime_type(filename: Optional[str], declared: Optional[str]) -> str:
    """
    Pick the MIME type to validate against: the declared one, or a guess from
    the filename when the client sent nothing useful.
    """
    mime = (declared or "").split(";")[0].strip().lower()
    if mime in _GENERIC_TYPES and filename:
        mime = (mimetypes.guess_type(filename)[0] or "").lower()
    if mime == "image/jpg":
        mime = "image/jpeg"
    return mime


def content_matches_type(content: bytes, mime_type: str) -> bool:
    if mime_type == "image/webp":
        return content[:4] == b"RIFF" and content[8:12] == b"WEBP"
    prefixes = _MAGIC_PREFIXES.get(mime_type)
    if prefixes is None:
        return False
    return content.startswith(prefixes)


def validate_upload(filename: Optional[str], declared_type: Optional[str], content: bytes) -> str:
    """
    Check size, type and content of one upload.
    Returns the resolved MIME type, raises UploadRejected otherwise.
    """
    if not filename:
        raise UploadRejected("No filename provided", code="missing_filename")

    size = len(content)
    if size == 0:
        raise UploadRejected("File is empty", code="empty_file")

    max_bytes = config.MAX_UPLOAD_BYTES
    if size > max_bytes:
        raise UploadRejected(
            f"File size exceeds the {max_bytes // (1024 * 1024)} MB limit",
            status_code=413,
            code="file_too_large",
        )

    mime_type = resolve_mime_type(filename, declared_type)
    if mime_type not in config.ALLOWED_MIME_TYPES:
        allowed = ", ".join(sorted(config.ALLOWED_MIME_TYPES))
        raise UploadRejected(
            f"Unsupported file type {mime_type or 'unknown'!r}; allowed: {allowed}",
            status_code=415,
            code="unsupported_media_type",
        )

    if not content_matches_type(content, mime_type):
        raise UploadRejected(
            f"File content does not look like {mime_type}",
            status_code=415,
            code="unsupported_media_type",
        )

    return mime_type


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        log.error(f"[upload] Could not remove orphaned file {path}: {e!r}")


def store_upload(
    db: Session,
    filename: Optional[str],
    declared_type: Optional[str],
    content: bytes,
) -> UploadRecord:
    """
    Validate, store bytes under config.UPLOAD_DIR and create a pending UploadRecord.
    """
    mime_type = validate_upload(filename, declared_type, content)

    record_id = uuid.uuid4()
    upload_dir = os.path.abspath(config.UPLOAD_DIR)
    storage_path = os.path.join(upload_dir, f"{record_id}{config.ALLOWED_MIME_TYPES[mime_type]}")

    # Store bytes first; nothing is in the database yet
    try:
        os.makedirs(upload_dir, exist_ok=True)
        with open(storage_path, "wb") as f:
            f.write(content)
    except OSError as e:
        _remove_quietly(storage_path)
        log.error(f"[upload] Could not write {storage_path}: {e!r}")
        raise StorageError(f"Could not store uploaded file: {e}") from e

    record = UploadRecord(
        id=record_id,
        original_filename=os.path.basename(filename)[:255],
        storage_path=storage_path,
        size_bytes=len(content),
        mime_type=mime_type,
        sha256=hashlib.sha256(content).hexdigest(),
        status=UploadStatus.PENDING.value,
    )

    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        _remove_quietly(storage_path)
        log.error(f"[upload] Database insert failed for {filename!r}: {e!r}")
        raise StorageError("Could not save upload record") from e

    db.refresh(record)
    log.info(f"[upload] Stored {record.original_filename!r} ({record.size_bytes} bytes) as invoice {record.id}")
    return record


def delete_stored_file(path: str) -> None:
    """Remove an invoice's stored bytes; a missing file is not an error."""
    _remove_quietly(path)
