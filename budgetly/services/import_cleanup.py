# budgetly/services/import_cleanup.py
# Role: Startup housekeeping.
#       Fails extractions whose lease was abandoned and removes stored
#       upload files that no invoice points at.

import os
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

import config
from models import UploadRecord, UploadStatus, utcnow
from budgetly.log import get_logger

log = get_logger("budgetly.cleanup")


def _is_stored_upload_name(name: str) -> bool:
    """True for names store_upload writes: <uuid><allowed extension>."""
    stem, ext = os.path.splitext(name)
    if ext not in set(config.ALLOWED_MIME_TYPES.values()):
        return False
    try:
        return str(uuid.UUID(stem)) == stem
    except ValueError:
        return False


def fail_stale_processing(db: Session, minutes: Optional[int] = None) -> int:
    """
    Mark invoices stuck in "processing" for longer than `minutes` as failed.
    A lease that old belongs to a request that died mid-extraction.
    Returns the number of invoices changed.
    """
    minutes = config.PROCESSING_LEASE_MINUTES if minutes is None else minutes
    cutoff = utcnow() - timedelta(minutes=minutes)
    stale = (
        db.query(UploadRecord)
        .filter(
            UploadRecord.status == UploadStatus.PROCESSING.value,
            UploadRecord.updated_at < cutoff,
        )
        .all()
    )

    if not stale:
        return 0

    for record in stale:
        record.transition_to(UploadStatus.FAILED)
        record.error_message = f"Processing did not finish within {minutes} minutes"
        record.processed_at = utcnow()
    db.commit()

    log.warning(f"[cleanup] Marked {len(stale)} abandoned extraction(s) as failed")
    return len(stale)


def remove_orphaned_files(db: Session, upload_dir: Optional[str] = None) -> int:
    """
    Delete stored upload files (<uuid><ext>) that no invoice points at
    (left behind by a crash between writing bytes and committing the record).
    Any other file in the directory is left alone.
    Returns the number of files removed.
    """
    upload_dir = os.path.abspath(upload_dir or config.UPLOAD_DIR)
    if not os.path.isdir(upload_dir):
        return 0

    known = {os.path.abspath(path) for (path,) in db.query(UploadRecord.storage_path).all()}

    removed = 0
    for name in os.listdir(upload_dir):
        path = os.path.join(upload_dir, name)
        if not _is_stored_upload_name(name) or not os.path.isfile(path) or path in known:
            continue
        try:
            os.remove(path)
        except OSError as e:
            log.error(f"[cleanup] Could not remove orphaned file {path}: {e!r}")
            continue
        removed += 1

    if removed:
        log.info(f"[cleanup] Removed {removed} orphaned upload file(s)")
    return removed
