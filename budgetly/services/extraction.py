# budgetly/services/extraction.py
"""
Extraction orchestrator: run one invoice through the vision API and persist
the resulting entries.

Flow for process(invoice_id):
- take the lease: pending -> processing (conditional UPDATE, committed)
- read the stored file
- call the vision client, retrying transient failures with exponential backoff
- parse the answer into entry rows (all-or-nothing)
- insert entries and move to done in one transaction

Any failure after the lease moves the invoice to failed, stores the message
and raises ExtractionFailed / StorageError for the route to report.
"""

from __future__ import annotations

import time
import uuid
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from models import UploadRecord, UploadStatus, utcnow
from budgetly.errors import (
    ExtractionFailed,
    InvalidStatusTransition,
    MissingCredential,
    NotFound,
    PermanentUpstreamError,
    StorageError,
    TransientUpstreamError,
    UpstreamTimeoutError,
)
from budgetly.log import get_logger
from budgetly.services.categories import category_names
from budgetly.services.entry_parser import parse_extraction_response
from budgetly.services.import_helpers import build_entry_from_dict
from budgetly.services.vision_client import VisionClient

log = get_logger("budgetly.extraction")


def get_invoice_or_404(db: Session, invoice_id: uuid.UUID) -> UploadRecord:
    record = db.get(UploadRecord, invoice_id)
    if record is None:
        raise NotFound(f"Invoice {invoice_id} not found")
    return record


def acquire_processing_lease(db: Session, record: UploadRecord) -> None:
    """
    Move `record` from pending to processing, atomically.

    Only one caller can win: the UPDATE matches on status = 'pending', so a
    second concurrent request (or a retry of a finished invoice) updates no
    row and gets InvalidStatusTransition.
    """
    result = db.execute(
        update(UploadRecord)
        .where(
            UploadRecord.id == record.id,
            UploadRecord.status == UploadStatus.PENDING.value,
        )
        .values(status=UploadStatus.PROCESSING.value, error_message=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(record)
        raise InvalidStatusTransition(
            f"Invoice {record.id} is {record.status!r}; only pending invoices can be processed"
        )
    db.commit()
    db.refresh(record)


class ExtractionOrchestrator:
    """
    Runs extractions against an injected VisionClient.

    `sleep` is injectable so tests can record backoff delays instead of waiting.
    """

    def __init__(
        self,
        client: VisionClient,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        max_backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.max_attempts = max(1, max_attempts if max_attempts is not None else config.EXTRACTION_MAX_ATTEMPTS)
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else config.EXTRACTION_BACKOFF_SECONDS
        )
        self.max_backoff_seconds = (
            max_backoff_seconds if max_backoff_seconds is not None else config.EXTRACTION_MAX_BACKOFF_SECONDS
        )
        self.sleep = sleep

    # ---- Retry policy ----

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (1-based)."""
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.max_backoff_seconds)

    def _call_with_retries(
        self,
        record: UploadRecord,
        content: bytes,
        api_key: str,
        categories: List[str],
    ) -> str:
        attempt = 1
        while True:
            try:
                return self.client.extract(
                    content,
                    record.mime_type,
                    record.original_filename,
                    api_key,
                    categories,
                )
            except TransientUpstreamError as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.backoff_delay(attempt)
                log.warning(
                    f"[process] Invoice {record.id}: attempt {attempt}/{self.max_attempts} failed "
                    f"({e}); retrying in {delay:g}s"
                )
                self.sleep(delay)
                attempt += 1

    # ---- State changes ----

    def _mark_failed(self, db: Session, record: UploadRecord, message: str) -> None:
        db.rollback()
        db.refresh(record)
        record.transition_to(UploadStatus.FAILED)
        record.error_message = message
        record.processed_at = utcnow()
        db.commit()
        log.error(f"[process] Invoice {record.id} failed: {message}")

    def _read_file(self, db: Session, record: UploadRecord) -> bytes:
        try:
            with open(record.storage_path, "rb") as f:
                return f.read()
        except OSError as e:
            message = f"Stored file could not be read: {e.strerror or e}"
            self._mark_failed(db, record, message)
            raise StorageError(message) from e

    # ---- Entry point ----

    def process(self, db: Session, invoice_id: uuid.UUID, api_key: Optional[str]) -> UploadRecord:
        """
        Extract and persist the entries of one pending invoice.
        Returns the invoice in status done.
        """
        if not api_key or not api_key.strip():
            raise MissingCredential(f"Missing {config.API_KEY_HEADER} header")
        api_key = api_key.strip()

        record = get_invoice_or_404(db, invoice_id)
        acquire_processing_lease(db, record)
        log.info(f"[process] Invoice {record.id} ({record.original_filename!r}) -> processing")

        content = self._read_file(db, record)
        categories = category_names(db)

        try:
            raw_answer = self._call_with_retries(record, content, api_key, categories)
            rows = parse_extraction_response(raw_answer, categories)
        except UpstreamTimeoutError as e:
            message = f"{e} (gave up after {self.max_attempts} attempts)"
            self._mark_failed(db, record, message)
            raise ExtractionFailed(message, status_code=504, code="upstream_timeout") from e
        except TransientUpstreamError as e:
            message = f"{e} (gave up after {self.max_attempts} attempts)"
            self._mark_failed(db, record, message)
            raise ExtractionFailed(message) from e
        except PermanentUpstreamError as e:
            self._mark_failed(db, record, str(e))
            raise ExtractionFailed(str(e)) from e
        except Exception as e:
            # Never leave the lease behind, whatever went wrong
            self._mark_failed(db, record, f"Unexpected extraction error: {e!r}")
            raise

        try:
            entries = [build_entry_from_dict(row, record.id) for row in rows]
            db.add_all(entries)
            record.transition_to(UploadStatus.DONE)
            record.error_message = None
            record.processed_at = utcnow()
            db.commit()
        except SQLAlchemyError as e:
            message = f"Could not save extracted entries: {e.__class__.__name__}"
            self._mark_failed(db, record, message)
            raise StorageError(message) from e

        db.refresh(record)
        log.info(f"[process] Invoice {record.id} -> done ({len(entries)} entries)")
        return record
