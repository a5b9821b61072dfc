# budgetly/services/review.py
"""
Review / confirm operations on extracted entries.

Entries stay editable until their invoice is confirmed; after that every
change is refused with InvoiceConfirmed.
"""

import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import ExtractedEntry, UploadRecord, UploadStatus, utcnow
from budgetly.errors import InvalidEdit, InvalidStatusTransition, InvoiceConfirmed, NotFound
from budgetly.log import get_logger
from budgetly.services.categories import build_lookup, category_names, match_category
from budgetly.services.extraction import get_invoice_or_404
from budgetly.services.upload_storage import delete_stored_file

log = get_logger("budgetly.review")

# Fields an edit may change but never clear
_REQUIRED_FIELDS = ("date", "description", "amount")


# ---- Queries ----

def list_invoices(
    db: Session,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[UploadRecord], int]:
    query = db.query(UploadRecord)
    if status:
        query = query.filter(UploadRecord.status == status)

    total = query.with_entities(func.count(UploadRecord.id)).scalar() or 0
    items = (
        query.order_by(UploadRecord.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, int(total)


def list_entries(db: Session, invoice_id: uuid.UUID) -> List[ExtractedEntry]:
    get_invoice_or_404(db, invoice_id)
    return (
        db.query(ExtractedEntry)
        .filter(ExtractedEntry.invoice_id == invoice_id)
        .order_by(ExtractedEntry.line_number)
        .all()
    )


def get_entry_or_404(db: Session, entry_id: uuid.UUID) -> ExtractedEntry:
    entry = db.get(ExtractedEntry, entry_id)
    if entry is None:
        raise NotFound(f"Transaction {entry_id} not found")
    return entry


def _ensure_editable(entry: ExtractedEntry) -> None:
    if entry.invoice.is_confirmed:
        raise InvoiceConfirmed(
            f"Invoice {entry.invoice_id} was confirmed at {entry.invoice.confirmed_at:%Y-%m-%d %H:%M}; "
            "its transactions can no longer change"
        )


# ---- Mutations ----

def update_entry(db: Session, entry_id: uuid.UUID, changes: Dict[str, Any]) -> ExtractedEntry:
    """
    Apply a partial edit (already shape-checked by EntryUpdate) and mark the
    entry as edited.
    """
    entry = get_entry_or_404(db, entry_id)
    _ensure_editable(entry)

    if not changes:
        raise InvalidEdit("Nothing to update")

    for field in _REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            raise InvalidEdit(f"'{field}' cannot be null")

    if "description" in changes:
        description = " ".join(str(changes["description"]).split())
        if not description:
            raise InvalidEdit("'description' cannot be empty")
        changes["description"] = description

    if "category" in changes and changes["category"] is not None:
        category = match_category(changes["category"], build_lookup(category_names(db)))
        if category is None:
            raise InvalidEdit(f"Unknown category {changes['category']!r}")
        changes["category"] = category

    for field, value in changes.items():
        setattr(entry, field, value)
    entry.edited = True

    db.commit()
    db.refresh(entry)
    log.info(f"[review] Edited transaction {entry.id} ({', '.join(sorted(changes))})")
    return entry


def delete_entry(db: Session, entry_id: uuid.UUID) -> None:
    entry = get_entry_or_404(db, entry_id)
    _ensure_editable(entry)

    invoice_id = entry.invoice_id
    db.delete(entry)
    db.commit()
    log.info(f"[review] Deleted transaction {entry_id} from invoice {invoice_id}")


def confirm_invoice(db: Session, invoice_id: uuid.UUID) -> UploadRecord:
    """
    Freeze the entries of a processed invoice. Only done, unconfirmed invoices
    can be confirmed.
    """
    record = get_invoice_or_404(db, invoice_id)

    if record.status != UploadStatus.DONE.value:
        raise InvalidStatusTransition(
            f"Invoice {record.id} is {record.status!r}; only processed invoices can be confirmed"
        )
    if record.is_confirmed:
        raise InvoiceConfirmed(f"Invoice {record.id} is already confirmed")

    record.confirmed_at = utcnow()
    db.commit()
    db.refresh(record)
    log.info(f"[review] Confirmed invoice {record.id} ({record.entry_count} transactions)")
    return record


def delete_invoice(db: Session, invoice_id: uuid.UUID) -> None:
    """
    Remove an invoice, its entries (cascade) and its stored file.
    Refused while an extraction holds the processing lease and once the
    invoice is confirmed.
    """
    record = get_invoice_or_404(db, invoice_id)
    if record.status == UploadStatus.PROCESSING.value:
        raise InvalidStatusTransition(f"Invoice {record.id} is being processed; try again later")
    if record.is_confirmed:
        raise InvoiceConfirmed(f"Invoice {record.id} is confirmed; its transactions can no longer change")

    storage_path = record.storage_path
    db.delete(record)
    db.commit()
    delete_stored_file(storage_path)
    log.info(f"[review] Deleted invoice {invoice_id}")
