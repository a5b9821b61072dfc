# routes_invoices.py
"""
Routes for the invoice upload → process → review → confirm flow.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from sqlalchemy.orm import Session

import config
from models import UploadRecord, UploadStatus
from schemas import EntryOut, InvoiceDetailOut, InvoiceListOut, InvoiceOut
from budgetly.deps import get_db, get_orchestrator, get_vision_api_key
from budgetly.services.extraction import ExtractionOrchestrator, get_invoice_or_404
from budgetly.services.review import confirm_invoice, delete_invoice, list_entries, list_invoices
from budgetly.services.upload_storage import store_upload

router = APIRouter(prefix="/invoices", tags=["invoices"])


def invoice_detail(record: UploadRecord) -> InvoiceDetailOut:
    return InvoiceDetailOut(
        **InvoiceOut.model_validate(record).model_dump(),
        transactions=[EntryOut.model_validate(entry) for entry in record.entries],
    )


# -------------------------------------------------------------------
# Step 1 – upload an invoice file
# -------------------------------------------------------------------

@router.post("/upload", response_model=InvoiceOut, status_code=201)
async def upload_invoice(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    """
    Store one invoice image/PDF and create its pending record.

    Rejected with 400/413/415 (and nothing stored) when the file is empty,
    too large, or not an allowed type.
    """
    # Read one byte past the limit so oversized files are detected without
    # pulling them fully into memory
    content = await file.read(config.MAX_UPLOAD_BYTES + 1)
    record = store_upload(db, file.filename, file.content_type, content)
    return InvoiceOut.model_validate(record)


# -------------------------------------------------------------------
# Step 2 – run extraction through the vision API
# -------------------------------------------------------------------

@router.post("/{invoice_id}/process", response_model=InvoiceDetailOut)
def process_invoice(
    invoice_id: uuid.UUID,
    api_key: Optional[str] = Depends(get_vision_api_key),
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
    db: Session = Depends(get_db),
):
    """
    Send the stored file to the vision API and save the extracted transactions.

    The API key comes from the request header and is used for this call only.
    """
    record = orchestrator.process(db, invoice_id, api_key)
    return invoice_detail(record)


# -------------------------------------------------------------------
# Step 3 – review
# -------------------------------------------------------------------

@router.get("", response_model=InvoiceListOut)
def invoices_list(
    status: Optional[UploadStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = list_invoices(db, status.value if status else None, limit, offset)
    return InvoiceListOut(
        items=[InvoiceOut.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{invoice_id}", response_model=InvoiceDetailOut)
def invoice_get(invoice_id: uuid.UUID, db: Session = Depends(get_db)):
    return invoice_detail(get_invoice_or_404(db, invoice_id))


@router.get("/{invoice_id}/transactions", response_model=List[EntryOut])
def invoice_transactions(invoice_id: uuid.UUID, db: Session = Depends(get_db)):
    return [EntryOut.model_validate(entry) for entry in list_entries(db, invoice_id)]


# -------------------------------------------------------------------
# Step 4 – confirm (entries become read-only)
# -------------------------------------------------------------------

@router.post("/{invoice_id}/confirm", response_model=InvoiceDetailOut)
def invoice_confirm(invoice_id: uuid.UUID, db: Session = Depends(get_db)):
    return invoice_detail(confirm_invoice(db, invoice_id))


@router.delete("/{invoice_id}", status_code=204)
def invoice_delete(invoice_id: uuid.UUID, db: Session = Depends(get_db)):
    """
    Delete an invoice with its transactions and stored file.
    """
    delete_invoice(db, invoice_id)
    return Response(status_code=204)
