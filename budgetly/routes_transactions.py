# routes_transactions.py
"""
Routes for editing and deleting single extracted transactions.
"""

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from schemas import EntryOut, EntryUpdate
from budgetly.deps import get_db
from budgetly.services.review import delete_entry, update_entry

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.put("/{entry_id}", response_model=EntryOut)
def transaction_update(
    entry_id: uuid.UUID,
    payload: EntryUpdate,
    db: Session = Depends(get_db),
):
    """
    Edit date, description, amount or category. Sets the edited flag.
    Refused once the invoice is confirmed.
    """
    entry = update_entry(db, entry_id, payload.model_dump(exclude_unset=True))
    return EntryOut.model_validate(entry)


@router.delete("/{entry_id}", status_code=204)
def transaction_delete(entry_id: uuid.UUID, db: Session = Depends(get_db)):
    delete_entry(db, entry_id)
    return Response(status_code=204)
