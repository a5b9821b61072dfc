# schemas.py
# Role: Pydantic request/response shapes for the JSON API.

import datetime as dt
import uuid
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    color: Optional[str] = None
    icon: Optional[str] = None


class EntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invoice_id: uuid.UUID
    line_number: int
    date: dt.date
    description: str
    amount: Decimal
    category: Optional[str] = None
    edited: bool
    created_at: dt.datetime
    updated_at: dt.datetime


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    original_filename: str
    size_bytes: int
    mime_type: str
    sha256: str
    status: str
    error_message: Optional[str] = None
    entry_count: int = 0
    created_at: dt.datetime
    updated_at: dt.datetime
    processed_at: Optional[dt.datetime] = None
    confirmed_at: Optional[dt.datetime] = None


class InvoiceDetailOut(InvoiceOut):
    transactions: List[EntryOut] = []


class InvoiceListOut(BaseModel):
    items: List[InvoiceOut]
    total: int
    limit: int
    offset: int


class EntryUpdate(BaseModel):
    """
    Partial edit of one extracted entry. Only the fields sent are changed;
    `category: null` clears the label.
    """

    model_config = ConfigDict(extra="forbid")

    date: Optional[dt.date] = None
    description: Optional[str] = Field(default=None, max_length=500)
    amount: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    category: Optional[str] = None


class HealthOut(BaseModel):
    status: str
    version: str
    service: str
