# budgetly/services/import_helpers.py
#
# Import Helper Functions
# Converts normalized entry dicts (from entry_parser) into ORM models.

import uuid
from datetime import datetime
from decimal import Decimal

import pandas as pd

from models import ExtractedEntry


def build_entry_from_dict(row: dict, invoice_id: uuid.UUID) -> ExtractedEntry:
    """
    Convert one normalized row from parse_extraction_response into an
    ExtractedEntry belonging to `invoice_id`. Fresh entries are never edited.
    """

    date_raw = row.get("date")
    if isinstance(date_raw, str):
        date_parsed = datetime.strptime(date_raw, "%Y-%m-%d").date()
    else:
        date_parsed = date_raw  # already a date object

    category = row.get("category")
    if category is None or pd.isna(category) or category == "":
        category = None

    amount = row["amount"]
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))

    return ExtractedEntry(
        invoice_id=invoice_id,
        line_number=int(row["line_number"]),
        date=date_parsed,
        description=row.get("description", ""),
        amount=amount,
        category=category,
        edited=False,
    )
