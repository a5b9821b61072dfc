# budgetly/services/entry_parser.py
"""
Turn the vision model's answer into normalized entry dicts.

Expected answer (JSON, possibly wrapped in ``` fences):

    {"transactions": [
        {"date": "2024-03-15", "description": "MERCADO X", "amount": -123.45, "category": "Groceries"},
        ...
    ]}

A bare list of transactions is accepted too. Rows are normalized the same way
for every invoice:
- date: ISO, or day-first "15/03/2024", "15.03.2024", "15-03-2024"
- amount: number, or a locale formatted string like "R$ 1.234,56" / "-1,234.56";
  a lone separator followed by three digits ("R$ 1.234") is digit grouping
  and anything with sub-cent digits is rejected
- description: stripped, capped at 500 chars
- category: matched case-insensitively against the known names, else None

If any row is invalid the whole answer is rejected (MalformedExtractionError).
"""

from __future__ import annotations

import json
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from budgetly.errors import MalformedExtractionError
from budgetly.services.categories import build_lookup, match_category

_JSON_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)
_AMOUNT_JUNK_RE = re.compile(r"[^0-9,.\-]")

DESCRIPTION_MAX_LEN = 500

# Tried in order; ISO first so "2024-03-05" is never read day-first
DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y", "%d-%m-%Y", "%d/%m/%y")

_CENTS = Decimal("0.01")

# Exclusive bound of transactions.amount, Numeric(12, 2)
AMOUNT_LIMIT = Decimal(10) ** 10


def _strip_json_fences(s: str) -> str:
    # Removes leading/trailing ```json fences if the model includes them.
    return _JSON_FENCE_RE.sub("", s).strip()


def _clean_text(s: Any, max_len: int = DESCRIPTION_MAX_LEN) -> str:
    if s is None or (isinstance(s, float) and pd.isna(s)):
        return ""
    t = " ".join(str(s).split())
    if len(t) > max_len:
        t = t[: max_len - 1].rstrip() + "…"
    return t


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Convert a number or a formatted money string into a 2-place Decimal.

    "R$ 1.234,56" -> 1234.56, "-1,234.56" -> -1234.56, "−50,00" -> -50.00.
    Returns None when nothing usable is found.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if pd.isna(value):
            return None
        s = str(value)
    else:
        s = str(value).strip()
        # Unicode minus and accounting-style "(12,00)"
        s = s.replace("−", "-")
        negative = s.startswith("(") and s.endswith(")")
        s = _AMOUNT_JUNK_RE.sub("", s)
        if negative and not s.startswith("-"):
            s = "-" + s

        if "," in s and "." in s:
            # Whichever separator comes last is the decimal one
            if s.rfind(",") > s.rfind("."):
                s = s.replace(".", "").replace(",", ".")
            else:
                s = s.replace(",", "")
        elif "," in s or "." in s:
            sep = "," if "," in s else "."
            head, _, tail = s.rpartition(sep)
            if len(tail) == 3:
                # Digit grouping only: "1.234", "1,234", "1.234.567"
                s = s.replace(sep, "")
            else:
                s = head.replace(sep, "") + "." + tail

    try:
        amount = Decimal(s)
    except InvalidOperation:
        return None
    if not amount.is_finite() or abs(amount) >= AMOUNT_LIMIT:
        return None

    try:
        quantized = amount.quantize(_CENTS)
    except InvalidOperation:
        return None
    # Sub-cent digits mean the value was misread; never round them away
    if quantized != amount:
        return None
    return quantized


def _parse_dates(raw: pd.Series) -> pd.Series:
    text = raw.fillna("").astype(str).str.strip()
    parsed = pd.Series(pd.NaT, index=raw.index, dtype="datetime64[ns]")
    for fmt in DATE_FORMATS:
        parsed = parsed.fillna(pd.to_datetime(text, format=fmt, errors="coerce"))
    return parsed


def _load_rows(raw_text: str) -> List[Any]:
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise MalformedExtractionError("Vision API returned an empty answer")

    try:
        data = json.loads(_strip_json_fences(raw_text))
    except json.JSONDecodeError as e:
        raise MalformedExtractionError(f"Vision API answer is not valid JSON: {e.msg}") from e

    if isinstance(data, dict):
        rows = data.get("transactions")
        if rows is None:
            raise MalformedExtractionError("Vision API answer has no 'transactions' list")
    else:
        rows = data

    if not isinstance(rows, list):
        raise MalformedExtractionError("'transactions' must be a list")
    return rows


def parse_extraction_response(
    raw_text: str,
    allowed_categories: Iterable[str] = (),
) -> List[Dict[str, Any]]:
    """
    Parse and validate the model's answer.

    Returns a list of dicts with keys line_number, date, description, amount,
    category, in document order. Raises MalformedExtractionError naming the
    offending rows if anything is unusable.
    """
    rows = _load_rows(raw_text)
    if not rows:
        return []

    not_objects = [i for i, row in enumerate(rows, start=1) if not isinstance(row, dict)]
    if not_objects:
        raise MalformedExtractionError(f"Rows {not_objects} are not JSON objects")

    df = pd.DataFrame.from_records(rows)
    for column in ("date", "description", "amount", "category"):
        if column not in df.columns:
            df[column] = None

    df["line_number"] = range(1, len(df) + 1)
    df["parsed_date"] = _parse_dates(df["date"])
    df["amount"] = df["amount"].apply(parse_amount)
    df["description"] = df["description"].apply(_clean_text)

    lookup = build_lookup(allowed_categories)
    df["category"] = df["category"].apply(lambda c: match_category(c, lookup)).astype(object)
    df["category"] = df["category"].where(df["category"].notna(), None)

    problems: List[str] = []
    for _, row in df.iterrows():
        missing = []
        if pd.isna(row["parsed_date"]):
            missing.append("date")
        if row["description"] == "":
            missing.append("description")
        if pd.isna(row["amount"]):
            missing.append("amount")
        if missing:
            problems.append(f"row {row['line_number']}: invalid {', '.join(missing)}")

    if problems:
        raise MalformedExtractionError(
            f"{len(problems)} of {len(df)} extracted rows failed validation: " + "; ".join(problems)
        )

    df["date"] = df["parsed_date"].dt.date

    return df[["line_number", "date", "description", "amount", "category"]].to_dict(orient="records")
