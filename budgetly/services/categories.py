# budgetly/services/categories.py
#
# Category reference data: the default set seeded on startup and the
# case-insensitive lookup used when mapping model output and user edits.

from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from models import Category
from budgetly.log import get_logger

log = get_logger("budgetly.categories")

# (name, color, icon)
DEFAULT_CATEGORIES: List[Tuple[str, str, str]] = [
    ("Groceries", "#4caf50", "cart"),
    ("Restaurants", "#ff9800", "utensils"),
    ("Transport", "#2196f3", "car"),
    ("Health", "#e91e63", "heart"),
    ("Shopping", "#9c27b0", "bag"),
    ("Subscriptions", "#3f51b5", "repeat"),
    ("Travel", "#00bcd4", "plane"),
    ("Utilities", "#607d8b", "bolt"),
    ("Entertainment", "#ffc107", "film"),
    ("Education", "#795548", "book"),
    ("Fees", "#f44336", "receipt"),
    ("Payments", "#8bc34a", "credit-card"),
    ("Other", "#9e9e9e", "dots"),
]


def seed_categories(db: Session) -> int:
    """
    Insert any default category that is missing. Existing rows are left alone.
    Returns the number of categories added.
    """
    existing = {name for (name,) in db.query(Category.name).all()}
    missing = [
        Category(name=name, color=color, icon=icon)
        for name, color, icon in DEFAULT_CATEGORIES
        if name not in existing
    ]
    if not missing:
        return 0

    db.add_all(missing)
    db.commit()
    log.info(f"[categories] Seeded {len(missing)} categories")
    return len(missing)


def list_categories(db: Session) -> List[Category]:
    return db.query(Category).order_by(Category.name).all()


def category_names(db: Session) -> List[str]:
    return [name for (name,) in db.query(Category.name).order_by(Category.name).all()]


def build_lookup(allowed_categories: Iterable[str]) -> Dict[str, str]:
    """Case-insensitive mapping from a normalized label to the stored name."""
    return {
        str(c).strip().lower(): str(c)
        for c in allowed_categories
        if str(c).strip() != ""
    }


def match_category(raw: object, lookup: Dict[str, str]) -> Optional[str]:
    """Return the canonical category name for `raw`, or None if it matches nothing."""
    if raw is None:
        return None
    label = str(raw).strip()
    if not label:
        return None
    return lookup.get(label.lower())
