# models.py
# Role: SQLAlchemy ORM models for the Budgetly domain.
#       UploadRecord holds one uploaded invoice file and its processing status,
#       ExtractedEntry is one transaction line read from that invoice,
#       Category is the static list of labels entries can carry.

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from db import Base
from budgetly.errors import InvalidStatusTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


# Forward-only lifecycle; done and failed are terminal
ALLOWED_TRANSITIONS = {
    UploadStatus.PENDING: {UploadStatus.PROCESSING},
    UploadStatus.PROCESSING: {UploadStatus.DONE, UploadStatus.FAILED},
    UploadStatus.DONE: set(),
    UploadStatus.FAILED: set(),
}


class UploadRecord(Base):
    """
    ORM model for one uploaded invoice file.

    The stored bytes live under config.UPLOAD_DIR; `storage_path` points at
    them. `status` only moves forward (see ALLOWED_TRANSITIONS) and
    `confirmed_at` freezes the entries once the user has reviewed them.
    """

    __tablename__ = "invoices"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Name the client sent; only used for display
    original_filename = Column(String(255), nullable=False)

    # Absolute path of the stored bytes (never web-served)
    storage_path = Column(String(1024), nullable=False)

    size_bytes = Column(Integer, nullable=False)
    mime_type = Column(String(100), nullable=False)

    # Hex digest of the stored bytes
    sha256 = Column(String(64), nullable=False, index=True)

    status = Column(String(16), nullable=False, default=UploadStatus.PENDING.value, index=True)

    # Last failure surfaced to the caller (upstream message, validation summary)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    entries = relationship(
        "ExtractedEntry",
        back_populates="invoice",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ExtractedEntry.line_number",
    )

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    def transition_to(self, new_status: UploadStatus) -> None:
        """Move to `new_status`, refusing anything but a forward step."""
        current = UploadStatus(self.status)
        new_status = UploadStatus(new_status)
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransition(
                f"Invoice {self.id} cannot move from {current.value!r} to {new_status.value!r}"
            )
        self.status = new_status.value


class ExtractedEntry(Base):
    """
    One transaction line read from an invoice.

    Amounts are signed: negative = expense/charge, positive = payment or refund.
    """

    __tablename__ = "transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    invoice_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 1-based position in the extracted document
    line_number = Column(Integer, nullable=False)

    date = Column(Date, nullable=False)
    description = Column(String(500), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    # Category.name, or empty / uncategorized
    category = Column(String(100), nullable=True)

    # Set once the user changes anything the model produced
    edited = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    invoice = relationship("UploadRecord", back_populates="entries")


class Category(Base):
    """Static reference data for entry labels."""

    __tablename__ = "categories"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)

    # Display metadata for the review table
    color = Column(String(7), nullable=True)
    icon = Column(String(32), nullable=True)
