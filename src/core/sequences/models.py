from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import TenantScopedModel

PREFIX_MAX_LENGTH = 20

# Largest value the Integer number columns hold on every supported backend
MAX_SEQUENCE_NUMBER = 2**31 - 1

SEQUENCE_IDENTITY_CONSTRAINT = "uq_document_sequences_tenant_type"


class DocumentType(StrEnum):
    """Regulated document types, each numbered independently per tenant."""

    RECEIPT = "receipt"
    TAX_INVOICE = "tax_invoice"
    INVOICE_RECEIPT = "invoice_receipt"
    QUOTE = "quote"
    DELIVERY_NOTE = "delivery_note"
    CREDIT_INVOICE = "credit_invoice"


class DocumentSequence(TenantScopedModel):
    """
    Numbering state of one document type for one tenant.

    A missing row means "unlocked". Once is_locked is set the row is
    permanent: starting_number, locked_at and locked_by never change
    again and current_number only moves forward by one per allocation.
    """

    __tablename__ = "document_sequences"

    document_type: Mapped[str] = mapped_column(String(30), nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    starting_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Last allocated number; NULL until the first allocation
    current_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    prefix: Mapped[str | None] = mapped_column(String(PREFIX_MAX_LENGTH), nullable=True)

    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Bumped by every write to the row
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_type", name=SEQUENCE_IDENTITY_CONSTRAINT),
        CheckConstraint(
            "starting_number IS NULL OR starting_number >= 1",
            name="starting_number_positive",
        ),
        CheckConstraint(
            "current_number IS NULL OR current_number >= starting_number",
            name="current_not_below_start",
        ),
    )

    @property
    def next_number(self) -> int | None:
        if self.current_number is not None:
            return self.current_number + 1
        if self.is_locked:
            return self.starting_number
        return None
