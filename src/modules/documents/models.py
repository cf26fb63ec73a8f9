"""Document model: drafts and issued (numbered) regulated documents."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import TenantScopedModel
from src.core.sequences.formatting import format_document_number
from src.core.sequences.models import PREFIX_MAX_LENGTH


class DocumentStatus(StrEnum):
    """Document status enumeration."""

    DRAFT = "draft"
    ISSUED = "issued"


class Document(TenantScopedModel):
    """
    Receipt, tax invoice or any other numbered document of a tenant.

    Drafts have no number. The number is assigned exactly once, when the
    document is finalized, and never changes afterwards.
    """

    __tablename__ = "documents"

    document_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DocumentStatus.DRAFT.value, index=True
    )

    document_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Prefix of the sequence at finalization time, kept for display
    number_prefix: Mapped[str | None] = mapped_column(String(PREFIX_MAX_LENGTH), nullable=True)

    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "document_type",
            "document_number",
            name="uq_documents_tenant_type_number",
        ),
    )

    @property
    def is_draft(self) -> bool:
        return self.status == DocumentStatus.DRAFT.value

    @property
    def display_number(self) -> str | None:
        if self.document_number is None:
            return None
        return format_document_number(self.number_prefix, self.document_number)
