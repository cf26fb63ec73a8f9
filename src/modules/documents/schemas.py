"""Schemas for Documents and Sequences."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator

from src.core.sequences.models import MAX_SEQUENCE_NUMBER, PREFIX_MAX_LENGTH, DocumentType
from src.shared.schemas import BaseSchema


# --- Sequence Schemas ---


class SequenceLockRequest(BaseSchema):
    """Schema for choosing the starting number of a document type."""

    starting_number: int = Field(..., strict=True, le=MAX_SEQUENCE_NUMBER)
    prefix: str | None = Field(None, max_length=PREFIX_MAX_LENGTH)


class SequenceLockResponse(BaseSchema):
    """Schema for a successful lock."""

    document_type: str
    starting_number: int
    prefix: str | None
    locked_at: datetime
    locked_by: str | None


class SequenceStatusResponse(BaseSchema):
    """Schema for sequence status (drives the starting-number prompt)."""

    document_type: str
    locked: bool
    starting_number: int | None
    current_number: int | None
    next_number: int | None
    prefix: str | None
    has_issued_documents: bool
    should_prompt_starting_number: bool
    next_number_display: str | None
    degraded: bool = False


# --- Document Schemas ---


class DocumentCreate(BaseSchema):
    """Schema for creating a document (draft or direct issue)."""

    document_type: DocumentType
    customer_name: str = Field(..., min_length=1, max_length=200)
    currency: str = Field("ILS", min_length=1, max_length=10)
    total: Decimal = Field(..., ge=0)
    payload: dict[str, Any] | None = None

    @field_validator("customer_name")
    @classmethod
    def strip_customer_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Customer name is required")
        return v


class DocumentResponse(BaseSchema):
    """Schema for document response."""

    id: int
    document_type: str
    status: str
    document_number: int | None
    number_prefix: str | None
    display_number: str | None
    customer_name: str
    currency: str
    total: Decimal
    payload: dict[str, Any] | None
    created_by: str | None
    finalized_at: datetime | None
    created_at: datetime
    updated_at: datetime


class DocumentFilters(BaseSchema):
    """Filters for listing documents."""

    document_type: DocumentType | None = None
    status: str | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=200)
