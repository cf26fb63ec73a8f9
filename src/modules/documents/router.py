"""API endpoints for Documents and document numbering."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import CurrentCaller
from src.core.database import get_db
from src.core.sequences.models import DocumentType
from src.modules.documents.dependencies import SequenceEngine
from src.modules.documents.schemas import (
    DocumentCreate,
    DocumentFilters,
    DocumentResponse,
    SequenceLockRequest,
    SequenceLockResponse,
    SequenceStatusResponse,
)
from src.modules.documents.service import DocumentService
from src.shared.schemas import PaginatedResponse, SuccessResponse


router = APIRouter(prefix="/documents", tags=["Documents"])


@router.post("", response_model=SuccessResponse[DocumentResponse], status_code=201)
async def create_draft(
    data: DocumentCreate,
    caller: CurrentCaller,
    engine: SequenceEngine,
    db: AsyncSession = Depends(get_db),
):
    """Save a draft document. Drafts have no number."""
    service = DocumentService(db, engine)
    document = await service.create_draft(caller.tenant_id, data, user_id=caller.user_id)
    return SuccessResponse(
        data=DocumentResponse.model_validate(document),
        message="Draft saved",
    )


@router.post("/issue", response_model=SuccessResponse[DocumentResponse], status_code=201)
async def issue_document(
    data: DocumentCreate,
    caller: CurrentCaller,
    engine: SequenceEngine,
    db: AsyncSession = Depends(get_db),
):
    """
    Create and finalize a document in one step.

    Fails with 409 when no starting number was chosen for the document type.
    """
    service = DocumentService(db, engine)
    document = await service.issue(caller.tenant_id, data, user_id=caller.user_id)
    return SuccessResponse(
        data=DocumentResponse.model_validate(document),
        message=f"Document {document.display_number} issued",
    )


@router.post("/{document_id}/finalize", response_model=SuccessResponse[DocumentResponse])
async def finalize_document(
    document_id: int,
    caller: CurrentCaller,
    engine: SequenceEngine,
    db: AsyncSession = Depends(get_db),
):
    """Assign the next number to a draft and issue it."""
    service = DocumentService(db, engine)
    document = await service.finalize(caller.tenant_id, document_id, user_id=caller.user_id)
    return SuccessResponse(
        data=DocumentResponse.model_validate(document),
        message=f"Document {document.display_number} issued",
    )


@router.get("", response_model=SuccessResponse[PaginatedResponse[DocumentResponse]])
async def list_documents(
    caller: CurrentCaller,
    engine: SequenceEngine,
    document_type: DocumentType | None = Query(None),
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's documents, newest first."""
    service = DocumentService(db, engine)
    filters = DocumentFilters(document_type=document_type, status=status, page=page, limit=limit)
    documents, total = await service.list_documents(caller.tenant_id, filters)
    return SuccessResponse(
        data=PaginatedResponse.create(
            items=[DocumentResponse.model_validate(d) for d in documents],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.get("/{document_id}", response_model=SuccessResponse[DocumentResponse])
async def get_document(
    document_id: int,
    caller: CurrentCaller,
    engine: SequenceEngine,
    db: AsyncSession = Depends(get_db),
):
    """Get a document by ID."""
    service = DocumentService(db, engine)
    document = await service.get_document(caller.tenant_id, document_id)
    return SuccessResponse(data=DocumentResponse.model_validate(document))


# --- Numbering ---

sequences_router = APIRouter(prefix="/sequences", tags=["Document Numbering"])


@sequences_router.get("/{document_type}", response_model=SuccessResponse[SequenceStatusResponse])
async def get_sequence_status(
    document_type: DocumentType,
    caller: CurrentCaller,
    engine: SequenceEngine,
):
    """
    Numbering status for the UI.

    This is a hint only (finalization re-checks on its own), so a store
    failure yields an unlocked, degraded status instead of an error.
    """
    status = await engine.get_status(caller.tenant_id, document_type.value, authoritative=False)
    return SuccessResponse(data=SequenceStatusResponse.model_validate(status))


@sequences_router.post(
    "/{document_type}/lock",
    response_model=SuccessResponse[SequenceLockResponse],
    status_code=201,
)
async def lock_sequence(
    document_type: DocumentType,
    data: SequenceLockRequest,
    caller: CurrentCaller,
    engine: SequenceEngine,
):
    """
    Choose the starting number of a document type.

    One-time and irreversible; a second call returns 409.
    """
    result = await engine.lock(
        caller.tenant_id,
        document_type.value,
        data.starting_number,
        prefix=data.prefix,
        locked_by=caller.user_id,
    )
    return SuccessResponse(
        data=SequenceLockResponse.model_validate(result),
        message="Starting number locked",
    )
