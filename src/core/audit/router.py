"""API endpoint for the audit trail (read-only)."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.schemas import AuditTrailEntryResponse
from src.core.audit.service import AuditAction, list_audit_entries
from src.core.auth.dependencies import CurrentCaller
from src.core.database import get_db
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/audit-trail", tags=["Audit"])


@router.get("", response_model=ApiResponse[PaginatedResponse[AuditTrailEntryResponse]])
async def get_audit_trail(
    caller: CurrentCaller,
    entity_type: str | None = Query(None),
    action: AuditAction | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's audit log entries, e.g. locks and recorded gaps."""
    entries, total = await list_audit_entries(
        db,
        caller.tenant_id,
        entity_type=entity_type,
        action=action.value if action else None,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        data=PaginatedResponse.create(
            items=[AuditTrailEntryResponse.model_validate(e) for e in entries],
            total=total,
            page=page,
            limit=limit,
        ),
    )
