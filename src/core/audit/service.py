from enum import StrEnum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog


class AuditAction(StrEnum):
    """Standard audit actions."""

    CREATE = "CREATE"
    LOCK_SEQUENCE = "LOCK_SEQUENCE"
    FINALIZE_DOCUMENT = "FINALIZE_DOCUMENT"
    SEQUENCE_GAP = "SEQUENCE_GAP"


async def create_audit_log(
    session: AsyncSession,
    tenant_id: str,
    action: str | AuditAction,
    entity_type: str,
    entity_id: int,
    user_id: str | None = None,
    entity_identifier: str | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    comment: str | None = None,
) -> AuditLog:
    """
    Create an audit log entry in the given session.

    Args:
        session: Database session (the entry commits with it)
        tenant_id: Tenant the entity belongs to
        action: Action performed (e.g., LOCK_SEQUENCE, FINALIZE_DOCUMENT)
        entity_type: Type of entity (e.g., DocumentSequence, Document)
        entity_id: ID of the entity
        user_id: ID of the user who performed the action
        entity_identifier: Human-readable identifier (e.g., document number)
        old_values: State before change
        new_values: State after change
        comment: Additional comment

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        action=str(action),
        entity_type=entity_type,
        entity_id=entity_id,
        entity_identifier=entity_identifier,
        old_values=old_values,
        new_values=new_values,
        comment=comment,
    )

    session.add(audit_log)
    await session.flush()

    return audit_log


async def list_audit_entries(
    session: AsyncSession,
    tenant_id: str,
    *,
    entity_type: str | None = None,
    action: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[AuditLog], int]:
    """
    List a tenant's audit log entries, newest first.
    Returns (entries, total_count).
    """
    q = select(AuditLog).where(AuditLog.tenant_id == tenant_id).order_by(AuditLog.id.desc())
    count_q = select(func.count()).select_from(AuditLog).where(AuditLog.tenant_id == tenant_id)
    if entity_type is not None:
        q = q.where(AuditLog.entity_type == entity_type)
        count_q = count_q.where(AuditLog.entity_type == entity_type)
    if action is not None:
        q = q.where(AuditLog.action == action)
        count_q = count_q.where(AuditLog.action == action)

    total_result = await session.execute(count_q)
    total = total_result.scalar_one()

    q = q.offset((page - 1) * limit).limit(limit)
    result = await session.execute(q)
    return list(result.scalars().all()), total
