from datetime import datetime, timezone

import structlog
from sqlalchemy import exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.audit import AuditAction, create_audit_log
from src.core.exceptions import NotFoundError, ValidationError
from src.core.sequences.allocator import AllocatedNumber
from src.core.sequences.engine import DocumentSequenceEngine
from src.core.sequences.formatting import format_document_number
from src.core.sequences.query import IssuedDocumentsChecker
from src.modules.documents.models import Document, DocumentStatus
from src.modules.documents.schemas import DocumentCreate, DocumentFilters

logger = structlog.get_logger(__name__)


async def has_issued_documents(session: AsyncSession, tenant_id: str, document_type: str) -> bool:
    """Whether the tenant has at least one finalized document of this type."""
    stmt = select(
        exists().where(
            Document.tenant_id == tenant_id,
            Document.document_type == document_type,
            Document.status == DocumentStatus.ISSUED.value,
        )
    )
    result = await session.execute(stmt)
    return bool(result.scalar())


def make_issued_checker(session_factory: async_sessionmaker[AsyncSession]) -> IssuedDocumentsChecker:
    """Existence check for the sequence status query, on its own short session."""

    async def _check(tenant_id: str, document_type: str) -> bool:
        async with session_factory() as session:
            return await has_issued_documents(session, tenant_id, document_type)

    return _check


class DocumentService:
    """Service for drafts and finalization of numbered documents."""

    def __init__(self, session: AsyncSession, engine: DocumentSequenceEngine):
        self.session = session
        self.engine = engine

    async def get_document(self, tenant_id: str, document_id: int) -> Document:
        stmt = (
            select(Document)
            .where(Document.id == document_id, Document.tenant_id == tenant_id)
            # finalize() writes through a bulk UPDATE, so identity-map copies go stale
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        document = result.scalar_one_or_none()
        if not document:
            raise NotFoundError("Document", document_id)
        return document

    async def list_documents(
        self, tenant_id: str, filters: DocumentFilters
    ) -> tuple[list[Document], int]:
        """List documents of a tenant, newest first. Returns (items, total)."""
        stmt = select(Document).where(Document.tenant_id == tenant_id)
        count_stmt = select(func.count()).select_from(Document).where(Document.tenant_id == tenant_id)
        if filters.document_type:
            stmt = stmt.where(Document.document_type == filters.document_type.value)
            count_stmt = count_stmt.where(Document.document_type == filters.document_type.value)
        if filters.status:
            stmt = stmt.where(Document.status == filters.status)
            count_stmt = count_stmt.where(Document.status == filters.status)

        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            stmt.order_by(Document.id.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def has_issued_documents(self, tenant_id: str, document_type: str) -> bool:
        return await has_issued_documents(self.session, tenant_id, document_type)

    async def create_draft(self, tenant_id: str, data: DocumentCreate, user_id: str | None) -> Document:
        """Save a draft. Drafts never carry a number."""
        document = Document(
            tenant_id=tenant_id,
            document_type=data.document_type.value,
            status=DocumentStatus.DRAFT.value,
            document_number=None,
            customer_name=data.customer_name,
            currency=data.currency,
            total=data.total,
            payload=data.payload,
            created_by=user_id,
        )
        self.session.add(document)
        await self.session.flush()

        await create_audit_log(
            session=self.session,
            tenant_id=tenant_id,
            action=AuditAction.CREATE,
            entity_type="Document",
            entity_id=document.id,
            user_id=user_id,
            new_values={"document_type": document.document_type, "status": document.status},
        )
        await self.session.refresh(document)
        return document

    async def finalize(self, tenant_id: str, document_id: int, user_id: str | None) -> Document:
        """
        Assign the next number to a draft, mark it issued and commit.

        The number is reserved (and committed) before the draft is updated.
        If the draft was finalized concurrently in the meantime, or the
        update cannot be stored, the reserved number is recorded as a gap
        rather than reused.
        """
        document = await self.get_document(tenant_id, document_id)
        if not document.is_draft:
            raise ValidationError("Only draft documents can be finalized", field="status")

        document_type = document.document_type
        allocated = await self.engine.allocate_next(tenant_id, document_type)
        finalized_at = datetime.now(timezone.utc)

        stmt = (
            update(Document)
            .where(
                Document.id == document_id,
                Document.tenant_id == tenant_id,
                Document.status == DocumentStatus.DRAFT.value,
            )
            .values(
                status=DocumentStatus.ISSUED.value,
                document_number=allocated.number,
                number_prefix=allocated.prefix,
                finalized_at=finalized_at,
            )
            .returning(Document.id)
            .execution_options(synchronize_session=False)
        )
        try:
            updated_id = (await self.session.execute(stmt)).scalar_one_or_none()
            if updated_id is not None:
                await self._audit_finalized(tenant_id, document_id, document_type, allocated, user_id)
                await self.session.commit()
        except SQLAlchemyError as exc:
            await self._release_number(
                tenant_id,
                document_type,
                allocated,
                reason=f"document {document_id} could not be stored: {exc.__class__.__name__}",
                user_id=user_id,
            )
            raise

        if updated_id is None:
            await self._release_number(
                tenant_id,
                document_type,
                allocated,
                reason=f"document {document_id} was no longer a draft",
                user_id=user_id,
            )
            raise ValidationError("Only draft documents can be finalized", field="status")

        await self.session.refresh(document)
        return document

    async def issue(self, tenant_id: str, data: DocumentCreate, user_id: str | None) -> Document:
        """
        Create a document directly in issued state and commit.

        Allocation happens first so the request holds no write lock of its
        own while the sequence row is being updated.
        """
        document_type = data.document_type.value
        allocated = await self.engine.allocate_next(tenant_id, document_type)

        document = Document(
            tenant_id=tenant_id,
            document_type=document_type,
            status=DocumentStatus.ISSUED.value,
            document_number=allocated.number,
            number_prefix=allocated.prefix,
            customer_name=data.customer_name,
            currency=data.currency,
            total=data.total,
            payload=data.payload,
            created_by=user_id,
            finalized_at=datetime.now(timezone.utc),
        )
        self.session.add(document)
        try:
            await self.session.flush()
            await self._audit_finalized(tenant_id, document.id, document_type, allocated, user_id)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self._release_number(
                tenant_id,
                document_type,
                allocated,
                reason=f"document insert failed: {exc.__class__.__name__}",
                user_id=user_id,
            )
            raise

        await self.session.refresh(document)
        return document

    async def _release_number(
        self,
        tenant_id: str,
        document_type: str,
        allocated: AllocatedNumber,
        reason: str,
        user_id: str | None,
    ) -> None:
        # Release our own write lock before the gap is written on another connection
        await self.session.rollback()
        await self.engine.record_gap(
            tenant_id, document_type, allocated.number, reason=reason, user_id=user_id
        )

    async def _audit_finalized(
        self,
        tenant_id: str,
        document_id: int,
        document_type: str,
        allocated: AllocatedNumber,
        user_id: str | None,
    ) -> None:
        display = format_document_number(allocated.prefix, allocated.number)
        logger.info(
            "document_finalized",
            tenant_id=tenant_id,
            document_id=document_id,
            document_type=document_type,
            number=allocated.number,
        )
        await create_audit_log(
            session=self.session,
            tenant_id=tenant_id,
            action=AuditAction.FINALIZE_DOCUMENT,
            entity_type="Document",
            entity_id=document_id,
            user_id=user_id,
            entity_identifier=display,
            old_values={"status": DocumentStatus.DRAFT.value},
            new_values={"status": DocumentStatus.ISSUED.value, "document_number": allocated.number},
        )
