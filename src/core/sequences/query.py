from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.exceptions import StoreUnavailableError
from src.core.sequences.formatting import format_document_number
from src.core.sequences.store import SequenceStore

logger = structlog.get_logger(__name__)

# (tenant_id, document_type) -> whether any finalized document exists
IssuedDocumentsChecker = Callable[[str, str], Awaitable[bool]]


@dataclass(frozen=True)
class SequenceStatus:
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

    @classmethod
    def unlocked(cls, document_type: str, degraded: bool = False) -> "SequenceStatus":
        return cls(
            document_type=document_type,
            locked=False,
            starting_number=None,
            current_number=None,
            next_number=None,
            prefix=None,
            has_issued_documents=False,
            should_prompt_starting_number=not degraded,
            next_number_display=None,
            degraded=degraded,
        )


class SequenceQueryService:
    """Read-only numbering status for UI decisions. Never writes."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        issued_checker: IssuedDocumentsChecker | None = None,
    ):
        self.session_factory = session_factory
        self.issued_checker = issued_checker

    async def get_status(
        self,
        tenant_id: str,
        document_type: str,
        authoritative: bool = True,
    ) -> SequenceStatus:
        """
        Status of (tenant_id, document_type); a missing row reads as unlocked.

        With authoritative=False a store failure is logged and an unlocked,
        degraded status is returned instead of raising. Anything that gates
        finalization must keep the default.
        """
        try:
            return await self._read_status(tenant_id, document_type)
        except (SQLAlchemyError, OSError) as exc:
            if authoritative:
                raise StoreUnavailableError("get_status", str(exc)) from exc
            logger.warning(
                "sequence_status_degraded",
                tenant_id=tenant_id,
                document_type=document_type,
                error=str(exc),
            )
            return SequenceStatus.unlocked(document_type, degraded=True)

    async def _read_status(self, tenant_id: str, document_type: str) -> SequenceStatus:
        async with self.session_factory() as session:
            sequence = await SequenceStore(session).get(tenant_id, document_type)

        has_issued = False
        if self.issued_checker is not None:
            has_issued = await self.issued_checker(tenant_id, document_type)

        if sequence is None or not sequence.is_locked:
            if has_issued:
                # Documents exist but the lock row does not; never offer to renumber
                logger.warning(
                    "sequence_missing_lock_with_issued_documents",
                    tenant_id=tenant_id,
                    document_type=document_type,
                )
            return SequenceStatus(
                document_type=document_type,
                locked=False,
                starting_number=None,
                current_number=None,
                next_number=None,
                prefix=None,
                has_issued_documents=has_issued,
                should_prompt_starting_number=not has_issued,
                next_number_display=None,
            )

        next_number = sequence.next_number
        return SequenceStatus(
            document_type=document_type,
            locked=True,
            starting_number=sequence.starting_number,
            current_number=sequence.current_number,
            next_number=next_number,
            prefix=sequence.prefix,
            has_issued_documents=has_issued,
            should_prompt_starting_number=False,
            next_number_display=(
                format_document_number(sequence.prefix, next_number)
                if next_number is not None
                else None
            ),
        )
