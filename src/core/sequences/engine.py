from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.sequences.allocator import AllocatedNumber, AllocationRetryConfig, SequenceAllocator
from src.core.sequences.lock import SequenceLock, SequenceLockResult
from src.core.sequences.query import IssuedDocumentsChecker, SequenceQueryService, SequenceStatus


class DocumentSequenceEngine:
    """
    Entry point for the rest of the application.

    Holds no state of its own besides the session factory; every call goes
    to the database, so separate processes can share one sequence safely.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        issued_checker: IssuedDocumentsChecker | None = None,
        retry_config: AllocationRetryConfig | None = None,
    ):
        self.locker = SequenceLock(session_factory, retry_config)
        self.allocator = SequenceAllocator(session_factory, retry_config)
        self.queries = SequenceQueryService(session_factory, issued_checker)

    async def lock(
        self,
        tenant_id: str,
        document_type: str,
        starting_number: int,
        prefix: str | None = None,
        locked_by: str | None = None,
    ) -> SequenceLockResult:
        return await self.locker.lock(tenant_id, document_type, starting_number, prefix, locked_by)

    async def allocate_next(self, tenant_id: str, document_type: str) -> AllocatedNumber:
        return await self.allocator.allocate_next(tenant_id, document_type)

    async def get_status(
        self, tenant_id: str, document_type: str, authoritative: bool = True
    ) -> SequenceStatus:
        return await self.queries.get_status(tenant_id, document_type, authoritative)

    async def record_gap(
        self,
        tenant_id: str,
        document_type: str,
        number: int,
        reason: str,
        user_id: str | None = None,
    ) -> None:
        await self.allocator.record_gap(tenant_id, document_type, number, reason, user_id)
