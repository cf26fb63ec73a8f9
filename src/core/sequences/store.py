"""
Atomic operations on the document_sequences table.

Every method here is a single SQL statement. Callers never read a row and
then write it back in a later statement; the WHERE clause of each write
carries the precondition, so the check and the write are indivisible at
the database.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.sequences.models import DocumentSequence

# serialization_failure, deadlock_detected, lock_not_available
_CONTENTION_SQLSTATES = frozenset({"40001", "40P01", "55P03"})
_CONTENTION_MESSAGES = ("database is locked", "database table is locked")


def is_contention_error(exc: BaseException) -> bool:
    """True when the store rejected a write only because of concurrent writers."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONTENTION_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(fragment in message for fragment in _CONTENTION_MESSAGES)


@dataclass(frozen=True)
class IncrementResult:
    sequence_id: int
    number: int
    prefix: str | None


class SequenceStore:
    """Keyed access to sequence rows by (tenant_id, document_type)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _key(self, tenant_id: str, document_type: str):
        return (
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )

    async def get(self, tenant_id: str, document_type: str) -> DocumentSequence | None:
        """Plain read, no row lock."""
        stmt = select(DocumentSequence).where(*self._key(tenant_id, document_type))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_existing(
        self,
        tenant_id: str,
        document_type: str,
        starting_number: int,
        prefix: str | None,
        locked_by: str | None,
        locked_at: datetime,
    ) -> int | None:
        """
        Lock an explicit unlocked row.

        Returns the row id, or None when there is no unlocked row
        (either no row at all or one that is already locked).
        """
        stmt = (
            update(DocumentSequence)
            .where(*self._key(tenant_id, document_type), DocumentSequence.is_locked.is_(False))
            .values(
                is_locked=True,
                starting_number=starting_number,
                current_number=None,
                prefix=prefix,
                locked_at=locked_at,
                locked_by=locked_by,
                version=DocumentSequence.version + 1,
            )
            .returning(DocumentSequence.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def insert_locked(
        self,
        tenant_id: str,
        document_type: str,
        starting_number: int,
        prefix: str | None,
        locked_by: str | None,
        locked_at: datetime,
    ) -> DocumentSequence:
        """
        Insert a new row that is locked from birth.

        Raises IntegrityError when a row for the key already exists; the
        unique constraint is what picks the single winner of a race.
        """
        sequence = DocumentSequence(
            tenant_id=tenant_id,
            document_type=document_type,
            is_locked=True,
            starting_number=starting_number,
            current_number=None,
            prefix=prefix,
            locked_at=locked_at,
            locked_by=locked_by,
            version=1,
        )
        self.session.add(sequence)
        await self.session.flush()
        return sequence

    async def increment(self, tenant_id: str, document_type: str) -> IncrementResult | None:
        """
        Reserve the next number of a locked sequence in one statement.

        The first allocation yields starting_number, every later one
        current_number + 1. Returns None (and changes nothing) when the
        sequence is missing or not locked.
        """
        stmt = (
            update(DocumentSequence)
            .where(*self._key(tenant_id, document_type), DocumentSequence.is_locked.is_(True))
            .values(
                current_number=func.coalesce(
                    DocumentSequence.current_number + 1,
                    DocumentSequence.starting_number,
                ),
                version=DocumentSequence.version + 1,
            )
            .returning(
                DocumentSequence.id,
                DocumentSequence.current_number,
                DocumentSequence.prefix,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return IncrementResult(sequence_id=row.id, number=row.current_number, prefix=row.prefix)
