import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit import AuditAction, AuditLog
from src.core.exceptions import (
    AlreadyLockedError,
    InvalidStartingNumberError,
    StoreUnavailableError,
    ValidationError,
)
from src.core.sequences import AllocationRetryConfig, DocumentSequence, DocumentSequenceEngine
from src.core.sequences.store import SequenceStore


async def _sequence_rows(db_session: AsyncSession, tenant_id: str, document_type: str) -> list[DocumentSequence]:
    result = await db_session.execute(
        select(DocumentSequence).where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
    )
    return list(result.scalars().all())


class TestSequenceLock:
    """Tests for locking the starting number of a sequence."""

    async def test_lock_creates_locked_sequence(
        self, sequence_engine: DocumentSequenceEngine, db_session: AsyncSession
    ):
        """First lock stores the starting number and audit attributes."""
        result = await sequence_engine.lock("acme", "receipt", 1001, prefix="RC-", locked_by="user-1")

        assert result.starting_number == 1001
        assert result.prefix == "RC-"
        assert result.locked_by == "user-1"

        rows = await _sequence_rows(db_session, "acme", "receipt")
        assert len(rows) == 1
        sequence = rows[0]
        assert sequence.is_locked is True
        assert sequence.starting_number == 1001
        assert sequence.current_number is None
        assert sequence.prefix == "RC-"
        assert sequence.locked_by == "user-1"
        assert sequence.locked_at is not None

    async def test_second_lock_is_rejected(self, sequence_engine: DocumentSequenceEngine):
        """A second lock fails and keeps the first starting number."""
        await sequence_engine.lock("acme", "receipt", 1001)

        with pytest.raises(AlreadyLockedError) as exc_info:
            await sequence_engine.lock("acme", "receipt", 5000)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["code"] == "sequence_already_locked"

        status = await sequence_engine.get_status("acme", "receipt")
        assert status.starting_number == 1001

    async def test_second_lock_after_allocations_keeps_counter(self, sequence_engine: DocumentSequenceEngine):
        """Relocking never resets current_number."""
        await sequence_engine.lock("acme", "receipt", 10)
        await sequence_engine.allocate_next("acme", "receipt")
        await sequence_engine.allocate_next("acme", "receipt")

        with pytest.raises(AlreadyLockedError):
            await sequence_engine.lock("acme", "receipt", 1)

        status = await sequence_engine.get_status("acme", "receipt")
        assert status.current_number == 11
        assert status.next_number == 12

    @pytest.mark.parametrize("value", [0, -5, 1.5, "100", True, None, 2**31, 2**63])
    async def test_invalid_starting_number(
        self, sequence_engine: DocumentSequenceEngine, db_session: AsyncSession, value
    ):
        """Non-positive and non-integer starting numbers are rejected without touching the store."""
        with pytest.raises(InvalidStartingNumberError) as exc_info:
            await sequence_engine.lock("acme", "receipt", value)

        assert exc_info.value.status_code == 422
        assert exc_info.value.details["field"] == "starting_number"
        assert await _sequence_rows(db_session, "acme", "receipt") == []

    async def test_largest_starting_number(self, sequence_engine: DocumentSequenceEngine):
        """The upper bound itself is accepted and stored intact."""
        await sequence_engine.lock("acme", "receipt", 2**31 - 1)

        status = await sequence_engine.get_status("acme", "receipt")
        assert status.starting_number == 2**31 - 1
        assert status.next_number == 2**31 - 1

    async def test_prefix_is_trimmed_and_blank_becomes_none(self, sequence_engine: DocumentSequenceEngine):
        """Whitespace-only prefix is stored as no prefix."""
        result = await sequence_engine.lock("acme", "receipt", 1, prefix="   ")
        assert result.prefix is None

        result = await sequence_engine.lock("acme", "tax_invoice", 1, prefix="  INV-  ")
        assert result.prefix == "INV-"

    async def test_prefix_too_long(self, sequence_engine: DocumentSequenceEngine):
        """Over-long prefix is a validation error."""
        with pytest.raises(ValidationError):
            await sequence_engine.lock("acme", "receipt", 1, prefix="X" * 21)

    async def test_lock_explicit_unlocked_row(
        self, sequence_engine: DocumentSequenceEngine, db_session: AsyncSession
    ):
        """An existing unlocked row is locked in place, not duplicated."""
        db_session.add(DocumentSequence(tenant_id="acme", document_type="receipt", is_locked=False))
        await db_session.commit()

        await sequence_engine.lock("acme", "receipt", 300)

        db_session.expire_all()
        rows = await _sequence_rows(db_session, "acme", "receipt")
        assert len(rows) == 1
        assert rows[0].is_locked is True
        assert rows[0].starting_number == 300
        assert rows[0].version == 1

    async def test_lock_writes_audit_entry(
        self, sequence_engine: DocumentSequenceEngine, db_session: AsyncSession
    ):
        """Successful lock is audited, rejected lock is not."""
        await sequence_engine.lock("acme", "receipt", 1001, locked_by="user-1")
        with pytest.raises(AlreadyLockedError):
            await sequence_engine.lock("acme", "receipt", 2000, locked_by="user-2")

        result = await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.LOCK_SEQUENCE.value)
        )
        entries = list(result.scalars().all())
        assert len(entries) == 1
        assert entries[0].tenant_id == "acme"
        assert entries[0].user_id == "user-1"
        assert entries[0].new_values["starting_number"] == 1001

    async def test_tenants_are_isolated(self, sequence_engine: DocumentSequenceEngine):
        """Locking for one tenant leaves another tenant unlocked."""
        await sequence_engine.lock("acme", "receipt", 1001)

        other = await sequence_engine.get_status("globex", "receipt")
        assert other.locked is False

        result = await sequence_engine.lock("globex", "receipt", 7)
        assert result.starting_number == 7

    async def test_document_types_are_independent(self, sequence_engine: DocumentSequenceEngine):
        """Each document type has its own starting number."""
        await sequence_engine.lock("acme", "receipt", 1001)
        await sequence_engine.lock("acme", "tax_invoice", 50)

        receipt = await sequence_engine.get_status("acme", "receipt")
        invoice = await sequence_engine.get_status("acme", "tax_invoice")
        assert receipt.starting_number == 1001
        assert invoice.starting_number == 50


class TestSequenceLockContention:
    """Lock attempts that meet a busy store."""

    async def test_contention_is_retried(self, session_factory, monkeypatch):
        """Transient lock errors are retried and the lock eventually succeeds."""
        engine = DocumentSequenceEngine(
            session_factory,
            retry_config=AllocationRetryConfig(max_attempts=5, backoff_multiplier=0, backoff_max=0),
        )
        original = SequenceStore.lock_existing
        calls = {"count": 0}

        async def flaky_lock_existing(self, *args):
            calls["count"] += 1
            if calls["count"] < 3:
                raise OperationalError("UPDATE document_sequences", {}, Exception("database is locked"))
            return await original(self, *args)

        monkeypatch.setattr(SequenceStore, "lock_existing", flaky_lock_existing)

        result = await engine.lock("acme", "receipt", 1001)

        assert result.starting_number == 1001
        assert calls["count"] == 3
        status = await engine.get_status("acme", "receipt")
        assert status.locked is True

    async def test_contention_exhaustion(
        self, session_factory, db_session: AsyncSession, monkeypatch
    ):
        """Endless contention surfaces StoreUnavailable after the retry budget, nothing stored."""
        engine = DocumentSequenceEngine(
            session_factory,
            retry_config=AllocationRetryConfig(max_attempts=3, backoff_multiplier=0, backoff_max=0),
        )
        calls = {"count": 0}

        async def locked_lock_existing(self, *args):
            calls["count"] += 1
            raise OperationalError("UPDATE document_sequences", {}, Exception("database is locked"))

        monkeypatch.setattr(SequenceStore, "lock_existing", locked_lock_existing)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await engine.lock("acme", "receipt", 1001)

        assert calls["count"] == 3
        assert exc_info.value.status_code == 503
        assert exc_info.value.details["operation"] == "lock"
        assert await _sequence_rows(db_session, "acme", "receipt") == []

    async def test_store_failure_is_not_retried(self, session_factory, monkeypatch):
        """Non-transient store errors fail on the first attempt."""
        engine = DocumentSequenceEngine(
            session_factory,
            retry_config=AllocationRetryConfig(max_attempts=5, backoff_multiplier=0, backoff_max=0),
        )
        calls = {"count": 0}

        async def broken_lock_existing(self, *args):
            calls["count"] += 1
            raise OperationalError("UPDATE document_sequences", {}, Exception("disk I/O error"))

        monkeypatch.setattr(SequenceStore, "lock_existing", broken_lock_existing)

        with pytest.raises(StoreUnavailableError):
            await engine.lock("acme", "receipt", 1001)

        assert calls["count"] == 1


class TestSequenceLockRace:
    """Concurrent lock attempts."""

    async def test_concurrent_locks_have_one_winner(
        self, sequence_engine: DocumentSequenceEngine, db_session: AsyncSession
    ):
        """Two simultaneous locks: one succeeds, one gets AlreadyLocked, no merged value."""
        results = await asyncio.gather(
            sequence_engine.lock("acme", "receipt", 1001),
            sequence_engine.lock("acme", "receipt", 5000),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyLockedError)

        status = await sequence_engine.get_status("acme", "receipt")
        assert status.starting_number == successes[0].starting_number
        assert status.starting_number in (1001, 5000)

        count = await db_session.execute(
            select(func.count()).select_from(DocumentSequence).where(DocumentSequence.tenant_id == "acme")
        )
        assert count.scalar_one() == 1

    async def test_many_concurrent_locks(self, sequence_engine: DocumentSequenceEngine):
        """Ten racing locks still produce exactly one winner."""
        results = await asyncio.gather(
            *(sequence_engine.lock("acme", "receipt", n) for n in range(1, 11)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(r, AlreadyLockedError) for r in results if isinstance(r, Exception))

        status = await sequence_engine.get_status("acme", "receipt")
        assert status.starting_number == winners[0].starting_number
