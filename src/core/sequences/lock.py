from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import RetryError

from src.core.audit import AuditAction, create_audit_log
from src.core.exceptions import (
    AlreadyLockedError,
    InvalidStartingNumberError,
    StoreUnavailableError,
    ValidationError,
)
from src.core.sequences.allocator import AllocationRetryConfig, retry_on_contention
from src.core.sequences.models import MAX_SEQUENCE_NUMBER, PREFIX_MAX_LENGTH
from src.core.sequences.store import SequenceStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SequenceLockResult:
    """Acknowledgement of a successful lock."""

    sequence_id: int
    tenant_id: str
    document_type: str
    starting_number: int
    prefix: str | None
    locked_at: datetime
    locked_by: str | None


def validate_starting_number(value: object) -> int:
    # bool is an int subclass, True must not become starting number 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidStartingNumberError(value)
    # Must fit the number columns, so it is rejected here and not by the store
    if not 1 <= value <= MAX_SEQUENCE_NUMBER:
        raise InvalidStartingNumberError(value)
    return value


def normalize_prefix(prefix: str | None) -> str | None:
    if prefix is None:
        return None
    prefix = prefix.strip()
    if not prefix:
        return None
    if len(prefix) > PREFIX_MAX_LENGTH:
        raise ValidationError(
            f"Prefix must be at most {PREFIX_MAX_LENGTH} characters", field="prefix"
        )
    return prefix


class SequenceLock:
    """
    One-time transition of a sequence from unlocked to locked.

    Each attempt runs in its own transaction so the lock is durable as
    soon as lock() returns, regardless of what the caller does next.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_config: AllocationRetryConfig | None = None,
    ):
        self.session_factory = session_factory
        self.retry_config = retry_config or AllocationRetryConfig()

    async def lock(
        self,
        tenant_id: str,
        document_type: str,
        starting_number: int,
        prefix: str | None = None,
        locked_by: str | None = None,
    ) -> SequenceLockResult:
        """
        Fix the starting number of (tenant_id, document_type).

        Raises:
            InvalidStartingNumberError: starting_number is not a positive int
            AlreadyLockedError: a starting number was already fixed
            StoreUnavailableError: the store failed or stayed busy past the
                retry budget, nothing was changed
        """
        starting_number = validate_starting_number(starting_number)
        prefix = normalize_prefix(prefix)

        # First pass may lose the insert race to a concurrent locker or to a
        # concurrently created unlocked row; the second pass settles which.
        for pass_number in (1, 2):
            try:
                retrying = retry_on_contention(
                    self.retry_config,
                    "sequence_lock_contention",
                    tenant_id=tenant_id,
                    document_type=document_type,
                )
                async for attempt in retrying:
                    with attempt:
                        result = await self._attempt(
                            tenant_id, document_type, starting_number, prefix, locked_by
                        )
            except IntegrityError:
                logger.info(
                    "sequence_lock_insert_conflict",
                    tenant_id=tenant_id,
                    document_type=document_type,
                    attempt=pass_number,
                )
                continue
            except RetryError as exc:
                logger.warning(
                    "sequence_lock_contention_exhausted",
                    tenant_id=tenant_id,
                    document_type=document_type,
                    attempts=self.retry_config.max_attempts,
                )
                raise StoreUnavailableError(
                    "lock",
                    f"sequence stayed busy after {self.retry_config.max_attempts} attempts",
                ) from exc
            except (SQLAlchemyError, OSError) as exc:
                logger.error(
                    "sequence_lock_store_error",
                    tenant_id=tenant_id,
                    document_type=document_type,
                    error=str(exc),
                )
                raise StoreUnavailableError("lock", str(exc)) from exc

            if result is None:
                break

            logger.info(
                "sequence_locked",
                tenant_id=tenant_id,
                document_type=document_type,
                starting_number=starting_number,
                prefix=prefix,
                locked_by=locked_by,
            )
            return result

        logger.info(
            "sequence_lock_rejected",
            tenant_id=tenant_id,
            document_type=document_type,
            requested_starting_number=starting_number,
        )
        raise AlreadyLockedError(tenant_id, document_type)

    async def _attempt(
        self,
        tenant_id: str,
        document_type: str,
        starting_number: int,
        prefix: str | None,
        locked_by: str | None,
    ) -> SequenceLockResult | None:
        """
        Returns None when the row exists and is already locked.
        Raises IntegrityError when the insert lost a race.
        """
        locked_at = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            async with session.begin():
                store = SequenceStore(session)
                sequence_id = await store.lock_existing(
                    tenant_id, document_type, starting_number, prefix, locked_by, locked_at
                )
                if sequence_id is None:
                    # Short-circuit only; the unique constraint still decides races
                    existing = await store.get(tenant_id, document_type)
                    if existing is not None and existing.is_locked:
                        return None
                    sequence = await store.insert_locked(
                        tenant_id, document_type, starting_number, prefix, locked_by, locked_at
                    )
                    sequence_id = sequence.id

                await create_audit_log(
                    session=session,
                    tenant_id=tenant_id,
                    action=AuditAction.LOCK_SEQUENCE,
                    entity_type="DocumentSequence",
                    entity_id=sequence_id,
                    user_id=locked_by,
                    entity_identifier=document_type,
                    old_values={"is_locked": False},
                    new_values={
                        "is_locked": True,
                        "starting_number": starting_number,
                        "prefix": prefix,
                    },
                )

        return SequenceLockResult(
            sequence_id=sequence_id,
            tenant_id=tenant_id,
            document_type=document_type,
            starting_number=starting_number,
            prefix=prefix,
            locked_at=locked_at,
            locked_by=locked_by,
        )
