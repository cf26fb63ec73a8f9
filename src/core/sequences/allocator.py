from dataclasses import dataclass

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from src.core.audit import AuditAction, create_audit_log
from src.core.config import settings
from src.core.exceptions import (
    AllocationContentionError,
    SequenceNotLockedError,
    StoreUnavailableError,
)
from src.core.sequences.store import IncrementResult, SequenceStore, is_contention_error

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AllocationRetryConfig:
    """Retry budget for sequence writes that collide with concurrent writers."""

    max_attempts: int = settings.sequence_allocation_max_attempts
    backoff_multiplier: float = settings.sequence_allocation_backoff_multiplier
    backoff_max: float = settings.sequence_allocation_backoff_max


@dataclass(frozen=True)
class AllocatedNumber:
    number: int
    prefix: str | None


def retry_on_contention(config: AllocationRetryConfig, event: str, **context) -> AsyncRetrying:
    """Retry only transient lock errors, logging `event` before each sleep."""

    def _log_retry(retry_state: RetryCallState) -> None:
        logger.info(
            event,
            attempt=retry_state.attempt_number,
            max_attempts=config.max_attempts,
            **context,
        )

    return AsyncRetrying(
        retry=retry_if_exception(is_contention_error),
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_random_exponential(multiplier=config.backoff_multiplier, max=config.backoff_max),
        before_sleep=_log_retry,
    )


class SequenceAllocator:
    """
    Hands out the next number of a locked sequence.

    The reservation is one UPDATE ... RETURNING committed in its own
    transaction. It is never rolled back by the allocator: if the caller
    fails to store its document afterwards the number becomes a gap,
    which is preferred over ever issuing the same number twice.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_config: AllocationRetryConfig | None = None,
    ):
        self.session_factory = session_factory
        self.retry_config = retry_config or AllocationRetryConfig()

    async def allocate_next(self, tenant_id: str, document_type: str) -> AllocatedNumber:
        """
        Reserve and return the next number.

        Raises:
            SequenceNotLockedError: no starting number yet, nothing changed
            AllocationContentionError: retry budget spent on contention
            StoreUnavailableError: the store failed, nothing was changed
        """
        try:
            retrying = retry_on_contention(
                self.retry_config,
                "sequence_allocation_contention",
                tenant_id=tenant_id,
                document_type=document_type,
            )
            async for attempt in retrying:
                with attempt:
                    result = await self._increment(tenant_id, document_type)
        except RetryError as exc:
            logger.warning(
                "sequence_allocation_exhausted",
                tenant_id=tenant_id,
                document_type=document_type,
                attempts=self.retry_config.max_attempts,
            )
            raise AllocationContentionError(
                tenant_id, document_type, self.retry_config.max_attempts
            ) from exc
        except (SQLAlchemyError, OSError) as exc:
            logger.error(
                "sequence_allocation_store_error",
                tenant_id=tenant_id,
                document_type=document_type,
                error=str(exc),
            )
            raise StoreUnavailableError("allocate", str(exc)) from exc

        if result is None:
            logger.info(
                "sequence_allocation_rejected",
                tenant_id=tenant_id,
                document_type=document_type,
            )
            raise SequenceNotLockedError(tenant_id, document_type)

        logger.info(
            "sequence_number_allocated",
            tenant_id=tenant_id,
            document_type=document_type,
            number=result.number,
        )
        return AllocatedNumber(number=result.number, prefix=result.prefix)

    async def _increment(self, tenant_id: str, document_type: str) -> IncrementResult | None:
        async with self.session_factory() as session:
            async with session.begin():
                return await SequenceStore(session).increment(tenant_id, document_type)

    async def record_gap(
        self,
        tenant_id: str,
        document_type: str,
        number: int,
        reason: str,
        user_id: str | None = None,
    ) -> None:
        """
        Record that an allocated number will never be attached to a document.

        Written in its own transaction so it survives the caller's rollback.

        Raises:
            SequenceNotLockedError: no locked sequence could have issued the number
            StoreUnavailableError: the store failed, no entry was written
        """
        logger.warning(
            "sequence_gap",
            tenant_id=tenant_id,
            document_type=document_type,
            number=number,
            reason=reason,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    sequence = await SequenceStore(session).get(tenant_id, document_type)
                    if sequence is None or not sequence.is_locked:
                        # Only a locked sequence can have handed out the number
                        raise SequenceNotLockedError(tenant_id, document_type)
                    await create_audit_log(
                        session=session,
                        tenant_id=tenant_id,
                        action=AuditAction.SEQUENCE_GAP,
                        entity_type="DocumentSequence",
                        entity_id=sequence.id,
                        user_id=user_id,
                        entity_identifier=f"{document_type}:{number}",
                        new_values={"number": number},
                        comment=reason,
                    )
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailableError("record_gap", str(exc)) from exc
