from src.core.sequences.models import DocumentSequence, DocumentType
from src.core.sequences.allocator import AllocatedNumber, AllocationRetryConfig, SequenceAllocator
from src.core.sequences.lock import SequenceLock, SequenceLockResult
from src.core.sequences.query import SequenceQueryService, SequenceStatus
from src.core.sequences.engine import DocumentSequenceEngine
from src.core.sequences.formatting import format_document_number

__all__ = [
    "DocumentSequence",
    "DocumentType",
    "AllocatedNumber",
    "AllocationRetryConfig",
    "SequenceAllocator",
    "SequenceLock",
    "SequenceLockResult",
    "SequenceQueryService",
    "SequenceStatus",
    "DocumentSequenceEngine",
    "format_document_number",
]
