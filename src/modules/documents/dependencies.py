from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.database import get_session_factory
from src.core.sequences.engine import DocumentSequenceEngine
from src.modules.documents.service import make_issued_checker


def get_sequence_engine(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> DocumentSequenceEngine:
    """Sequence engine wired to the document store for the "has issued" check."""
    return DocumentSequenceEngine(
        session_factory,
        issued_checker=make_issued_checker(session_factory),
    )


SequenceEngine = Annotated[DocumentSequenceEngine, Depends(get_sequence_engine)]
