from src.modules.documents.models import Document, DocumentStatus
from src.modules.documents.service import DocumentService, has_issued_documents
from src.modules.documents.router import router, sequences_router

__all__ = [
    "Document",
    "DocumentStatus",
    "DocumentService",
    "has_issued_documents",
    "router",
    "sequences_router",
]
