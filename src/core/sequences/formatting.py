from src.core.config import settings


def format_document_number(prefix: str | None, number: int, digits: int | None = None) -> str:
    """
    Display form of a document number: prefix followed by the zero-padded number.

    Examples:
        format_document_number(None, 42)      -> "000042"
        format_document_number("RC-", 1001)   -> "RC-001001"
    """
    width = digits if digits is not None else settings.document_number_digits
    return f"{prefix or ''}{number:0{width}d}"
