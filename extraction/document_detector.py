"""Classify a document text layer as a CPE or a settlement."""

from enum import Enum


class DocumentType(str, Enum):
    CPE = "cpe"
    SETTLEMENT = "settlement"
    UNKNOWN = "unknown"


def is_cpe(text: str) -> bool:
    lower = text.lower()
    return (
        "carta de porte electrónica" in lower
        or "carta de porte electronica" in lower
        or ("carta de porte" in lower and "automotor" in lower)
    )


def is_settlement(text: str) -> bool:
    lower = text.lower()
    return (
        "liquidación primaria de granos" in lower
        or "liquidacion primaria de granos" in lower
        or "formulario c1116" in lower
        or ("liquidación" in lower and "c.o.e" in lower)
    )


def detect_document_type(text: str) -> DocumentType:
    """CPE markers are checked first; a document matching both is a CPE."""
    if is_cpe(text):
        return DocumentType.CPE
    if is_settlement(text):
        return DocumentType.SETTLEMENT
    return DocumentType.UNKNOWN
