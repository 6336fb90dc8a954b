"""Extraction entry points for grain documents.

Exposes high-level functions for loading documents from disk:
- extract_pdf_text(pdf_path) -> str
- parse_cpe_pdf(pdf_path) -> CpeParseResult
- load_settlement_document(path) -> SettlementDocument
- parse_settlement_file(path) -> SettlementParseResult
"""

import json
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

import fitz

from core.observability.logging import get_logger, with_correlation
from extraction.cpe_parser import CpeParser
from extraction.document_detector import DocumentType, detect_document_type
from extraction.settlement_parser import SettlementParser
from models.canonical import SettlementDocument
from models.cpe import CpeParseResult
from models.settlement import SettlementParseResult


logger = get_logger(__name__)

PathLike = Union[str, Path]


# =============================================================================
# PDF Text
# =============================================================================

def extract_pdf_text(pdf_path: PathLike) -> str:
    """Text layer of every page, joined by newlines. Scanned PDFs yield ''."""
    with fitz.open(pdf_path) as doc:
        pages = [doc.load_page(i).get_text("text") for i in range(doc.page_count)]
    return "\n".join(pages)


# =============================================================================
# Document Parsing
# =============================================================================

def parse_cpe_pdf(pdf_path: PathLike, parser: Optional[CpeParser] = None) -> CpeParseResult:
    """Extract and parse a CPE PDF.

    Args:
        pdf_path: Path to PDF file
        parser: Parser instance (a fresh CpeParser by default)

    Returns:
        CpeParseResult; success=False when the file is not a CPE
    """
    pdf_path = Path(pdf_path)
    with with_correlation(document_id=pdf_path.name, document_type="cpe", stage="extract"):
        text = extract_pdf_text(pdf_path)
        document_type = detect_document_type(text)
        if document_type != DocumentType.CPE:
            logger.warning(
                "Document is not a CPE",
                extra_fields={"detected_type": document_type.value},
            )
            return CpeParseResult(
                success=False,
                errors=[f"Document is not a CPE (detected: {document_type.value})"],
            )

        return (parser or CpeParser()).parse(text)


def load_settlement_document(path: PathLike) -> SettlementDocument:
    """Load a structured settlement JSON into a SettlementDocument.

    Raises:
        pydantic.ValidationError: If the JSON does not match the schema
    """
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw, parse_float=Decimal)
    return SettlementDocument.model_validate(data)


def parse_settlement_file(
    path: PathLike,
    parser: Optional[SettlementParser] = None,
) -> SettlementParseResult:
    """Load and parse a structured settlement JSON file."""
    document = load_settlement_document(path)
    return (parser or SettlementParser()).parse(document)
