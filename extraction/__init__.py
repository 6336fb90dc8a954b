"""
Extraction Package

Turns grain documents into structured records:
- CpeParser: Carta de Porte Electrónica text → ParsedCpe
- SettlementParser: structured settlement → classified Settlement
- detect_document_type: CPE / settlement / unknown

Usage:
    from extraction import CpeParser, SettlementParser

    result = CpeParser().parse(text)
    settlement = SettlementParser().parse(document).settlement
"""

from .cpe_parser import (
    CpeParser,
    extract_section,
    split_gross_tare,
)

from .settlement_parser import (
    SettlementParser,
    compute_price_breakdown,
    infer_settlement_type,
    identify_adjustment_type,
    extract_original_coe,
)

from .document_detector import (
    DocumentType,
    detect_document_type,
)

from .runner import (
    extract_pdf_text,
    parse_cpe_pdf,
    load_settlement_document,
    parse_settlement_file,
)

__all__ = [
    # CPE
    "CpeParser",
    "extract_section",
    "split_gross_tare",
    # Settlement
    "SettlementParser",
    "compute_price_breakdown",
    "infer_settlement_type",
    "identify_adjustment_type",
    "extract_original_coe",
    # Detection
    "DocumentType",
    "detect_document_type",
    # Runner
    "extract_pdf_text",
    "parse_cpe_pdf",
    "load_settlement_document",
    "parse_settlement_file",
]
