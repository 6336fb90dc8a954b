"""Models Package.

Data models for the grain settlement engine including:
- Canonical settlement documents as extracted upstream (C1116 form)
- Parsed CPE and settlement records
- Quality analysis inputs and quality results
- Validation findings
"""

from models.canonical import (
    CanonicalBase,
    FrozenBase,
    DecimalValue,
    DateValue,
    parse_number,
    SettlementDocument,
    DocumentParty,
    DocumentBroker,
    OperationConditions,
    DeliveredGoods,
    Operation,
    DocumentDeduction,
    DocumentWithholding,
    DocumentTotals,
)

from models.cpe import (
    Party,
    ParsedCpe,
    CpeParseResult,
)

from models.settlement import (
    SettlementType,
    AdjustmentType,
    SettlementParty,
    CTG,
    Deduction,
    Withholding,
    CommercialDiscount,
    PriceBreakdown,
    Settlement,
    SettlementParseResult,
)

from models.quality import (
    DiscountShape,
    QualityAnalysis,
    QualityWarning,
    BonusDetail,
    TierDetail,
    DiscountDetail,
    MoistureLoss,
    QualityResult,
    LotQuality,
    AggregatedQualityResult,
    DiscrepancyStatus,
    FactorComparison,
    PriceAdjustment,
)

from models.validation import (
    Severity,
    ValidationIssue,
    ValidationResult,
    Contract,
)

__all__ = [
    # Canonical
    "CanonicalBase",
    "FrozenBase",
    "DecimalValue",
    "DateValue",
    "parse_number",
    "SettlementDocument",
    "DocumentParty",
    "DocumentBroker",
    "OperationConditions",
    "DeliveredGoods",
    "Operation",
    "DocumentDeduction",
    "DocumentWithholding",
    "DocumentTotals",
    # CPE
    "Party",
    "ParsedCpe",
    "CpeParseResult",
    # Settlement
    "SettlementType",
    "AdjustmentType",
    "SettlementParty",
    "CTG",
    "Deduction",
    "Withholding",
    "CommercialDiscount",
    "PriceBreakdown",
    "Settlement",
    "SettlementParseResult",
    # Quality
    "DiscountShape",
    "QualityAnalysis",
    "QualityWarning",
    "BonusDetail",
    "TierDetail",
    "DiscountDetail",
    "MoistureLoss",
    "QualityResult",
    "LotQuality",
    "AggregatedQualityResult",
    "DiscrepancyStatus",
    "FactorComparison",
    "PriceAdjustment",
    # Validation
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "Contract",
]
