"""Settlement records produced by extraction.settlement_parser."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from pydantic import Field

from models.canonical import FrozenBase


class SettlementType(str, Enum):
    UNIQUE = "unique"
    PARTIAL = "partial"
    FINAL = "final"
    ADJUSTMENT = "adjustment"


class AdjustmentType(str, Enum):
    FINAL_SETTLEMENT = "final_settlement"
    QUALITY_BONUS = "quality_bonus"
    QUALITY_DISCOUNT = "quality_discount"
    CORRECTION = "correction"
    TECHNICAL_ADJUSTMENT = "technical_adjustment"
    OTHER = "other"


class SettlementParty(FrozenBase):
    """Buyer, seller or broker of a settlement."""
    name: str
    cuit: str
    address: Optional[str] = None
    locality: Optional[str] = None
    vat_condition: Optional[str] = None
    gross_income_number: Optional[str] = None
    acted_as: Optional[str] = None


class CTG(FrozenBase):
    """A delivery-ticket lot settled by the document."""
    number: str
    quantity_kg: Decimal
    quantity_tons: Decimal
    grade: Optional[str] = None
    quality_factor: Optional[Decimal] = None
    protein: Optional[Decimal] = None
    origin: Optional[str] = None
    is_within_range: bool


class Deduction(FrozenBase):
    concept: str
    detail: str
    percentage: Optional[Decimal] = None
    calculation_base: Optional[Decimal] = None
    vat_rate: Optional[Decimal] = None
    vat_amount: Optional[Decimal] = None
    amount: Decimal


class Withholding(FrozenBase):
    concept: str
    detail: str
    certificate_number: Optional[str] = None
    certificate_amount: Optional[Decimal] = None
    certificate_date: Optional[date] = None
    calculation_base: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    amount: Decimal


class CommercialDiscount(FrozenBase):
    """Commercial discount split into the 1% commission and paritarias."""
    total: Decimal
    commission: Decimal
    paritarias: Optional[Decimal] = None


class PriceBreakdown(FrozenBase):
    """Net price per ton rebuilt in the fixed order discount → factor → freight.

    Attributes:
        net_price_per_ton_document: Value printed on the document, used only
            for calculation_matches
        calculation_matches: None when the document states no net price
    """
    contract_number: Optional[str] = None
    base_price_per_ton: Decimal
    commercial_discount: Optional[CommercialDiscount] = None
    price_after_commercial: Decimal
    quality_factor: Decimal
    factor_adjustment: Decimal
    factor_adjustment_document: Optional[Decimal] = None
    price_after_factor: Decimal
    freight: Decimal
    net_price_per_ton: Decimal
    net_price_per_kg: Decimal
    net_price_per_ton_document: Optional[Decimal] = None
    calculation_matches: Optional[bool] = None


class Settlement(FrozenBase):
    """Parsed and classified settlement."""
    coe: str
    settlement_type: SettlementType
    adjustment_type: Optional[AdjustmentType] = None
    original_coe: Optional[str] = None
    settlement_date: date
    operation_type: str
    activity: str

    buyer: SettlementParty
    seller: SettlementParty
    broker: Optional[SettlementParty] = None

    product: Optional[str] = None
    contracted_grade: Optional[str] = None
    delivered_grade: Optional[str] = None

    quantity_kg: Decimal
    price_per_kg: Optional[Decimal] = None
    subtotal: Decimal
    vat_rate: Optional[Decimal] = None
    vat_amount: Optional[Decimal] = None
    total_with_vat: Optional[Decimal] = None

    deductions: List[Deduction] = Field(default_factory=list)
    withholdings: List[Withholding] = Field(default_factory=list)
    total_deductions: Decimal
    total_withholdings: Decimal
    net_amount: Decimal
    deferred_vat: Optional[Decimal] = None

    # Partial settlements only
    percentage_liquidated: Optional[Decimal] = None
    percentage_retained: Optional[Decimal] = None
    retained_amount: Optional[Decimal] = None

    price_breakdown: Optional[PriceBreakdown] = None
    ctgs: List[CTG] = Field(default_factory=list)
    quality_factor: Decimal
    average_protein: Decimal

    is_canje: bool
    is_out_of_grade: bool
    additional_data: str = ""

    @property
    def contract_number(self) -> Optional[str]:
        return self.price_breakdown.contract_number if self.price_breakdown else None


class SettlementParseResult(FrozenBase):
    """Outcome of one SettlementParser.parse call."""
    success: bool
    settlement: Optional[Settlement] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
