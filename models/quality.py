"""Quality analysis inputs and quality calculation results."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, List

from pydantic import Field

from models.canonical import CanonicalBase, FrozenBase, DecimalValue, DateValue
from models.validation import Severity


class DiscountShape(str, Enum):
    """Closed set of discount shapes a rule set may declare."""
    PROPORTIONAL = "proportional"
    LINEAR_SCALE = "linear_scale"
    PROGRESSIVE = "progressive"
    SEASONAL_TABLE = "seasonal_table"


# =============================================================================
# Input
# =============================================================================

class QualityAnalysis(CanonicalBase):
    """Laboratory results for one CTG. Percentages unless noted."""
    ctg_number: str
    product: str
    analysis_date: Optional[DateValue] = None
    quantity_kg: Optional[DecimalValue] = None

    humidity: DecimalValue
    hectoliter_weight: Optional[DecimalValue] = None  # kg/hl
    protein: Optional[DecimalValue] = None
    fat_content: Optional[DecimalValue] = None
    foreign_matter: Optional[DecimalValue] = None
    damaged_grains: Optional[DecimalValue] = None
    burned_grains: Optional[DecimalValue] = None
    broken_grains: Optional[DecimalValue] = None
    green_grains: Optional[DecimalValue] = None
    black_grains: Optional[DecimalValue] = None
    panza_blanca: Optional[DecimalValue] = None
    pest_damaged: Optional[DecimalValue] = None
    sprouted_grains: Optional[DecimalValue] = None
    acidity: Optional[DecimalValue] = None
    live_insects: Optional[bool] = None

    laboratory: Optional[str] = None
    analyst: Optional[str] = None
    observations: Optional[str] = None


# =============================================================================
# Result parts
# =============================================================================

class QualityWarning(FrozenBase):
    type: str
    severity: Severity
    parameter: Optional[str] = None
    message: str
    value: Optional[Any] = None
    threshold: Optional[Any] = None


class BonusDetail(FrozenBase):
    """A special bonus. Negative bonus_percent is a penalty."""
    concept: str
    parameter: str
    value: Decimal
    base: Decimal
    factor: Decimal
    bonus_percent: Decimal
    calculation: str


class TierDetail(FrozenBase):
    from_value: Decimal = Field(alias="from")
    to_value: Decimal = Field(alias="to")
    factor: Decimal
    amount: Decimal


class DiscountDetail(FrozenBase):
    concept: str
    parameter: str
    shape: DiscountShape
    value: Decimal
    base: Decimal
    factor: Decimal
    discount_percent: Decimal
    tolerance: Optional[Decimal] = None
    tiers: List[TierDetail] = Field(default_factory=list)
    calculation: str


class MoistureLoss(FrozenBase):
    """Merma por secado y manipuleo."""
    base_humidity: Decimal
    actual_humidity: Decimal
    rounded_humidity: Optional[Decimal] = None
    drying_waste_percent: Decimal
    handling_waste_percent: Decimal
    total_waste_percent: Decimal
    gross_quantity_kg: Decimal
    waste_kg: Decimal
    net_quantity_kg: Decimal
    requires_drying: bool


class QualityResult(FrozenBase):
    """Complete quality calculation for one CTG."""
    ctg_number: str
    product: str
    grade: Optional[str] = None
    grade_by_parameter: Dict[str, str] = Field(default_factory=dict)
    worst_parameter: Optional[str] = None
    base_factor: Decimal = Decimal("100")
    grade_adjustment: Decimal
    bonuses: List[BonusDetail] = Field(default_factory=list)
    total_bonus: Decimal
    discounts: List[DiscountDetail] = Field(default_factory=list)
    total_discount: Decimal
    final_factor: Decimal
    moisture_loss: MoistureLoss
    is_out_of_standard: bool
    is_rejected: bool = False
    warnings: List[QualityWarning] = Field(default_factory=list)
    calculation_steps: List[str] = Field(default_factory=list)


# =============================================================================
# Supplementary results
# =============================================================================

class LotQuality(FrozenBase):
    ctg_number: str
    quantity_kg: Decimal
    grade: Optional[str] = None
    final_factor: Decimal


class AggregatedQualityResult(FrozenBase):
    """Quantity-weighted quality over the CTGs of one settlement."""
    product: str
    total_quantity_kg: Decimal
    weighted_factor: Decimal
    weighted_bonus: Decimal
    weighted_discount: Decimal
    worst_grade: Optional[str] = None
    total_waste_kg: Decimal
    total_net_quantity_kg: Decimal
    lots: List[LotQuality] = Field(default_factory=list)
    results: List[QualityResult] = Field(default_factory=list)


class DiscrepancyStatus(str, Enum):
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class FactorComparison(FrozenBase):
    """Calculated factor vs the factor the buyer liquidated."""
    calculated_factor: Decimal
    document_factor: Decimal
    difference: Decimal
    status: DiscrepancyStatus
    message: str


class PriceAdjustment(FrozenBase):
    base_price_per_ton: Decimal
    adjusted_price_per_ton: Decimal
    adjustment_percent: Decimal
    gross_quantity_kg: Decimal
    net_quantity_kg: Decimal
    gross_amount: Decimal
    net_amount: Decimal
