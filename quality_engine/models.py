"""
Quality Engine Models

Defines the rule-set data a single engine is parameterized with:
- Grade bands per measured field
- Special bonus rules (protein, fat, hectoliter weight)
- Discount rules (one of the DiscountShape variants)
- Out-of-standard conditions
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, Union

from models.quality import DiscountShape


class Comparison(str, Enum):
    """Operators allowed in out-of-standard conditions"""
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "=="


def grade_label(grade: Optional[int]) -> Optional[str]:
    return f"G{grade}" if grade is not None else None


# =============================================================================
# Grading
# =============================================================================

@dataclass(frozen=True)
class GradeBand:
    """
    One band of a grading table.

    A value satisfies the band when min_value <= value <= max_value; a missing
    bound is open.
    """
    grade: int
    min_value: Optional[Decimal] = None
    max_value: Optional[Decimal] = None

    def matches(self, value: Decimal) -> bool:
        if self.min_value is not None and value < self.min_value:
            return False
        if self.max_value is not None and value > self.max_value:
            return False
        return True


@dataclass(frozen=True)
class GradeParameter:
    """
    Grading table for one measured field.

    Attributes:
        field: QualityAnalysis attribute
        bands: Checked in order; the first band the value satisfies wins
        add_fields: Extra attributes summed into the value (e.g. burned
            grains count as damaged grains for wheat)
    """
    field: str
    bands: Tuple[GradeBand, ...]
    add_fields: Tuple[str, ...] = ()


# =============================================================================
# Special Bonuses
# =============================================================================

@dataclass(frozen=True)
class PenaltyBand:
    """Protein penalty factor applied while protein >= min_protein."""
    factor: Decimal
    min_protein: Optional[Decimal] = None


@dataclass(frozen=True)
class ProteinBonusRule:
    """
    Protein bonus/penalty (wheat).

    At or above base the bonus is (protein - base) x factor, granted only when
    the hectoliter weight reaches hectoliter_gate. Below base the first
    matching penalty band gives the factor for (base - protein).
    """
    base: Decimal = Decimal("11.0")
    factor: Decimal = Decimal("2.0")
    hectoliter_gate: Decimal = Decimal("75")
    penalty_bands: Tuple[PenaltyBand, ...] = ()


@dataclass(frozen=True)
class FatBonusRule:
    """Bidirectional fat content bonus (sunflower)."""
    base: Decimal = Decimal("42.0")
    factor: Decimal = Decimal("2.0")


@dataclass(frozen=True)
class HectoliterBonusBand:
    threshold: Decimal
    bonus: Decimal


# =============================================================================
# Discounts
# =============================================================================

@dataclass(frozen=True)
class ProgressiveTier:
    from_value: Decimal
    to_value: Decimal
    factor: Decimal


@dataclass(frozen=True)
class SeasonalBase:
    """Discount base in force for the given calendar months."""
    months: Tuple[int, ...]
    base: Decimal


@dataclass(frozen=True)
class DiscountRule:
    """
    A discount definition.

    Attributes:
        concept: Printed concept name
        field: QualityAnalysis attribute
        shape: Which discount formula applies
        base: Free allowance; nothing is discounted at or below it
        factor: Percentage points per point over base
        tolerance: Declared ceiling of a linear scale (reported, not enforced)
        tiers: Contiguous ascending tiers of a progressive discount
        seasonal_bases: Month-dependent bases of a seasonal table
        rejection_threshold: Values above it reject the lot (seasonal table)
        add_fields: Extra attributes summed into the value
    """
    concept: str
    field: str
    shape: DiscountShape
    base: Decimal
    factor: Decimal = Decimal("1.0")
    tolerance: Optional[Decimal] = None
    tiers: Tuple[ProgressiveTier, ...] = ()
    seasonal_bases: Tuple[SeasonalBase, ...] = ()
    rejection_threshold: Optional[Decimal] = None
    add_fields: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.shape == DiscountShape.PROGRESSIVE:
            if not self.tiers:
                raise ValueError(f"Progressive discount {self.concept!r} needs tiers")
            for lower, upper in zip(self.tiers, self.tiers[1:]):
                if lower.to_value != upper.from_value:
                    raise ValueError(
                        f"Tiers of {self.concept!r} are not contiguous at {lower.to_value}"
                    )
            for tier in self.tiers:
                if tier.to_value <= tier.from_value:
                    raise ValueError(f"Tier {tier} of {self.concept!r} is empty or reversed")
        if self.shape == DiscountShape.SEASONAL_TABLE and not self.seasonal_bases:
            raise ValueError(f"Seasonal discount {self.concept!r} needs seasonal_bases")


# =============================================================================
# Out of Standard
# =============================================================================

@dataclass(frozen=True)
class OutOfStandardCondition:
    field: str
    operator: Comparison
    threshold: Union[Decimal, bool]
    reason: str

    def evaluate(self, value: Any) -> bool:
        """True when the value breaches the condition. Missing values never do."""
        if value is None:
            return False
        if self.operator == Comparison.EQ:
            return value == self.threshold
        if isinstance(value, bool) or isinstance(self.threshold, bool):
            return False
        if self.operator == Comparison.GT:
            return value > self.threshold
        if self.operator == Comparison.GTE:
            return value >= self.threshold
        if self.operator == Comparison.LT:
            return value < self.threshold
        return value <= self.threshold


# =============================================================================
# Rule Set
# =============================================================================

@dataclass(frozen=True)
class GrainRuleSet:
    """
    Complete regulatory configuration for one grain.

    Attributes:
        product: Canonical product key ("trigo", "soja", ...)
        display_name: Printed grain name
        base_humidity: Commercial base humidity; drying applies above it
        has_grades: False for soy and sunflower
        grade_parameters: Grading tables; overall grade is the worst one
        grade_adjustments: Signed factor points by grade number
        worst_grade: Grade assigned when no band matches
        protein_bonus: Wheat protein rule
        fat_bonus: Sunflower fat rule
        hectoliter_bonus_bands: Descending "value >= threshold" bonuses
        discounts: Discount rules, applied in order
        out_of_standard: Conditions that flag the lot
    """
    product: str
    display_name: str
    base_humidity: Decimal
    has_grades: bool = False
    grade_parameters: Tuple[GradeParameter, ...] = ()
    grade_adjustments: Mapping[int, Decimal] = field(default_factory=dict)
    worst_grade: int = 3
    protein_bonus: Optional[ProteinBonusRule] = None
    fat_bonus: Optional[FatBonusRule] = None
    hectoliter_bonus_bands: Tuple[HectoliterBonusBand, ...] = ()
    discounts: Tuple[DiscountRule, ...] = ()
    out_of_standard: Tuple[OutOfStandardCondition, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "grade_adjustments", MappingProxyType(dict(self.grade_adjustments)))

    def grade_adjustment(self, grade: Optional[int]) -> Decimal:
        if grade is None:
            return Decimal("0")
        return self.grade_adjustments.get(grade, Decimal("0"))
