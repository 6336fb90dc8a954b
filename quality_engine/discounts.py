"""
Discount Shapes

Evaluates a DiscountRule against a measured value. The four shapes:
- PROPORTIONAL: max(0, value - base) x factor
- LINEAR_SCALE: same formula, with a declared tolerance ceiling that is
  reported when exceeded but not enforced
- PROGRESSIVE: sum over contiguous tiers of (min(value, to) - from) x factor
- SEASONAL_TABLE: proportional with a month-dependent base; values above the
  rejection threshold reject the lot (discount 999)
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from models.quality import DiscountDetail, DiscountShape, QualityAnalysis, QualityWarning, TierDetail
from models.validation import Severity

from .models import DiscountRule, ProgressiveTier


ZERO = Decimal("0")
REJECTION_DISCOUNT = Decimal("999")


@dataclass(frozen=True)
class DiscountEvaluation:
    """
    Outcome of one discount rule.

    Attributes:
        detail: None when the value is within base
        rejected: Lot is rejected (seasonal table above threshold)
        warning: Tolerance or rejection notice
    """
    detail: Optional[DiscountDetail] = None
    rejected: bool = False
    warning: Optional[QualityWarning] = None


def measured_value(
    analysis: QualityAnalysis,
    field: str,
    add_fields: Tuple[str, ...] = (),
) -> Optional[Decimal]:
    """Value of a field plus any add_fields; None when the field was not measured."""
    value = getattr(analysis, field, None)
    if value is None:
        return None
    for extra in add_fields:
        extra_value = getattr(analysis, extra, None)
        if extra_value is not None:
            value += extra_value
    return value


def proportional_amount(value: Decimal, base: Decimal, factor: Decimal) -> Decimal:
    if value <= base:
        return ZERO
    return (value - base) * factor


def progressive_amount(
    value: Decimal,
    tiers: Tuple[ProgressiveTier, ...],
) -> Tuple[Decimal, List[TierDetail]]:
    """Sum tier by tier; tiers must be contiguous and ascending."""
    total = ZERO
    applied = []
    for tier in tiers:
        if value <= tier.from_value:
            break
        upper = min(value, tier.to_value)
        amount = (upper - tier.from_value) * tier.factor
        total += amount
        applied.append(TierDetail(
            from_value=tier.from_value,
            to_value=upper,
            factor=tier.factor,
            amount=amount,
        ))
        if value <= tier.to_value:
            break
    return total, applied


def seasonal_base(rule: DiscountRule, month: int) -> Decimal:
    for season in rule.seasonal_bases:
        if month in season.months:
            return season.base
    return rule.base


# =============================================================================
# Shape Evaluators
# =============================================================================

def _proportional(rule: DiscountRule, value: Decimal) -> DiscountEvaluation:
    discount = proportional_amount(value, rule.base, rule.factor)
    if discount <= 0:
        return DiscountEvaluation()
    return DiscountEvaluation(detail=DiscountDetail(
        concept=rule.concept,
        parameter=rule.field,
        shape=rule.shape,
        value=value,
        base=rule.base,
        factor=rule.factor,
        discount_percent=discount,
        calculation=f"({value} - {rule.base}) × {rule.factor} = {discount:.2f}%",
    ))


def _linear_scale(rule: DiscountRule, value: Decimal) -> DiscountEvaluation:
    evaluation = _proportional(rule, value)
    if evaluation.detail is None:
        return evaluation

    detail = evaluation.detail.model_copy(update={"tolerance": rule.tolerance})
    warning = None
    if rule.tolerance is not None and value > rule.tolerance:
        warning = QualityWarning(
            type="tolerance_exceeded",
            severity=Severity.WARNING,
            parameter=rule.field,
            message=f"{rule.concept} {value}% exceeds the {rule.tolerance}% tolerance of the scale",
            value=value,
            threshold=rule.tolerance,
        )
    return DiscountEvaluation(detail=detail, warning=warning)


def _progressive(rule: DiscountRule, value: Decimal) -> DiscountEvaluation:
    if value <= rule.base:
        return DiscountEvaluation()

    total, applied = progressive_amount(value, rule.tiers)
    if total <= 0:
        return DiscountEvaluation()

    calculation = " + ".join(
        f"[{t.from_value}-{t.to_value}] × {t.factor}: {t.amount:.2f}%" for t in applied
    ) + f" = {total:.2f}%"

    return DiscountEvaluation(detail=DiscountDetail(
        concept=rule.concept,
        parameter=rule.field,
        shape=rule.shape,
        value=value,
        base=rule.base,
        factor=applied[-1].factor,
        discount_percent=total,
        tolerance=rule.tolerance,
        tiers=applied,
        calculation=calculation,
    ))


def _seasonal_table(rule: DiscountRule, value: Decimal, month: int) -> DiscountEvaluation:
    base = seasonal_base(rule, month)

    if rule.rejection_threshold is not None and value > rule.rejection_threshold:
        detail = DiscountDetail(
            concept=rule.concept,
            parameter=rule.field,
            shape=rule.shape,
            value=value,
            base=base,
            factor=rule.factor,
            discount_percent=REJECTION_DISCOUNT,
            tolerance=rule.rejection_threshold,
            calculation=f"{value}% > {rule.rejection_threshold}%: rechazo",
        )
        warning = QualityWarning(
            type="rejection",
            severity=Severity.CRITICAL,
            parameter=rule.field,
            message=f"{rule.concept} {value}% above {rule.rejection_threshold}%: lot rejected",
            value=value,
            threshold=rule.rejection_threshold,
        )
        return DiscountEvaluation(detail=detail, rejected=True, warning=warning)

    discount = proportional_amount(value, base, rule.factor)
    if discount <= 0:
        return DiscountEvaluation()
    return DiscountEvaluation(detail=DiscountDetail(
        concept=rule.concept,
        parameter=rule.field,
        shape=rule.shape,
        value=value,
        base=base,
        factor=rule.factor,
        discount_percent=discount,
        tolerance=rule.rejection_threshold,
        calculation=f"({value} - {base}) × {rule.factor} = {discount:.2f}% (mes {month})",
    ))


def evaluate_discount(rule: DiscountRule, value: Decimal, month: int) -> DiscountEvaluation:
    """
    Evaluate one discount rule.

    Args:
        rule: Discount definition
        value: Measured value (already summed with add_fields)
        month: Calendar month of the analysis, used by seasonal tables

    Returns:
        DiscountEvaluation
    """
    match rule.shape:
        case DiscountShape.PROPORTIONAL:
            return _proportional(rule, value)
        case DiscountShape.LINEAR_SCALE:
            return _linear_scale(rule, value)
        case DiscountShape.PROGRESSIVE:
            return _progressive(rule, value)
        case DiscountShape.SEASONAL_TABLE:
            return _seasonal_table(rule, value, month)
    raise ValueError(f"Unknown discount shape: {rule.shape}")
