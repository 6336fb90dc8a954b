"""Settlement validation engine.

Cross-checks a parsed settlement against related records supplied by the
caller. Nothing is looked up here: the contract, the other settlements of the
contract, the linked partial and the finals that reference a partial are all
passed in.

Exposes high-level function:
- validate_settlement(settlement, ...) -> ValidationResult

Checks:
- Amount vs contract (threshold $100,000)
- CTG sum, duplicates, weight range (15-38 Tn) and factor consistency
- Pending final settlement for partials (due after 30 days)
- Partial + final sum vs the partial subtotal
- Price breakdown consistency
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from core.observability.logging import get_logger, with_correlation
from models.settlement import PriceBreakdown, Settlement, SettlementType
from models.validation import Contract, Severity, ValidationIssue, ValidationResult


logger = get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================

AMOUNT_THRESHOLD = Decimal("100000")
CTG_QUANTITY_TOLERANCE = Decimal("0.1")
CTG_MIN_TONS = Decimal("15")
CTG_MAX_TONS = Decimal("38")
FINAL_DUE_DAYS = 30
PARTIAL_FINAL_PERCENT_TOLERANCE = Decimal("0.01")
NOTIFICATION_INTERVAL_DAYS = 15


def _issue(
    type: str,
    severity: Severity,
    message: str,
    field: Optional[str] = None,
    **values,
) -> ValidationIssue:
    return ValidationIssue(type=type, severity=severity, message=message, field=field, **values)


# =============================================================================
# Individual Check Functions
# =============================================================================

def check_amount_vs_contract(
    settlement: Settlement,
    contract: Optional[Contract],
    contract_settlements: Iterable[Settlement] = (),
    threshold: Decimal = AMOUNT_THRESHOLD,
) -> List[ValidationIssue]:
    """Net amount settled against a contract vs its expected amount.

    Adjustments are excluded from the total. The settlement under validation
    counts once even when it is also listed in contract_settlements.
    """
    if contract is None:
        reference = settlement.contract_number
        message = (
            f"Contract {reference} not found, cannot validate amount"
            if reference else "Contract not found, cannot validate amount"
        )
        return [_issue("contract_not_found", Severity.WARNING, message, "contract")]

    by_coe: Dict[str, Settlement] = {s.coe: s for s in contract_settlements}
    by_coe[settlement.coe] = settlement
    total = sum(
        (s.net_amount for s in by_coe.values() if s.settlement_type != SettlementType.ADJUSTMENT),
        Decimal("0"),
    )

    expected = contract.expected_amount
    difference = abs(total - expected)

    if difference >= threshold:
        return [_issue(
            "amount_mismatch",
            Severity.CRITICAL,
            f"Amount difference of ${difference:.2f} exceeds threshold of ${threshold}",
            "net_amount",
            expected=expected,
            actual=total,
            difference=difference,
        )]
    if difference > 0:
        return [_issue(
            "amount_difference",
            Severity.INFO,
            f"Amount difference of ${difference:.2f} within acceptable threshold",
            "net_amount",
            expected=expected,
            actual=total,
            difference=difference,
        )]
    return []


def check_ctgs(
    settlement: Settlement,
    tolerance: Decimal = CTG_QUANTITY_TOLERANCE,
    min_tons: Decimal = CTG_MIN_TONS,
    max_tons: Decimal = CTG_MAX_TONS,
) -> List[ValidationIssue]:
    """CTG sum, weight range, duplicates and factor consistency."""
    if not settlement.ctgs:
        # Finals and adjustments settle no new goods
        if settlement.settlement_type in (SettlementType.FINAL, SettlementType.ADJUSTMENT):
            return []
        return [_issue("no_ctgs", Severity.WARNING, "No CTGs found in settlement", "ctgs")]

    issues = []

    total_kg = sum((ctg.quantity_kg for ctg in settlement.ctgs), Decimal("0"))
    difference = abs(total_kg - settlement.quantity_kg)
    if difference > tolerance:
        issues.append(_issue(
            "ctg_quantity_mismatch",
            Severity.CRITICAL,
            f"Sum of CTGs ({total_kg} Kg) does not match total quantity ({settlement.quantity_kg} Kg)",
            "ctgs",
            expected=settlement.quantity_kg,
            actual=total_kg,
            difference=difference,
        ))

    for index, ctg in enumerate(settlement.ctgs):
        if ctg.quantity_tons < min_tons or ctg.quantity_tons > max_tons:
            issues.append(_issue(
                "ctg_weight_out_of_range",
                Severity.WARNING,
                f"CTG {ctg.number} weight ({ctg.quantity_tons:.1f} Tn) is outside "
                f"normal range ({min_tons}-{max_tons} Tn)",
                f"ctgs[{index}]",
                actual=ctg.quantity_tons,
            ))

    numbers = [ctg.number for ctg in settlement.ctgs]
    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    if duplicates:
        issues.append(_issue(
            "duplicate_ctg",
            Severity.CRITICAL,
            f"Duplicate CTG numbers found: {', '.join(duplicates)}",
            "ctgs",
        ))

    factors = []
    for ctg in settlement.ctgs:
        if ctg.quality_factor not in factors:
            factors.append(ctg.quality_factor)
    if len(factors) > 1:
        issues.append(_issue(
            "inconsistent_factors",
            Severity.INFO,
            f"Multiple different factors found across CTGs: {', '.join(str(f) for f in factors)}",
            "ctgs",
        ))

    return issues


def days_between(start: date, end: date) -> int:
    return (end - start).days


def should_notify_pending_final(days_overdue: int) -> bool:
    """Notify on the first overdue day and every 15 days after it."""
    return days_overdue >= 1 and days_overdue % NOTIFICATION_INTERVAL_DAYS == 1


def check_pending_final(
    settlement: Settlement,
    finals: Iterable[Settlement] = (),
    today: Optional[date] = None,
    due_days: int = FINAL_DUE_DAYS,
) -> List[ValidationIssue]:
    """Whether a partial settlement already has its final.

    finals are the final or adjustment settlements whose original_coe
    references this partial.
    """
    if settlement.settlement_type != SettlementType.PARTIAL:
        return []

    linked = [f for f in finals if f.original_coe == settlement.coe]
    if len(linked) > 1:
        return [_issue(
            "multiple_finals",
            Severity.WARNING,
            f"Multiple final settlements found ({len(linked)})",
            "original_coe",
        )]
    if linked:
        return []

    days_since = days_between(settlement.settlement_date, today or date.today())
    if days_since > due_days:
        overdue = days_since - due_days
        return [_issue(
            "missing_final",
            Severity.WARNING,
            f"Final settlement overdue by {overdue} days",
            "original_coe",
            actual=days_since,
            difference=overdue,
        )]
    return [_issue(
        "final_pending",
        Severity.INFO,
        f"Final settlement expected within {due_days - days_since} days",
        "original_coe",
        actual=days_since,
    )]


def check_partial_plus_final(
    settlement: Settlement,
    partial: Optional[Settlement],
    amount_threshold: Decimal = AMOUNT_THRESHOLD,
) -> List[ValidationIssue]:
    """Partial net + final net should equal the partial subtotal.

    Tolerance is 1% of the subtotal, capped at amount_threshold.
    """
    if settlement.settlement_type != SettlementType.FINAL:
        return []

    if not settlement.original_coe:
        return [_issue(
            "no_original_coe",
            Severity.WARNING,
            "Final settlement without reference to original partial",
            "original_coe",
        )]

    if partial is None or partial.coe != settlement.original_coe:
        return [_issue(
            "partial_not_found",
            Severity.CRITICAL,
            f"Original partial settlement {settlement.original_coe} not found",
            "original_coe",
            expected=settlement.original_coe,
        )]

    total_paid = partial.net_amount + settlement.net_amount
    expected = partial.subtotal
    difference = abs(total_paid - expected)
    threshold = min(expected * PARTIAL_FINAL_PERCENT_TOLERANCE, amount_threshold)

    if difference > threshold:
        return [_issue(
            "partial_final_sum_mismatch",
            Severity.CRITICAL,
            f"Sum of partial + final ({total_paid:.2f}) does not match expected total ({expected:.2f})",
            "net_amount",
            expected=expected,
            actual=total_paid,
            difference=difference,
        )]
    if difference > 0:
        return [_issue(
            "partial_final_difference",
            Severity.INFO,
            f"Small difference in partial + final sum: ${difference:.2f}",
            "net_amount",
            difference=difference,
        )]
    return []


def check_price_breakdown(price_breakdown: Optional[PriceBreakdown]) -> List[ValidationIssue]:
    if price_breakdown is None or price_breakdown.calculation_matches is not False:
        return []

    document_price = price_breakdown.net_price_per_ton_document or Decimal("0")
    return [_issue(
        "price_calculation_mismatch",
        Severity.WARNING,
        "Calculated price does not match document price",
        "price_breakdown",
        expected=price_breakdown.net_price_per_ton_document,
        actual=price_breakdown.net_price_per_ton,
        difference=abs(price_breakdown.net_price_per_ton - document_price),
    )]


# =============================================================================
# Validator
# =============================================================================

class SettlementValidator:
    """
    Runs every settlement check with one set of thresholds.

    Usage:
        validator = SettlementValidator()
        result = validator.validate(settlement, contract=contract)
        if not result.valid:
            for error in result.errors:
                print(error.type, error.message)
    """

    def __init__(
        self,
        amount_threshold: Decimal = AMOUNT_THRESHOLD,
        ctg_quantity_tolerance: Decimal = CTG_QUANTITY_TOLERANCE,
        min_ctg_tons: Decimal = CTG_MIN_TONS,
        max_ctg_tons: Decimal = CTG_MAX_TONS,
        final_due_days: int = FINAL_DUE_DAYS,
    ):
        """
        Initialize the validator.

        Args:
            amount_threshold: Contract difference that becomes an error
            ctg_quantity_tolerance: Allowed kg difference between CTG sum and quantity
            min_ctg_tons: Lower bound of the normal truck load
            max_ctg_tons: Upper bound of the normal truck load
            final_due_days: Days a partial may wait for its final settlement
        """
        self.amount_threshold = Decimal(amount_threshold)
        self.ctg_quantity_tolerance = Decimal(ctg_quantity_tolerance)
        self.min_ctg_tons = Decimal(min_ctg_tons)
        self.max_ctg_tons = Decimal(max_ctg_tons)
        self.final_due_days = final_due_days

    @classmethod
    def from_settings(cls, settings) -> "SettlementValidator":
        return cls(
            amount_threshold=settings.amount_threshold,
            final_due_days=settings.final_due_days,
        )

    def validate(
        self,
        settlement: Settlement,
        contract: Optional[Contract] = None,
        contract_settlements: Iterable[Settlement] = (),
        partial: Optional[Settlement] = None,
        finals: Iterable[Settlement] = (),
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Validate a settlement.

        Args:
            settlement: Settlement under validation
            contract: Contract referenced by the settlement, if known
            contract_settlements: Other settlements booked against the contract
            partial: Partial settlement a final refers to
            finals: Finals or adjustments that reference this settlement
            today: Reference date for the pending-final check

        Returns:
            ValidationResult; critical issues go to errors, the rest to warnings
        """
        with with_correlation(coe=settlement.coe, stage="validate"):
            issues: List[ValidationIssue] = []
            issues.extend(check_amount_vs_contract(
                settlement, contract, contract_settlements, self.amount_threshold,
            ))
            issues.extend(check_ctgs(
                settlement, self.ctg_quantity_tolerance, self.min_ctg_tons, self.max_ctg_tons,
            ))
            issues.extend(check_pending_final(settlement, finals, today, self.final_due_days))
            issues.extend(check_partial_plus_final(settlement, partial, self.amount_threshold))
            issues.extend(check_price_breakdown(settlement.price_breakdown))

            errors = [i for i in issues if i.severity == Severity.CRITICAL]
            warnings = [i for i in issues if i.severity != Severity.CRITICAL]

            logger.info(
                "Settlement validated",
                extra_fields={
                    "settlement_type": settlement.settlement_type.value,
                    "errors": len(errors),
                    "warnings": len(warnings),
                },
            )
            return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_settlement(settlement: Settlement, **related) -> ValidationResult:
    """Validate with the default thresholds."""
    return SettlementValidator().validate(settlement, **related)
