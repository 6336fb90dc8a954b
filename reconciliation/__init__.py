"""
Reconciliation Package

Cross-checks parsed settlements against contracts, CTGs and linked
partial/final settlements.

Usage:
    from reconciliation import SettlementValidator

    result = SettlementValidator().validate(settlement, contract=contract)
    print(result.valid, [e.type for e in result.errors])
"""

from .engine import (
    SettlementValidator,
    validate_settlement,
    check_amount_vs_contract,
    check_ctgs,
    check_pending_final,
    check_partial_plus_final,
    check_price_breakdown,
    should_notify_pending_final,
)

__all__ = [
    # Validator
    "SettlementValidator",
    "validate_settlement",
    # Checks
    "check_amount_vs_contract",
    "check_ctgs",
    "check_pending_final",
    "check_partial_plus_final",
    "check_price_breakdown",
    "should_notify_pending_final",
]
