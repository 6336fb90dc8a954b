"""Validation findings shared by the quality engine and the settlement validator."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, List

from pydantic import Field

from models.canonical import FrozenBase, DecimalValue


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class ValidationIssue(FrozenBase):
    """One finding of the settlement validator."""
    type: str
    severity: Severity
    message: str
    field: Optional[str] = None
    expected: Optional[Any] = None
    actual: Optional[Any] = None
    difference: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ValidationResult(FrozenBase):
    """valid is False only when at least one error-severity issue exists."""
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    @property
    def issues(self) -> List[ValidationIssue]:
        return list(self.errors) + list(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


class Contract(FrozenBase):
    """Purchase contract a settlement is booked against."""
    contract_number: str
    expected_amount: DecimalValue
    product: Optional[str] = None
    quantity_kg: Optional[DecimalValue] = None
    price_per_ton: Optional[DecimalValue] = None
