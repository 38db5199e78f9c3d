# SPDX-License-Identifier: Apache-2.0

"""
Payment ledger rules.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ..models.entities import SUPERSEDABLE_PAYMENT_STATUSES
from ..models.enums import PaymentMethod, PaymentStatus

# Over-the-counter methods must carry a receipt
MANUAL_METHODS = frozenset({PaymentMethod.BARANGGAY_HALL.value, PaymentMethod.CITY_HALL.value})

CENT = Decimal("0.01")


@dataclass
class ValidationResult:
    """Result of payment validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def to_money(value: Any) -> Decimal:
    """Convert a stored float or string amount to a two-place Decimal."""
    return Decimal(str(value)).quantize(CENT)


def _exact(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("boolean is not an amount")
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise ValueError("amount is not finite")
    return amount


def validate_payment_amounts(amount: Any, service_fee: Any, net_amount: Any = None) -> ValidationResult:
    """
    Validate the amounts of a new payment.

    Amounts are compared exactly as given. Values finer than a cent and a net
    amount that differs from amount plus service fee are both reported, never
    rounded away. A missing net amount is taken as the exact sum.
    """
    errors = []
    try:
        values = {
            "Amount": _exact(amount),
            "Service fee": _exact(service_fee),
        }
        values["Net amount"] = (
            values["Amount"] + values["Service fee"] if net_amount is None else _exact(net_amount)
        )
    except (InvalidOperation, TypeError, ValueError):
        return ValidationResult(is_valid=False, errors=["Amounts must be numeric"])

    for label, value in values.items():
        if value.normalize().as_tuple().exponent < -2:
            errors.append(f"{label} {value} must have at most two decimal places")
    if errors:
        return ValidationResult(is_valid=False, errors=errors)

    amount_d, fee_d, net_d = values["Amount"], values["Service fee"], values["Net amount"]
    if amount_d <= 0:
        errors.append("Amount must be greater than zero")
    if fee_d < 0:
        errors.append("Service fee cannot be negative")
    if net_d != amount_d + fee_d:
        errors.append(
            f"Net amount {net_d} does not equal amount {amount_d} plus service fee {fee_d}"
        )
    return ValidationResult(is_valid=not errors, errors=errors)


def select_current_payment(payments: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Pick the payment that represents the application.

    An active (Pending or Complete) payment wins; otherwise the most recently
    created one.
    """
    if not payments:
        return None
    active = [p for p in payments if p.get("paymentStatus") in (
        PaymentStatus.PENDING.value, PaymentStatus.COMPLETE.value
    )]
    candidates = active or payments
    return max(candidates, key=lambda p: p.get("createdAt"))


def can_be_superseded(payment_status: str) -> bool:
    return payment_status in SUPERSEDABLE_PAYMENT_STATUSES
