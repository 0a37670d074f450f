from __future__ import annotations

import re
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from ledger.errors import NotFoundError, ValidationError
from ledger.models import OrderStatus, Payment
from ledger.money import ZERO, sum_money, to_exact_money


_PAYMENT_SUFFIX_RE = re.compile(r"-PAY-(\d+)$")


def amount_paid(payments: Optional[Iterable[Payment]]) -> Decimal:
    if not payments:
        return ZERO
    return sum_money(payment.amount for payment in payments)


def derive_status(balance_due: Decimal, current: OrderStatus) -> OrderStatus:
    if current == "Canceled":
        return "Canceled"
    return "Fulfilled" if balance_due <= 0 else "Pending"


def next_payment_id(document_id: str, payments: Sequence[Payment]) -> str:
    """Return ``<document_id>-PAY-NN`` one past the highest suffix in use.

    Ids stay unique after a payment in the middle is deleted.
    """
    highest = 0
    for payment in payments:
        match = _PAYMENT_SUFFIX_RE.search(payment.id)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{document_id}-PAY-{highest + 1:02d}"


def validate_payment_amount(amount, balance_due: Decimal) -> Decimal:
    value = to_exact_money(amount)
    if value <= 0:
        raise ValidationError(f"Payment amount must be positive, got {value}")
    if value > balance_due:
        raise ValidationError(f"Payment amount {value} exceeds balance due {balance_due}")
    return value


def find_payment(payments: Sequence[Payment], payment_id: str, document_id: str) -> int:
    for index, payment in enumerate(payments):
        if payment.id == payment_id:
            return index
    raise NotFoundError(f"Payment {payment_id} not found on {document_id}")
