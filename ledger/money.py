from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from ledger.errors import ValidationError


CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
FLOAT_NOISE = Decimal("1e-9")


def to_money(value: Any) -> Decimal:
    """Coerce ``value`` to a Decimal quantized to cents.

    Floats go through ``str`` first so 0.1 stays 0.1 instead of picking up
    binary noise. ``None`` is treated as zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(f"Invalid money amount: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValidationError(f"Invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid money amount: {value!r}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(f"Money amount out of range: {value!r}") from exc


def to_exact_money(value: Any) -> Decimal:
    """Like ``to_money`` but refuses amounts with fractions of a cent.

    Float noise below ``FLOAT_NOISE`` is still rounded away.
    """
    amount = to_money(value)
    if value is None:
        return amount
    raw = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    if abs(raw - amount) > FLOAT_NOISE:
        raise ValidationError(f"Money amount {value!r} has fractions of a cent")
    return amount


def sum_money(values: Iterable[Any]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def percent_of(amount: Any, percent: Any) -> Decimal:
    return to_money(to_money(amount) * Decimal(str(percent)) / HUNDRED)


def to_float(amount: Decimal) -> float:
    # Firestore has no decimal type; cents survive the float round trip.
    return float(to_money(amount))
