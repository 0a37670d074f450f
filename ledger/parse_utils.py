from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from dateutil import parser as date_parser

from ledger.money import to_exact_money


_MONEY_RE = re.compile(r"-?\d{1,3}(?:,\d{3})*(?:\.\d+)?|-?\d+(?:\.\d+)?")


def parse_money(value: str | None) -> Optional[Decimal]:
    if not value:
        return None

    cleaned = value.strip()
    cleaned = cleaned.replace("₹", "").replace("£", "").replace("$", "").replace("€", "")
    cleaned = cleaned.replace(" ", "")

    match = _MONEY_RE.fullmatch(cleaned)
    if not match:
        return None

    number = match.group(0).replace(",", "")
    return to_exact_money(number)


def parse_date(value: str | date | None, dayfirst: bool = False) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    cleaned = value.strip()
    if not cleaned:
        return None

    try:
        parsed = date_parser.parse(cleaned, dayfirst=dayfirst)
    except (ValueError, TypeError, OverflowError):
        return None

    return parsed.date()
