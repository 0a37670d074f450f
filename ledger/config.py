from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel


logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _get_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return value.strip() if value else None


def _get_flag(name: str) -> bool:
    return (_get_env(name) or "").lower() in _TRUTHY


def _get_number(name: str, default: float) -> float:
    value = _get_env(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid %s value: %s", name, value)
        return default


class LedgerSettings(BaseModel):
    firestore_enabled: bool = False
    firestore_database: Optional[str] = None
    orders_collection: str = "orders"
    purchases_collection: str = "purchases"
    customers_collection: str = "customers"
    suppliers_collection: str = "suppliers"
    counters_collection: str = "counters"
    store_timeout_seconds: float = 10.0
    lock_timeout_seconds: float = 30.0
    payment_alert_window_days: int = 7

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        return cls(
            firestore_enabled=_get_flag("FIRESTORE_ENABLED"),
            firestore_database=_get_env("FIRESTORE_DATABASE"),
            orders_collection=_get_env("FIRESTORE_ORDERS_COLLECTION") or "orders",
            purchases_collection=_get_env("FIRESTORE_PURCHASES_COLLECTION") or "purchases",
            customers_collection=_get_env("FIRESTORE_CUSTOMERS_COLLECTION") or "customers",
            suppliers_collection=_get_env("FIRESTORE_SUPPLIERS_COLLECTION") or "suppliers",
            counters_collection=_get_env("FIRESTORE_COUNTERS_COLLECTION") or "counters",
            store_timeout_seconds=_get_number("LEDGER_STORE_TIMEOUT_SECONDS", 10.0),
            lock_timeout_seconds=_get_number("LEDGER_LOCK_TIMEOUT_SECONDS", 30.0),
            payment_alert_window_days=int(_get_number("PAYMENT_ALERT_WINDOW_DAYS", 7)),
        )
