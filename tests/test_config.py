from ledger.config import LedgerSettings
from ledger.service import LedgerService
from ledger.store import InMemoryLedgerStore


def test_defaults(monkeypatch):
    for name in ("FIRESTORE_ENABLED", "LEDGER_STORE_TIMEOUT_SECONDS", "PAYMENT_ALERT_WINDOW_DAYS"):
        monkeypatch.delenv(name, raising=False)
    settings = LedgerSettings.from_env()
    assert settings.firestore_enabled is False
    assert settings.store_timeout_seconds == 10.0
    assert settings.payment_alert_window_days == 7


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("FIRESTORE_ENABLED", "true")
    monkeypatch.setenv("FIRESTORE_ORDERS_COLLECTION", " sales_orders ")
    monkeypatch.setenv("LEDGER_LOCK_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("PAYMENT_ALERT_WINDOW_DAYS", "14")
    settings = LedgerSettings.from_env()
    assert settings.firestore_enabled is True
    assert settings.orders_collection == "sales_orders"
    assert settings.lock_timeout_seconds == 2.5
    assert settings.payment_alert_window_days == 14


def test_bad_number_falls_back(monkeypatch):
    monkeypatch.setenv("LEDGER_STORE_TIMEOUT_SECONDS", "soon")
    assert LedgerSettings.from_env().store_timeout_seconds == 10.0


def test_service_without_firestore_uses_memory():
    service = LedgerService.from_settings(LedgerSettings(firestore_enabled=False))
    assert isinstance(service.store, InMemoryLedgerStore)
    service.close()
