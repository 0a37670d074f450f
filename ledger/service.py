from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, Optional

from ledger.alerts import dashboard_totals, payment_alerts
from ledger.allocator import PaymentAllocator
from ledger.config import LedgerSettings
from ledger.firestore_store import FirestoreLedgerStore
from ledger.invoice_ledger import InvoiceLedger
from ledger.locks import EntityLocks
from ledger.models import (
    BulkAllocationResult,
    CustomerLedgerSnapshot,
    Order,
    Payment,
    PaymentAlert,
    Purchase,
    PurchasePayment,
    SupplierLedgerSnapshot,
)
from ledger.purchase_ledger import PurchaseLedger
from ledger.recalculation import RecalculationEngine
from ledger.store import InMemoryLedgerStore, LedgerStore


logger = logging.getLogger(__name__)


class LedgerService:
    """The ledger's call surface, built once per process over a single store.

    Call ``close()`` on shutdown to release the store.
    """

    def __init__(self, store: LedgerStore, settings: Optional[LedgerSettings] = None) -> None:
        self.settings = settings or LedgerSettings()
        self.store = store
        self.locks = EntityLocks(timeout=self.settings.lock_timeout_seconds)
        self.recalculator = RecalculationEngine(store, self.locks)
        self.invoices = InvoiceLedger(store, self.locks, self.recalculator)
        self.purchases = PurchaseLedger(store, self.locks, self.recalculator)
        self.allocator = PaymentAllocator(store, self.locks, self.invoices, self.purchases)

    @classmethod
    def from_settings(cls, settings: Optional[LedgerSettings] = None) -> "LedgerService":
        settings = settings or LedgerSettings.from_env()
        if settings.firestore_enabled:
            store: LedgerStore = FirestoreLedgerStore(settings)
        else:
            logger.info("Firestore disabled; using the in-memory ledger store")
            store = InMemoryLedgerStore()
        return cls(store, settings)

    def close(self) -> None:
        self.store.close()

    # Sales side

    def add_order(self, customer_id: str, items: Iterable[Any], order_date: date | str, **options: Any) -> Order:
        return self.invoices.add_order(customer_id, items, order_date, **options)

    def record_payment(
        self,
        order_id: str,
        amount: Any,
        mode: str,
        payment_date: date | str,
        notes: Optional[str] = None,
    ) -> Payment:
        _, payment = self.invoices.record_payment(order_id, amount, mode, payment_date, notes)
        return payment

    def delete_payment(self, order_id: str, payment_id: str) -> Order:
        return self.invoices.delete_payment(order_id, payment_id)

    def revise_order(self, order_id: str, **changes: Any) -> Order:
        return self.invoices.revise_order(order_id, **changes)

    def cancel_order(self, order_id: str) -> Order:
        return self.invoices.cancel_order(order_id)

    def allocate_bulk_payment(
        self,
        customer_id: str,
        amount: Any,
        payment_date: date | str,
        mode: str,
        notes: Optional[str] = None,
    ) -> BulkAllocationResult:
        return self.allocator.allocate_bulk_payment(customer_id, amount, payment_date, mode, notes)

    def delete_invoice(self, customer_id: str, order_id: str) -> CustomerLedgerSnapshot:
        return self.recalculator.delete_invoice(customer_id, order_id)

    def recalculate_customer(self, customer_id: str) -> CustomerLedgerSnapshot:
        return self.recalculator.recalculate_customer(customer_id)

    # Purchase side

    def add_purchase(
        self, supplier_id: str, items: Iterable[Any], purchase_date: date | str, **options: Any
    ) -> Purchase:
        return self.purchases.add_purchase(supplier_id, items, purchase_date, **options)

    def record_purchase_payment(
        self,
        purchase_id: str,
        amount: Any,
        mode: str,
        payment_date: date | str,
        notes: Optional[str] = None,
    ) -> PurchasePayment:
        _, payment = self.purchases.record_payment(purchase_id, amount, mode, payment_date, notes)
        return payment

    def delete_purchase_payment(self, purchase_id: str, payment_id: str) -> Purchase:
        return self.purchases.delete_payment(purchase_id, payment_id)

    def cancel_purchase(self, purchase_id: str) -> Purchase:
        return self.purchases.cancel_purchase(purchase_id)

    def allocate_bulk_supplier_payment(
        self,
        supplier_id: str,
        amount: Any,
        payment_date: date | str,
        mode: str,
        notes: Optional[str] = None,
    ) -> BulkAllocationResult:
        return self.allocator.allocate_bulk_supplier_payment(supplier_id, amount, payment_date, mode, notes)

    def delete_purchase(self, supplier_id: str, purchase_id: str) -> SupplierLedgerSnapshot:
        return self.recalculator.delete_purchase(supplier_id, purchase_id)

    def recalculate_supplier(self, supplier_id: str) -> SupplierLedgerSnapshot:
        return self.recalculator.recalculate_supplier(supplier_id)

    # Reporting and maintenance

    def payment_alerts(self, today: Optional[date] = None) -> list[PaymentAlert]:
        return payment_alerts(
            self.store.list_orders(),
            today or date.today(),
            self.settings.payment_alert_window_days,
        )

    def dashboard(self) -> Dict[str, Any]:
        return dashboard_totals(self.store.list_orders())

    def reset_all_payments(self) -> int:
        """Strip every payment from every order, then rebuild each customer."""
        changed = 0
        for customer in self.store.list_customers():
            with self.locks.customer(customer.id):
                for order in self.store.list_orders_by_customer(customer.id):
                    if not order.payments:
                        continue
                    self.store.put_order(order.model_copy(update={"payments": []}))
                    changed += 1
                self.recalculator.recalculate_customer(customer.id)
        logger.info("Reset payments on %d orders", changed)
        return changed
