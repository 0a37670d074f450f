from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Callable, NamedTuple, Optional, Sequence, TypeVar

from ledger.errors import NotFoundError
from ledger.invoice_ledger import refresh_order
from ledger.locks import EntityLocks
from ledger.models import (
    CustomerLedgerSnapshot,
    Order,
    Purchase,
    SupplierLedgerSnapshot,
    TransactionHistory,
)
from ledger.money import sum_money
from ledger.payments import amount_paid
from ledger.purchase_ledger import refresh_purchase
from ledger.store import LedgerStore


logger = logging.getLogger(__name__)

DocumentT = TypeVar("DocumentT", Order, Purchase)


class _Totals(NamedTuple):
    total_spent: Decimal
    total_paid: Decimal
    total_due: Decimal
    last_date: Optional[date]


def _rebuild(
    documents: Sequence[DocumentT],
    refresh: Callable[[DocumentT], DocumentT],
    write: Callable[[DocumentT], None],
) -> tuple[list[DocumentT], _Totals]:
    rebuilt: list[DocumentT] = []
    for document in sorted(documents, key=lambda doc: (doc.document_date, doc.id)):
        fresh = refresh(document)
        if fresh.balance_due < 0:
            logger.warning("%s is overpaid by %s", fresh.id, -fresh.balance_due)
        if fresh.to_document() != document.to_document():
            write(fresh)
        rebuilt.append(fresh)

    active = [doc for doc in rebuilt if doc.status != "Canceled"]
    spending = [doc for doc in active if not getattr(doc, "is_opening_balance", False)]
    totals = _Totals(
        total_spent=sum_money(doc.payable_total for doc in spending),
        total_paid=sum_money(amount_paid(doc.payments) for doc in active),
        total_due=sum_money(doc.balance_due for doc in active),
        last_date=max((doc.document_date for doc in spending), default=None),
    )
    return rebuilt, totals


class RecalculationEngine:
    """Rebuilds every derived balance for one party from its raw documents.

    Running it twice with nothing in between writes nothing the second time
    and returns an identical snapshot.
    """

    def __init__(self, store: LedgerStore, locks: EntityLocks) -> None:
        self._store = store
        self._locks = locks

    def recalculate_customer(self, customer_id: str) -> CustomerLedgerSnapshot:
        with self._locks.customer(customer_id):
            customer = self._store.get_customer(customer_id)
            orders, totals = _rebuild(
                self._store.list_orders_by_customer(customer_id),
                refresh_order,
                self._store.put_order,
            )
            history = TransactionHistory(
                total_spent=totals.total_spent,
                last_purchase_date=totals.last_date,
            )
            if history != customer.transaction_history:
                self._store.put_customer(customer.model_copy(update={"transaction_history": history}))

        logger.info(
            "Recalculated customer %s: %d invoices, spent %s, paid %s, due %s",
            customer_id,
            len(orders),
            totals.total_spent,
            totals.total_paid,
            totals.total_due,
        )
        return CustomerLedgerSnapshot(
            customer_id=customer_id,
            invoices=orders,
            total_spent=totals.total_spent,
            total_paid=totals.total_paid,
            total_due=totals.total_due,
            last_purchase_date=totals.last_date,
        )

    def recalculate_supplier(self, supplier_id: str) -> SupplierLedgerSnapshot:
        with self._locks.supplier(supplier_id):
            supplier = self._store.get_supplier(supplier_id)
            purchases, totals = _rebuild(
                self._store.list_purchases_by_supplier(supplier_id),
                refresh_purchase,
                self._store.put_purchase,
            )
            history = TransactionHistory(
                total_spent=totals.total_spent,
                last_purchase_date=totals.last_date,
            )
            if history != supplier.transaction_history:
                self._store.put_supplier(supplier.model_copy(update={"transaction_history": history}))

        logger.info(
            "Recalculated supplier %s: %d purchases, spent %s, paid %s, due %s",
            supplier_id,
            len(purchases),
            totals.total_spent,
            totals.total_paid,
            totals.total_due,
        )
        return SupplierLedgerSnapshot(
            supplier_id=supplier_id,
            purchases=purchases,
            total_spent=totals.total_spent,
            total_paid=totals.total_paid,
            total_due=totals.total_due,
            last_purchase_date=totals.last_date,
        )

    def delete_invoice(self, customer_id: str, order_id: str) -> CustomerLedgerSnapshot:
        with self._locks.customer(customer_id):
            self._store.get_customer(customer_id)
            order = self._store.get_order(order_id)
            if order.customer_id != customer_id:
                raise NotFoundError(f"Order {order_id} does not belong to customer {customer_id}")
            self._store.delete_order(order_id)
            logger.info("Deleted order %s of customer %s", order_id, customer_id)
            return self.recalculate_customer(customer_id)

    def delete_purchase(self, supplier_id: str, purchase_id: str) -> SupplierLedgerSnapshot:
        with self._locks.supplier(supplier_id):
            self._store.get_supplier(supplier_id)
            purchase = self._store.get_purchase(purchase_id)
            if purchase.supplier_id != supplier_id:
                raise NotFoundError(f"Purchase {purchase_id} does not belong to supplier {supplier_id}")
            self._store.delete_purchase(purchase_id)
            logger.info("Deleted purchase %s of supplier %s", purchase_id, supplier_id)
            return self.recalculate_supplier(supplier_id)
