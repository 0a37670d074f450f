from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, Optional

from ledger.errors import ValidationError
from ledger.invoice_ledger import check_payment_term
from ledger.locks import EntityLocks
from ledger.models import Purchase, PurchaseItem, PurchasePayment, build_record, parse_records
from ledger.money import percent_of, sum_money, to_exact_money, to_money
from ledger.payments import (
    amount_paid,
    derive_status,
    find_payment,
    next_payment_id,
    validate_payment_amount,
)
from ledger.store import LedgerStore

if TYPE_CHECKING:
    from ledger.recalculation import RecalculationEngine


logger = logging.getLogger(__name__)


def compute_purchase_total(items: Iterable[PurchaseItem], is_gst_purchase: bool) -> Decimal:
    items = list(items)
    total = sum_money(item.subtotal for item in items)
    if is_gst_purchase:
        total += sum_money(percent_of(item.subtotal, item.gst_percent) for item in items)
    return to_money(total)


def refresh_purchase(purchase: Purchase) -> Purchase:
    fresh = purchase.model_copy(deep=True)
    fresh.total = compute_purchase_total(fresh.items, fresh.is_gst_purchase)
    fresh.balance_due = to_money(fresh.total - amount_paid(fresh.payments))
    fresh.status = derive_status(fresh.balance_due, fresh.status)
    return fresh


def apply_purchase_payment(
    purchase: Purchase,
    amount: Any,
    mode: str,
    payment_date: date | str,
    notes: Optional[str] = None,
    reference: Optional[str] = None,
) -> tuple[Purchase, PurchasePayment]:
    current = refresh_purchase(purchase)
    if current.status == "Canceled":
        raise ValidationError(f"Purchase {purchase.id} is canceled and cannot take payments")
    value = validate_payment_amount(amount, current.balance_due)
    payment = build_record(
        PurchasePayment,
        id=next_payment_id(current.id, current.payments),
        amount=value,
        payment_date=payment_date,
        mode=mode,
        reference=reference,
        notes=notes,
    )
    current.payments.append(payment)
    return refresh_purchase(current), payment


def remove_purchase_payment(purchase: Purchase, payment_id: str) -> Purchase:
    current = purchase.model_copy(deep=True)
    index = find_payment(current.payments, payment_id, purchase.id)
    del current.payments[index]
    return current


class PurchaseLedger:
    """Supplier-side mirror of ``InvoiceLedger``."""

    def __init__(
        self,
        store: LedgerStore,
        locks: EntityLocks,
        recalculator: RecalculationEngine,
    ) -> None:
        self._store = store
        self._locks = locks
        self._recalculator = recalculator

    def _supplier_of(self, purchase_id: str) -> str:
        return self._store.get_purchase(purchase_id).supplier_id

    def add_purchase(
        self,
        supplier_id: str,
        items: Iterable[Any],
        purchase_date: date | str,
        payment_term: str = "Paid",
        is_gst_purchase: bool = False,
        due_date: Optional[date | str] = None,
        amount_paid: Any = None,
        payment_mode: Optional[str] = None,
        payment_notes: Optional[str] = None,
    ) -> Purchase:
        purchase_items = parse_records(PurchaseItem, items)
        if not purchase_items:
            raise ValidationError("A purchase needs at least one item")
        check_payment_term(payment_term, due_date)
        paid = to_exact_money(amount_paid)
        if paid > 0 and payment_term == "Credit":
            raise ValidationError("Credit purchases are paid through recorded payments, not upfront")
        if paid > compute_purchase_total(purchase_items, is_gst_purchase):
            raise ValidationError("Paid amount cannot be greater than the total purchase amount")

        with self._locks.supplier(supplier_id):
            supplier = self._store.get_supplier(supplier_id)
            purchase_id = f"PUR-{self._store.next_sequence('purchaseCounter'):04d}"
            purchase = refresh_purchase(
                build_record(
                    Purchase,
                    id=purchase_id,
                    supplier_id=supplier_id,
                    supplier_name=supplier.name,
                    purchase_date=purchase_date,
                    items=purchase_items,
                    is_gst_purchase=is_gst_purchase,
                    payment_term=payment_term,
                    due_date=due_date,
                )
            )
            if paid > 0:
                purchase, _ = apply_purchase_payment(
                    purchase, paid, payment_mode or "Cash", purchase.purchase_date, notes=payment_notes
                )
            self._store.put_purchase(purchase)
            logger.info("Created purchase %s for supplier %s (total %s)", purchase_id, supplier_id, purchase.total)
            snapshot = self._recalculator.recalculate_supplier(supplier_id)
        return next(item for item in snapshot.purchases if item.id == purchase_id)

    def record_payment(
        self,
        purchase_id: str,
        amount: Any,
        mode: str,
        payment_date: date | str,
        notes: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> tuple[Purchase, PurchasePayment]:
        supplier_id = self._supplier_of(purchase_id)
        with self._locks.supplier(supplier_id):
            purchase = self._store.get_purchase(purchase_id)
            updated, payment = apply_purchase_payment(purchase, amount, mode, payment_date, notes, reference)
            self._store.put_purchase(updated)
        logger.info(
            "Recorded payment %s of %s on %s (balance due %s)",
            payment.id,
            payment.amount,
            purchase_id,
            updated.balance_due,
        )
        return updated, payment

    def delete_payment(self, purchase_id: str, payment_id: str) -> Purchase:
        supplier_id = self._supplier_of(purchase_id)
        with self._locks.supplier(supplier_id):
            purchase = self._store.get_purchase(purchase_id)
            self._store.put_purchase(remove_purchase_payment(purchase, payment_id))
            logger.info("Deleted payment %s from %s", payment_id, purchase_id)
            snapshot = self._recalculator.recalculate_supplier(supplier_id)
        return next(item for item in snapshot.purchases if item.id == purchase_id)

    def cancel_purchase(self, purchase_id: str) -> Purchase:
        supplier_id = self._supplier_of(purchase_id)
        with self._locks.supplier(supplier_id):
            purchase = self._store.get_purchase(purchase_id)
            self._store.put_purchase(purchase.model_copy(update={"status": "Canceled"}))
            logger.info("Canceled purchase %s", purchase_id)
            snapshot = self._recalculator.recalculate_supplier(supplier_id)
        return next(item for item in snapshot.purchases if item.id == purchase_id)
