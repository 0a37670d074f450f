from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, Optional

from ledger.errors import ValidationError
from ledger.locks import EntityLocks
from ledger.models import (
    OPENING_BALANCE_PRODUCT,
    Order,
    OrderItem,
    Payment,
    build_record,
    parse_records,
)
from ledger.money import ZERO, percent_of, sum_money, to_exact_money, to_money
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


def compute_subtotal(items: Iterable[OrderItem]) -> Decimal:
    return sum_money(item.subtotal for item in items)


def compute_gst(items: Iterable[OrderItem]) -> Decimal:
    # Tax is rounded per line, then summed.
    return sum_money(percent_of(item.subtotal, item.gst_percent) for item in items)


def compute_grand_total(
    items: Iterable[OrderItem],
    discount: Any,
    is_gst_invoice: bool,
    delivery_fees: Any = ZERO,
) -> Decimal:
    """Line subtotals, plus per-line GST on GST invoices, plus delivery, minus discount.

    The discount comes off after tax, never off the taxable subtotal.
    """
    items = list(items)
    total = compute_subtotal(items)
    if is_gst_invoice:
        total += compute_gst(items)
    return to_money(total + to_money(delivery_fees) - to_money(discount))


def refresh_order(order: Order) -> Order:
    """Return a copy of ``order`` with every derived field rebuilt from items and payments."""
    fresh = order.model_copy(deep=True)
    subtotal = compute_subtotal(fresh.items)
    gst = compute_gst(fresh.items) if fresh.is_gst_invoice else ZERO
    fresh.total = to_money(subtotal + gst)
    fresh.grand_total = compute_grand_total(
        fresh.items, fresh.discount, fresh.is_gst_invoice, fresh.delivery_fees
    )
    fresh.is_opening_balance = any(
        item.product_name == OPENING_BALANCE_PRODUCT for item in fresh.items
    )
    fresh.balance_due = to_money(fresh.grand_total - amount_paid(fresh.payments))
    fresh.status = derive_status(fresh.balance_due, fresh.status)
    return fresh


def apply_payment(
    order: Order,
    amount: Any,
    mode: str,
    payment_date: date | str,
    notes: Optional[str] = None,
    reference: Optional[str] = None,
) -> tuple[Order, Payment]:
    current = refresh_order(order)
    if current.status == "Canceled":
        raise ValidationError(f"Order {order.id} is canceled and cannot take payments")
    value = validate_payment_amount(amount, current.balance_due)
    payment = build_record(
        Payment,
        id=next_payment_id(current.id, current.payments),
        amount=value,
        payment_date=payment_date,
        mode=mode,
        reference=reference,
        notes=notes,
    )
    current.payments.append(payment)
    return refresh_order(current), payment


def remove_payment(order: Order, payment_id: str) -> Order:
    current = order.model_copy(deep=True)
    index = find_payment(current.payments, payment_id, order.id)
    del current.payments[index]
    return current


def check_payment_term(payment_term: str, due_date: Optional[date | str]) -> None:
    if payment_term == "Credit" and not due_date:
        raise ValidationError("Credit terms need a due date")
    if payment_term != "Credit" and due_date:
        raise ValidationError(f"A due date only applies to Credit terms, not {payment_term}")


class InvoiceLedger:
    """Reads, mutates and writes back single orders; deletions defer to recalculation."""

    def __init__(
        self,
        store: LedgerStore,
        locks: EntityLocks,
        recalculator: RecalculationEngine,
    ) -> None:
        self._store = store
        self._locks = locks
        self._recalculator = recalculator

    def _customer_of(self, order_id: str) -> str:
        return self._store.get_order(order_id).customer_id

    def add_order(
        self,
        customer_id: str,
        items: Iterable[Any],
        order_date: date | str,
        payment_term: str = "Full Payment",
        discount: Any = ZERO,
        delivery_fees: Any = ZERO,
        is_gst_invoice: bool = False,
        due_date: Optional[date | str] = None,
        payment_mode: Optional[str] = None,
        payment_remarks: Optional[str] = None,
        delivery_date: Optional[date | str] = None,
        delivery_address: Optional[str] = None,
        amount_paid: Any = None,
    ) -> Order:
        order_items = parse_records(OrderItem, items)
        if not order_items:
            raise ValidationError("An order needs at least one item")
        check_payment_term(payment_term, due_date)
        if to_money(discount) < 0 or to_money(delivery_fees) < 0:
            raise ValidationError("Discount and delivery fees cannot be negative")
        grand_total = compute_grand_total(order_items, discount, is_gst_invoice, delivery_fees)
        if grand_total < 0:
            raise ValidationError("Discount exceeds the order total")
        upfront = to_exact_money(amount_paid)
        if upfront > 0 and payment_term == "Credit":
            raise ValidationError("Credit orders are paid through recorded payments, not upfront")
        if upfront > grand_total:
            raise ValidationError("Paid amount cannot be greater than the order total")

        with self._locks.customer(customer_id):
            customer = self._store.get_customer(customer_id)
            order_id = f"ORD-{self._store.next_sequence('orderCounter'):04d}"
            order = refresh_order(
                build_record(
                    Order,
                    id=order_id,
                    customer_id=customer_id,
                    customer_name=customer.name,
                    order_date=order_date,
                    items=order_items,
                    discount=discount,
                    delivery_fees=delivery_fees,
                    payment_term=payment_term,
                    payment_mode=payment_mode,
                    payment_remarks=payment_remarks,
                    due_date=due_date,
                    delivery_date=delivery_date,
                    delivery_address=delivery_address or customer.address or None,
                    is_gst_invoice=is_gst_invoice,
                )
            )
            if upfront > 0:
                order, _ = apply_payment(
                    order, upfront, payment_mode or "Cash", order.order_date, notes=payment_remarks
                )
            self._store.put_order(order)
            logger.info("Created order %s for customer %s (grand total %s)", order_id, customer_id, order.grand_total)
            snapshot = self._recalculator.recalculate_customer(customer_id)
        return next(invoice for invoice in snapshot.invoices if invoice.id == order_id)

    def record_payment(
        self,
        order_id: str,
        amount: Any,
        mode: str,
        payment_date: date | str,
        notes: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> tuple[Order, Payment]:
        customer_id = self._customer_of(order_id)
        with self._locks.customer(customer_id):
            order = self._store.get_order(order_id)
            updated, payment = apply_payment(order, amount, mode, payment_date, notes, reference)
            self._store.put_order(updated)
        logger.info(
            "Recorded payment %s of %s on %s (balance due %s)",
            payment.id,
            payment.amount,
            order_id,
            updated.balance_due,
        )
        return updated, payment

    def delete_payment(self, order_id: str, payment_id: str) -> Order:
        customer_id = self._customer_of(order_id)
        with self._locks.customer(customer_id):
            order = self._store.get_order(order_id)
            self._store.put_order(remove_payment(order, payment_id))
            logger.info("Deleted payment %s from %s", payment_id, order_id)
            snapshot = self._recalculator.recalculate_customer(customer_id)
        return next(invoice for invoice in snapshot.invoices if invoice.id == order_id)

    def revise_order(
        self,
        order_id: str,
        items: Optional[Iterable[Any]] = None,
        discount: Any = None,
        delivery_fees: Any = None,
        is_gst_invoice: Optional[bool] = None,
    ) -> Order:
        customer_id = self._customer_of(order_id)
        with self._locks.customer(customer_id):
            order = self._store.get_order(order_id)
            revised = order.model_copy(deep=True)
            if items is not None:
                revised.items = parse_records(OrderItem, items)
                if not revised.items:
                    raise ValidationError("An order needs at least one item")
            if discount is not None:
                revised.discount = to_money(discount)
            if delivery_fees is not None:
                revised.delivery_fees = to_money(delivery_fees)
            if is_gst_invoice is not None:
                revised.is_gst_invoice = is_gst_invoice
            if revised.discount < 0 or revised.delivery_fees < 0:
                raise ValidationError("Discount and delivery fees cannot be negative")
            revised = refresh_order(revised)
            if revised.grand_total < 0:
                raise ValidationError("Discount exceeds the order total")
            if revised.balance_due < 0:
                raise ValidationError(
                    f"Revised total {revised.grand_total} is below the {amount_paid(revised.payments)} already paid"
                )
            self._store.put_order(revised)
            logger.info("Revised order %s (grand total %s -> %s)", order_id, order.grand_total, revised.grand_total)
            snapshot = self._recalculator.recalculate_customer(customer_id)
        return next(invoice for invoice in snapshot.invoices if invoice.id == order_id)

    def cancel_order(self, order_id: str) -> Order:
        customer_id = self._customer_of(order_id)
        with self._locks.customer(customer_id):
            order = self._store.get_order(order_id)
            canceled = order.model_copy(update={"status": "Canceled"})
            self._store.put_order(canceled)
            logger.info("Canceled order %s", order_id)
            snapshot = self._recalculator.recalculate_customer(customer_id)
        return next(invoice for invoice in snapshot.invoices if invoice.id == order_id)
