from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence

from ledger.errors import LedgerError, ValidationError
from ledger.invoice_ledger import InvoiceLedger, refresh_order
from ledger.locks import EntityLocks
from ledger.models import Allocation, BulkAllocationResult, Payment, PurchasePayment, build_record
from ledger.money import ZERO, to_exact_money, to_money
from ledger.purchase_ledger import PurchaseLedger, refresh_purchase
from ledger.store import LedgerStore


logger = logging.getLogger(__name__)


def allocation_order(documents: Sequence[Any]) -> list[Any]:
    """Oldest first: due date when there is one, else the document date; ties by id."""
    return sorted(documents, key=lambda doc: (doc.due_date or doc.document_date, doc.id))


def outstanding(documents: Sequence[Any]) -> list[Any]:
    return [doc for doc in documents if doc.status != "Canceled" and doc.balance_due > 0]


def plan_allocation(documents: Sequence[Any], amount: Decimal) -> list[tuple[Any, Decimal]]:
    """Split ``amount`` across ``documents`` in allocation order without touching the store."""
    plan: list[tuple[Any, Decimal]] = []
    remaining = to_money(amount)
    for document in allocation_order(documents):
        share = min(remaining, document.balance_due)
        if share <= 0:
            break
        plan.append((document, share))
        remaining -= share
    return plan


class PaymentAllocator:
    """Spreads one incoming payment over a party's outstanding documents.

    Each share is a separate ``record_payment`` write. When write k fails,
    shares 1..k-1 stay committed and the result says where it stopped.
    """

    def __init__(
        self,
        store: LedgerStore,
        locks: EntityLocks,
        invoices: InvoiceLedger,
        purchases: PurchaseLedger,
    ) -> None:
        self._store = store
        self._locks = locks
        self._invoices = invoices
        self._purchases = purchases

    def allocate_bulk_payment(
        self,
        customer_id: str,
        amount: Any,
        payment_date: date | str,
        mode: str,
        notes: Optional[str] = None,
    ) -> BulkAllocationResult:
        value = _positive(amount)
        _check_payment_details(Payment, value, mode, payment_date, notes)
        with self._locks.customer(customer_id):
            self._store.get_customer(customer_id)
            orders = [refresh_order(order) for order in self._store.list_orders_by_customer(customer_id)]
            return self._allocate(
                customer_id,
                value,
                outstanding(orders),
                lambda order_id, share: self._invoices.record_payment(
                    order_id, share, mode, payment_date, notes=notes, reference="Bulk payment"
                )[0],
            )

    def allocate_bulk_supplier_payment(
        self,
        supplier_id: str,
        amount: Any,
        payment_date: date | str,
        mode: str,
        notes: Optional[str] = None,
    ) -> BulkAllocationResult:
        value = _positive(amount)
        _check_payment_details(PurchasePayment, value, mode, payment_date, notes)
        with self._locks.supplier(supplier_id):
            self._store.get_supplier(supplier_id)
            purchases = [
                refresh_purchase(purchase)
                for purchase in self._store.list_purchases_by_supplier(supplier_id)
            ]
            return self._allocate(
                supplier_id,
                value,
                outstanding(purchases),
                lambda purchase_id, share: self._purchases.record_payment(
                    purchase_id, share, mode, payment_date, notes=notes, reference="Bulk payment"
                )[0],
            )

    def _allocate(
        self,
        party_id: str,
        amount: Decimal,
        documents: Sequence[Any],
        record: Callable[[str, Decimal], Any],
    ) -> BulkAllocationResult:
        if not documents:
            raise ValidationError(f"{party_id} has no outstanding invoices")

        result = BulkAllocationResult(party_id=party_id, payment_amount=amount)
        allocated = ZERO
        for document, share in plan_allocation(documents, amount):
            try:
                updated = record(document.id, share)
            except LedgerError as exc:
                logger.exception("Bulk payment for %s stopped at %s", party_id, document.id)
                result.failed_invoice_id = document.id
                result.error = str(exc)
                break
            allocated += share
            result.allocations.append(
                Allocation(
                    invoice_id=updated.id,
                    amount_allocated=share,
                    new_balance_due=updated.balance_due,
                    status=updated.status,
                )
            )

        result.total_allocated = allocated
        result.unallocated_remainder = amount - allocated
        logger.info(
            "Bulk payment of %s for %s: allocated %s across %d documents, %s unallocated",
            amount,
            party_id,
            allocated,
            len(result.allocations),
            result.unallocated_remainder,
        )
        return result


def _positive(amount: Any) -> Decimal:
    value = to_exact_money(amount)
    if value <= 0:
        raise ValidationError(f"Payment amount must be positive, got {value}")
    return value


def _check_payment_details(
    model, amount: Decimal, mode: str, payment_date: date | str, notes: Optional[str]
) -> None:
    # Bad input fails the whole request; only store failures end in a partial result.
    build_record(
        model,
        id="BULK",
        amount=amount,
        payment_date=payment_date,
        mode=mode,
        reference="Bulk payment",
        notes=notes,
    )
