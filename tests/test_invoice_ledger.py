"""Tests for invoice totals, payment recording and payment deletion."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest

from ledger.errors import NotFoundError, ValidationError
from ledger.invoice_ledger import compute_grand_total
from ledger.models import OrderItem
from ledger.payments import amount_paid


def _item(price, quantity=1, gst=0, name="Premium Widget", product_id="P-1"):
    return {"productId": product_id, "productName": name, "quantity": quantity, "price": price, "gst": gst}


def _credit_order(service, price, due=date(2024, 1, 31), customer_id="CUST-1", **options):
    return service.add_order(
        customer_id,
        [_item(price)],
        date(2024, 1, 1),
        payment_term="Credit",
        due_date=due,
        **options,
    )


def _assert_consistent(order):
    assert order.grand_total - amount_paid(order.payments) == order.balance_due


# ---------------------------------------------------------------------------
# compute_grand_total
# ---------------------------------------------------------------------------

class TestComputeGrandTotal:
    @pytest.fixture(autouse=True)
    def items(self):
        self.items = [
            OrderItem.model_validate(_item(150, quantity=2, gst=18)),
            OrderItem.model_validate(_item("75.50", gst=18, name="Standard Gadget", product_id="P-2")),
        ]

    def test_gst_invoice(self):
        """375.50 subtotal + 54.00 + 13.59 GST - 10 discount."""
        assert compute_grand_total(self.items, 10, True) == Decimal("433.09")

    def test_non_gst_invoice_ignores_rates(self):
        assert compute_grand_total(self.items, 10, False) == Decimal("365.50")

    def test_discount_applies_after_tax(self):
        items = [OrderItem.model_validate(_item(100, gst=10))]
        assert compute_grand_total(items, 20, True) == Decimal("90.00")

    def test_delivery_fees_are_added(self):
        items = [OrderItem.model_validate(_item(100))]
        assert compute_grand_total(items, 0, False, delivery_fees="15.25") == Decimal("115.25")

    def test_is_deterministic(self):
        assert compute_grand_total(self.items, 10, True) == compute_grand_total(self.items, 10, True)


# ---------------------------------------------------------------------------
# add_order
# ---------------------------------------------------------------------------

def test_add_order_assigns_sequential_ids(service):
    first = _credit_order(service, 100)
    second = _credit_order(service, 50)
    assert first.id == "ORD-0001"
    assert second.id == "ORD-0002"


def test_add_order_derives_totals(service):
    order = service.add_order(
        "CUST-1",
        [_item(150, quantity=2, gst=18)],
        date(2024, 1, 1),
        is_gst_invoice=True,
        discount=4,
    )
    assert order.total == Decimal("354.00")
    assert order.grand_total == Decimal("350.00")
    assert order.balance_due == Decimal("350.00")
    assert order.status == "Pending"
    assert order.customer_name == "Asha Traders"
    assert order.delivery_address == "12 Market Road"


def test_add_order_full_payment_upfront(service):
    order = service.add_order(
        "CUST-1",
        [_item(100)],
        date(2024, 1, 1),
        payment_mode="UPI",
        amount_paid=100,
    )
    assert order.status == "Fulfilled"
    assert order.balance_due == Decimal("0.00")
    assert [p.id for p in order.payments] == ["ORD-0001-PAY-01"]
    assert order.payments[0].mode == "UPI"


def test_add_order_flags_opening_balance(service):
    order = service.add_order("CUST-1", [_item(500, name="Opening Balance")], date(2024, 1, 1))
    assert order.is_opening_balance is True


def test_add_order_requires_items(service):
    with pytest.raises(ValidationError):
        service.add_order("CUST-1", [], date(2024, 1, 1))


def test_add_order_credit_requires_due_date(service):
    with pytest.raises(ValidationError):
        service.add_order("CUST-1", [_item(100)], date(2024, 1, 1), payment_term="Credit")


def test_add_order_full_payment_rejects_due_date(service):
    with pytest.raises(ValidationError):
        service.add_order("CUST-1", [_item(100)], date(2024, 1, 1), due_date=date(2024, 2, 1))


def test_add_order_rejects_discount_above_total(service):
    with pytest.raises(ValidationError):
        service.add_order("CUST-1", [_item(100)], date(2024, 1, 1), discount="100.01")


def test_add_order_rejects_upfront_overpayment(service):
    with pytest.raises(ValidationError):
        service.add_order("CUST-1", [_item(100)], date(2024, 1, 1), amount_paid="100.01")


def test_add_order_rejects_fraction_of_a_cent_upfront(service):
    with pytest.raises(ValidationError):
        service.add_order("CUST-1", [_item(100)], date(2024, 1, 1), amount_paid="40.004")


def test_add_order_rejects_bad_item(service):
    with pytest.raises(ValidationError):
        service.add_order("CUST-1", [_item(100, quantity=0)], date(2024, 1, 1))


def test_add_order_unknown_customer(service):
    with pytest.raises(NotFoundError):
        service.add_order("CUST-404", [_item(100)], date(2024, 1, 1))


def test_failed_add_order_consumes_no_id(service):
    with pytest.raises(ValidationError):
        service.add_order("CUST-1", [_item(100)], date(2024, 1, 1), discount=500)
    assert _credit_order(service, 100).id == "ORD-0001"


# ---------------------------------------------------------------------------
# record_payment
# ---------------------------------------------------------------------------

class TestRecordPayment:
    @pytest.fixture(autouse=True)
    def order(self, service):
        self.service = service
        self.order = _credit_order(service, 100)

    def test_partial_payment(self):
        order, payment = self.service.invoices.record_payment(self.order.id, 40, "Cash", "2024-01-05")
        assert payment.id == "ORD-0001-PAY-01"
        assert payment.amount == Decimal("40.00")
        assert payment.payment_date == date(2024, 1, 5)
        assert order.balance_due == Decimal("60.00")
        assert order.status == "Pending"
        _assert_consistent(order)

    def test_payment_is_persisted(self):
        self.service.record_payment(self.order.id, 40, "Cash", date(2024, 1, 5), notes="counter")
        stored = self.service.store.get_order(self.order.id)
        assert stored.balance_due == Decimal("60.00")
        assert stored.payments[0].notes == "counter"

    def test_exact_payment_fulfils(self):
        order, _ = self.service.invoices.record_payment(self.order.id, "100.00", "Card", date(2024, 1, 5))
        assert order.balance_due == Decimal("0.00")
        assert order.status == "Fulfilled"

    def test_one_cent_over_is_rejected(self):
        with pytest.raises(ValidationError):
            self.service.record_payment(self.order.id, "100.01", "Cash", date(2024, 1, 5))
        assert self.service.store.get_order(self.order.id).payments == []

    def test_one_cent_over_remaining_balance_is_rejected(self):
        self.service.record_payment(self.order.id, "39.99", "Cash", date(2024, 1, 5))
        with pytest.raises(ValidationError):
            self.service.record_payment(self.order.id, "60.02", "Cash", date(2024, 1, 6))
        payment = self.service.record_payment(self.order.id, "60.01", "Cash", date(2024, 1, 6))
        assert payment.amount == Decimal("60.01")

    def test_float_noise_does_not_block_exact_payment(self):
        self.service.record_payment(self.order.id, 0.1 + 0.2, "Cash", date(2024, 1, 5))
        order, _ = self.service.invoices.record_payment(self.order.id, 99.7, "Cash", date(2024, 1, 5))
        assert order.status == "Fulfilled"

    @pytest.mark.parametrize("amount", [0, -5, "0.00"])
    def test_non_positive_amount_is_rejected(self, amount):
        with pytest.raises(ValidationError):
            self.service.record_payment(self.order.id, amount, "Cash", date(2024, 1, 5))

    def test_fraction_of_a_cent_is_rejected(self):
        with pytest.raises(ValidationError):
            self.service.record_payment(self.order.id, 40.004, "Cash", date(2024, 1, 5))
        assert self.service.store.get_order(self.order.id).payments == []

    def test_out_of_range_amount_is_rejected(self):
        with pytest.raises(ValidationError):
            self.service.record_payment(self.order.id, 1e30, "Cash", date(2024, 1, 5))

    def test_unknown_mode_is_rejected(self):
        with pytest.raises(ValidationError):
            self.service.record_payment(self.order.id, 10, "Barter", date(2024, 1, 5))

    def test_unknown_order(self):
        with pytest.raises(NotFoundError):
            self.service.record_payment("ORD-9999", 10, "Cash", date(2024, 1, 5))

    def test_canceled_order_takes_no_payment(self):
        self.service.cancel_order(self.order.id)
        with pytest.raises(ValidationError):
            self.service.record_payment(self.order.id, 10, "Cash", date(2024, 1, 5))

    def test_fulfilled_order_takes_no_payment(self):
        self.service.record_payment(self.order.id, 100, "Cash", date(2024, 1, 5))
        with pytest.raises(ValidationError):
            self.service.record_payment(self.order.id, "0.01", "Cash", date(2024, 1, 5))


def test_concurrent_payments_never_overpay(service):
    order = _credit_order(service, 50)

    def pay():
        try:
            service.record_payment(order.id, 10, "Cash", date(2024, 1, 5))
            return True
        except ValidationError:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: pay(), range(10)))

    stored = service.store.get_order(order.id)
    assert outcomes.count(True) == 5
    assert stored.balance_due == Decimal("0.00")
    assert len(stored.payments) == 5
    assert len({p.id for p in stored.payments}) == 5


# ---------------------------------------------------------------------------
# delete_payment
# ---------------------------------------------------------------------------

class TestDeletePayment:
    @pytest.fixture(autouse=True)
    def order(self, service):
        self.service = service
        self.order = _credit_order(service, 100)

    def test_delete_restores_balance_and_status(self):
        payment = self.service.record_payment(self.order.id, 40, "Cash", date(2024, 1, 5))
        assert self.service.store.get_order(self.order.id).balance_due == Decimal("60.00")

        order = self.service.delete_payment(self.order.id, payment.id)

        assert order.balance_due == Decimal("100.00")
        assert order.status == "Pending"
        assert order.payments == []
        assert self.service.store.get_order(self.order.id).balance_due == Decimal("100.00")

    def test_delete_reopens_fulfilled_order(self):
        payment = self.service.record_payment(self.order.id, 100, "Cash", date(2024, 1, 5))
        order = self.service.delete_payment(self.order.id, payment.id)
        assert order.status == "Pending"

    def test_delete_unknown_payment(self):
        with pytest.raises(NotFoundError):
            self.service.delete_payment(self.order.id, "ORD-0001-PAY-07")

    def test_delete_unknown_order(self):
        with pytest.raises(NotFoundError):
            self.service.delete_payment("ORD-9999", "ORD-9999-PAY-01")

    def test_payment_ids_stay_unique_after_delete(self):
        first = self.service.record_payment(self.order.id, 10, "Cash", date(2024, 1, 5))
        second = self.service.record_payment(self.order.id, 20, "Cash", date(2024, 1, 6))
        self.service.delete_payment(self.order.id, first.id)
        third = self.service.record_payment(self.order.id, 5, "Cash", date(2024, 1, 7))
        assert second.id == "ORD-0001-PAY-02"
        assert third.id == "ORD-0001-PAY-03"

    def test_balance_tracks_mixed_operations(self):
        ids = [
            self.service.record_payment(self.order.id, amount, "Cash", date(2024, 1, 5)).id
            for amount in ("12.34", "0.66", "25.00")
        ]
        _assert_consistent(self.service.store.get_order(self.order.id))
        order = self.service.delete_payment(self.order.id, ids[1])
        _assert_consistent(order)
        assert order.balance_due == Decimal("62.66")


# ---------------------------------------------------------------------------
# revise_order / cancel_order
# ---------------------------------------------------------------------------

def test_revise_order_recomputes_total(service):
    order = _credit_order(service, 100)
    revised = service.revise_order(order.id, items=[_item(80, gst=5)], is_gst_invoice=True, discount=4)
    assert revised.grand_total == Decimal("80.00")
    assert revised.balance_due == Decimal("80.00")
    assert service.recalculate_customer("CUST-1").total_spent == Decimal("80.00")


def test_revise_order_below_amount_paid_is_rejected(service):
    order = _credit_order(service, 100)
    service.record_payment(order.id, 90, "Cash", date(2024, 1, 5))
    with pytest.raises(ValidationError):
        service.revise_order(order.id, discount=20)
    assert service.store.get_order(order.id).grand_total == Decimal("100.00")


def test_revise_order_can_fulfil(service):
    order = _credit_order(service, 100)
    service.record_payment(order.id, 90, "Cash", date(2024, 1, 5))
    revised = service.revise_order(order.id, discount=10)
    assert revised.status == "Fulfilled"


def test_cancel_order_is_terminal(service):
    order = _credit_order(service, 100)
    canceled = service.cancel_order(order.id)
    assert canceled.status == "Canceled"
    again = service.recalculate_customer("CUST-1").invoices[0]
    assert again.status == "Canceled"
