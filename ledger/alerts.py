from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, Iterable

from ledger.models import Order, PaymentAlert
from ledger.money import sum_money
from ledger.payments import amount_paid


def payment_alerts(orders: Iterable[Order], today: date, window_days: int = 7) -> list[PaymentAlert]:
    """Pending credit orders that are overdue or fall due within ``window_days``.

    ``days`` counts from ``today`` to the due date, so overdue alerts are
    negative and sort first.
    """
    horizon = today + timedelta(days=window_days)
    alerts: list[PaymentAlert] = []
    for order in orders:
        if order.status != "Pending" or not order.due_date or order.balance_due <= 0:
            continue
        if order.due_date > horizon:
            continue
        days = (order.due_date - today).days
        alerts.append(
            PaymentAlert(
                order_id=order.id,
                customer_name=order.customer_name,
                due_date=order.due_date,
                balance_due=order.balance_due,
                is_overdue=days < 0,
                days=days,
            )
        )
    alerts.sort(key=lambda alert: (alert.days, alert.order_id))
    return alerts


def dashboard_totals(orders: Iterable[Order]) -> Dict[str, Any]:
    orders = list(orders)
    return {
        "total_revenue": sum_money(amount_paid(order.payments) for order in orders),
        "total_balance_due": sum_money(
            order.balance_due for order in orders if order.status != "Canceled"
        ),
        "orders_placed": sum(1 for order in orders if order.status != "Canceled"),
    }
