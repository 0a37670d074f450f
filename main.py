from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from ledger.errors import NotFoundError, StoreError, ValidationError
from ledger.money import to_exact_money
from ledger.parse_utils import parse_date, parse_money
from ledger.service import LedgerService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("ledger-service")

APP_VERSION = os.getenv("APP_VERSION", "0.1.0")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.ledger = LedgerService.from_settings()
    logger.info("Ledger service started (version %s)", APP_VERSION)
    try:
        yield
    finally:
        app.state.ledger.close()
        logger.info("Ledger service stopped")


app = FastAPI(lifespan=lifespan)


def _ledger(request: Request) -> LedgerService:
    return request.app.state.ledger


async def _ledger_call(operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking ledger operation off the event loop, mapping ledger errors to HTTP codes."""
    try:
        return await run_in_threadpool(operation, *args, **kwargs)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StoreError as exc:
        logger.exception("Ledger store failure: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


async def _payload(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload") from exc

    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="JSON payload must be an object")
    return payload


def _require(payload: Dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Missing {key}")
    return value


def _amount(payload: Dict[str, Any], key: str = "amount") -> Decimal:
    value = _require(payload, key)
    try:
        amount = parse_money(value) if isinstance(value, str) else to_exact_money(value)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if amount is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {key}")
    return amount


def _date(payload: Dict[str, Any], key: str, default: Optional[date] = None) -> Optional[date]:
    value = payload.get(key)
    if not value:
        return default
    parsed = parse_date(value)
    if parsed is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {key}")
    return parsed


@app.get("/version")
async def version() -> Dict[str, Any]:
    return {
        "status": "ok",
        "revision": os.getenv("K_REVISION"),
        "service": os.getenv("K_SERVICE"),
        "app_version": APP_VERSION,
    }


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Orders and payments
# ---------------------------------------------------------------------------


@app.post("/customers/{customer_id}/orders")
async def create_order(customer_id: str, request: Request) -> Dict[str, Any]:
    payload = await _payload(request)
    order = await _ledger_call(
        _ledger(request).add_order,
        customer_id,
        payload.get("items") or [],
        _date(payload, "orderDate", date.today()),
        payment_term=payload.get("paymentTerm") or "Full Payment",
        discount=payload.get("discount") or 0,
        delivery_fees=payload.get("deliveryFees") or 0,
        is_gst_invoice=bool(payload.get("isGstInvoice")),
        due_date=_date(payload, "dueDate"),
        payment_mode=payload.get("paymentMode"),
        payment_remarks=payload.get("paymentRemarks"),
        delivery_date=_date(payload, "deliveryDate"),
        delivery_address=payload.get("deliveryAddress"),
        amount_paid=payload.get("amountPaid"),
    )
    return {"status": "ok", "order": order.to_document()}


@app.post("/orders/{order_id}/payments")
async def record_payment(order_id: str, request: Request) -> Dict[str, Any]:
    payload = await _payload(request)
    payment = await _ledger_call(
        _ledger(request).record_payment,
        order_id,
        _amount(payload),
        _require(payload, "method"),
        _date(payload, "paymentDate", date.today()),
        payload.get("notes"),
    )
    return {"status": "ok", "payment": payment.to_document()}


@app.delete("/orders/{order_id}/payments/{payment_id}")
async def delete_payment(order_id: str, payment_id: str, request: Request) -> Dict[str, Any]:
    order = await _ledger_call(_ledger(request).delete_payment, order_id, payment_id)
    return {"status": "ok", "order": order.to_document()}


@app.patch("/orders/{order_id}")
async def revise_order(order_id: str, request: Request) -> Dict[str, Any]:
    payload = await _payload(request)
    order = await _ledger_call(
        _ledger(request).revise_order,
        order_id,
        items=payload.get("items"),
        discount=payload.get("discount"),
        delivery_fees=payload.get("deliveryFees"),
        is_gst_invoice=payload.get("isGstInvoice"),
    )
    return {"status": "ok", "order": order.to_document()}


@app.post("/orders/{order_id}/cancel")
async def cancel_order(order_id: str, request: Request) -> Dict[str, Any]:
    order = await _ledger_call(_ledger(request).cancel_order, order_id)
    return {"status": "ok", "order": order.to_document()}


@app.delete("/customers/{customer_id}/orders/{order_id}")
async def delete_order(customer_id: str, order_id: str, request: Request) -> Dict[str, Any]:
    snapshot = await _ledger_call(_ledger(request).delete_invoice, customer_id, order_id)
    return {"status": "ok", "ledger": snapshot.to_document()}


@app.post("/customers/{customer_id}/bulk-payments")
async def bulk_payment(customer_id: str, request: Request) -> Dict[str, Any]:
    payload = await _payload(request)
    result = await _ledger_call(
        _ledger(request).allocate_bulk_payment,
        customer_id,
        _amount(payload),
        _date(payload, "paymentDate", date.today()),
        _require(payload, "method"),
        payload.get("notes"),
    )
    return {"status": "ok" if result.completed else "partial", "result": result.to_document()}


@app.get("/customers/{customer_id}/ledger")
async def customer_ledger(customer_id: str, request: Request) -> Dict[str, Any]:
    snapshot = await _ledger_call(_ledger(request).recalculate_customer, customer_id)
    return {"status": "ok", "ledger": snapshot.to_document()}


# ---------------------------------------------------------------------------
# Purchases
# ---------------------------------------------------------------------------


@app.post("/suppliers/{supplier_id}/purchases")
async def create_purchase(supplier_id: str, request: Request) -> Dict[str, Any]:
    payload = await _payload(request)
    purchase = await _ledger_call(
        _ledger(request).add_purchase,
        supplier_id,
        payload.get("items") or [],
        _date(payload, "purchaseDate", date.today()),
        payment_term=payload.get("paymentTerm") or "Paid",
        is_gst_purchase=bool(payload.get("isGstPurchase")),
        due_date=_date(payload, "dueDate"),
        amount_paid=payload.get("amountPaid"),
        payment_mode=payload.get("paymentMode"),
        payment_notes=payload.get("paymentNotes"),
    )
    return {"status": "ok", "purchase": purchase.to_document()}


@app.post("/purchases/{purchase_id}/payments")
async def record_purchase_payment(purchase_id: str, request: Request) -> Dict[str, Any]:
    payload = await _payload(request)
    payment = await _ledger_call(
        _ledger(request).record_purchase_payment,
        purchase_id,
        _amount(payload),
        _require(payload, "method"),
        _date(payload, "paymentDate", date.today()),
        payload.get("notes"),
    )
    return {"status": "ok", "payment": payment.to_document()}


@app.delete("/purchases/{purchase_id}/payments/{payment_id}")
async def delete_purchase_payment(purchase_id: str, payment_id: str, request: Request) -> Dict[str, Any]:
    purchase = await _ledger_call(_ledger(request).delete_purchase_payment, purchase_id, payment_id)
    return {"status": "ok", "purchase": purchase.to_document()}


@app.post("/purchases/{purchase_id}/cancel")
async def cancel_purchase(purchase_id: str, request: Request) -> Dict[str, Any]:
    purchase = await _ledger_call(_ledger(request).cancel_purchase, purchase_id)
    return {"status": "ok", "purchase": purchase.to_document()}


@app.delete("/suppliers/{supplier_id}/purchases/{purchase_id}")
async def delete_purchase(supplier_id: str, purchase_id: str, request: Request) -> Dict[str, Any]:
    snapshot = await _ledger_call(_ledger(request).delete_purchase, supplier_id, purchase_id)
    return {"status": "ok", "ledger": snapshot.to_document()}


@app.post("/suppliers/{supplier_id}/bulk-payments")
async def bulk_supplier_payment(supplier_id: str, request: Request) -> Dict[str, Any]:
    payload = await _payload(request)
    result = await _ledger_call(
        _ledger(request).allocate_bulk_supplier_payment,
        supplier_id,
        _amount(payload),
        _date(payload, "paymentDate", date.today()),
        _require(payload, "method"),
        payload.get("notes"),
    )
    return {"status": "ok" if result.completed else "partial", "result": result.to_document()}


@app.get("/suppliers/{supplier_id}/ledger")
async def supplier_ledger(supplier_id: str, request: Request) -> Dict[str, Any]:
    snapshot = await _ledger_call(_ledger(request).recalculate_supplier, supplier_id)
    return {"status": "ok", "ledger": snapshot.to_document()}


# ---------------------------------------------------------------------------
# Reporting and maintenance
# ---------------------------------------------------------------------------


@app.get("/alerts/payments")
async def alerts(request: Request, today: Optional[str] = None) -> Dict[str, Any]:
    as_of = parse_date(today) if today else date.today()
    if as_of is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid today")
    found = await _ledger_call(_ledger(request).payment_alerts, as_of)
    return {"status": "ok", "alerts": [alert.to_document() for alert in found]}


@app.get("/dashboard")
async def dashboard(request: Request) -> Dict[str, Any]:
    totals = await _ledger_call(_ledger(request).dashboard)
    return {
        "status": "ok",
        "total_revenue": float(totals["total_revenue"]),
        "total_balance_due": float(totals["total_balance_due"]),
        "orders_placed": totals["orders_placed"],
    }


@app.post("/admin/reset-payments")
async def reset_payments(request: Request) -> Dict[str, Any]:
    changed = await _ledger_call(_ledger(request).reset_all_payments)
    logger.warning("All order payments reset (%d orders changed)", changed)
    return {"status": "ok", "message": "All order payments have been reset.", "orders_changed": changed}
