from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.cloud import firestore

from ledger.config import LedgerSettings
from ledger.errors import NotFoundError, StoreError
from ledger.models import Customer, Order, Purchase, Supplier


logger = logging.getLogger(__name__)


@contextmanager
def _store_call(action: str) -> Iterator[None]:
    try:
        yield
    except (GoogleAPICallError, RetryError) as exc:
        raise StoreError(f"Firestore {action} failed: {exc}") from exc


class FirestoreLedgerStore:
    """``LedgerStore`` over Firestore collections, one document per record.

    Every call carries the configured timeout. Nothing is retried here.
    """

    def __init__(self, settings: LedgerSettings, client: Optional[firestore.Client] = None) -> None:
        self._client = client or firestore.Client(database=settings.firestore_database)
        self._timeout = settings.store_timeout_seconds
        self._orders = self._client.collection(settings.orders_collection)
        self._purchases = self._client.collection(settings.purchases_collection)
        self._customers = self._client.collection(settings.customers_collection)
        self._suppliers = self._client.collection(settings.suppliers_collection)
        self._counters = self._client.collection(settings.counters_collection)
        logger.info(
            "Firestore ledger store ready (project=%s, database=%s)",
            getattr(self._client, "project", None),
            settings.firestore_database or "(default)",
        )

    def _get(self, col, doc_id: str, kind: str) -> Dict[str, Any]:
        with _store_call(f"read of {kind} {doc_id}"):
            snapshot = col.document(doc_id).get(timeout=self._timeout)
        if not snapshot.exists:
            raise NotFoundError(f"{kind} {doc_id} not found")
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        return data

    def _put(self, col, doc_id: str, record: Dict[str, Any], kind: str) -> None:
        record = dict(record)
        record["updatedAt"] = firestore.SERVER_TIMESTAMP
        with _store_call(f"write of {kind} {doc_id}"):
            col.document(doc_id).set(record, timeout=self._timeout)

    def _delete(self, col, doc_id: str, kind: str) -> None:
        with _store_call(f"delete of {kind} {doc_id}"):
            col.document(doc_id).delete(timeout=self._timeout)

    def _stream(self, query, kind: str) -> list[Dict[str, Any]]:
        results: list[Dict[str, Any]] = []
        with _store_call(f"query of {kind}"):
            for doc in query.stream(timeout=self._timeout):
                data = doc.to_dict() or {}
                data["id"] = doc.id
                results.append(data)
        return results

    def get_order(self, order_id: str) -> Order:
        return Order.from_document(self._get(self._orders, order_id, "Order"))

    def put_order(self, order: Order) -> None:
        self._put(self._orders, order.id, order.to_document(), "order")

    def delete_order(self, order_id: str) -> None:
        self._delete(self._orders, order_id, "order")

    def list_orders_by_customer(self, customer_id: str) -> list[Order]:
        query = self._orders.where("customerId", "==", customer_id)
        return [Order.from_document(data) for data in self._stream(query, "orders")]

    def list_orders(self) -> list[Order]:
        return [Order.from_document(data) for data in self._stream(self._orders, "orders")]

    def get_purchase(self, purchase_id: str) -> Purchase:
        return Purchase.from_document(self._get(self._purchases, purchase_id, "Purchase"))

    def put_purchase(self, purchase: Purchase) -> None:
        self._put(self._purchases, purchase.id, purchase.to_document(), "purchase")

    def delete_purchase(self, purchase_id: str) -> None:
        self._delete(self._purchases, purchase_id, "purchase")

    def list_purchases_by_supplier(self, supplier_id: str) -> list[Purchase]:
        query = self._purchases.where("supplierId", "==", supplier_id)
        return [Purchase.from_document(data) for data in self._stream(query, "purchases")]

    def get_customer(self, customer_id: str) -> Customer:
        return Customer.from_document(self._get(self._customers, customer_id, "Customer"))

    def put_customer(self, customer: Customer) -> None:
        self._put(self._customers, customer.id, customer.to_document(), "customer")

    def list_customers(self) -> list[Customer]:
        return [Customer.from_document(data) for data in self._stream(self._customers, "customers")]

    def get_supplier(self, supplier_id: str) -> Supplier:
        return Supplier.from_document(self._get(self._suppliers, supplier_id, "Supplier"))

    def put_supplier(self, supplier: Supplier) -> None:
        self._put(self._suppliers, supplier.id, supplier.to_document(), "supplier")

    def next_sequence(self, name: str) -> int:
        ref = self._counters.document(name)

        @firestore.transactional
        def _bump(transaction) -> int:
            snapshot = ref.get(transaction=transaction, timeout=self._timeout)
            data = (snapshot.to_dict() or {}) if snapshot.exists else {}
            value = int(data.get("currentNumber") or 0) + 1
            transaction.set(ref, {"currentNumber": value}, merge=True)
            return value

        with _store_call(f"counter update of {name}"):
            return _bump(self._client.transaction())

    def close(self) -> None:
        self._client.close()
