from __future__ import annotations

import copy
import threading
from typing import Any, Dict, Protocol

from ledger.errors import NotFoundError
from ledger.models import Customer, Order, Purchase, Supplier


class LedgerStore(Protocol):
    """Key-addressable record store the ledger reads and writes through.

    Every ``put_*`` overwrites the whole record. Nothing here is assumed to
    be transactional across records; implementations enforce their own I/O
    timeouts and raise ``StoreError`` when the backend fails.
    """

    def get_order(self, order_id: str) -> Order: ...

    def put_order(self, order: Order) -> None: ...

    def delete_order(self, order_id: str) -> None: ...

    def list_orders_by_customer(self, customer_id: str) -> list[Order]: ...

    def list_orders(self) -> list[Order]: ...

    def get_purchase(self, purchase_id: str) -> Purchase: ...

    def put_purchase(self, purchase: Purchase) -> None: ...

    def delete_purchase(self, purchase_id: str) -> None: ...

    def list_purchases_by_supplier(self, supplier_id: str) -> list[Purchase]: ...

    def get_customer(self, customer_id: str) -> Customer: ...

    def put_customer(self, customer: Customer) -> None: ...

    def list_customers(self) -> list[Customer]: ...

    def get_supplier(self, supplier_id: str) -> Supplier: ...

    def put_supplier(self, supplier: Supplier) -> None: ...

    def next_sequence(self, name: str) -> int: ...

    def close(self) -> None: ...


class InMemoryLedgerStore:
    """Process-local store holding records as documents, the way Firestore would."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {
            "orders": {},
            "purchases": {},
            "customers": {},
            "suppliers": {},
        }
        self._counters: Dict[str, int] = {}

    def _get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        with self._lock:
            data = self._collections[collection].get(doc_id)
            if data is None:
                raise NotFoundError(f"{collection[:-1].capitalize()} {doc_id} not found")
            return copy.deepcopy(data)

    def _put(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._collections[collection][doc_id] = copy.deepcopy(data)

    def _delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collections[collection].pop(doc_id, None)

    def _where(self, collection: str, field: str, value: str) -> list[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(data)
                for data in self._collections[collection].values()
                if data.get(field) == value
            ]

    def _all(self, collection: str) -> list[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(data) for data in self._collections[collection].values()]

    def get_order(self, order_id: str) -> Order:
        return Order.from_document(self._get("orders", order_id))

    def put_order(self, order: Order) -> None:
        self._put("orders", order.id, order.to_document())

    def delete_order(self, order_id: str) -> None:
        self._delete("orders", order_id)

    def list_orders_by_customer(self, customer_id: str) -> list[Order]:
        return [Order.from_document(data) for data in self._where("orders", "customerId", customer_id)]

    def list_orders(self) -> list[Order]:
        return [Order.from_document(data) for data in self._all("orders")]

    def get_purchase(self, purchase_id: str) -> Purchase:
        return Purchase.from_document(self._get("purchases", purchase_id))

    def put_purchase(self, purchase: Purchase) -> None:
        self._put("purchases", purchase.id, purchase.to_document())

    def delete_purchase(self, purchase_id: str) -> None:
        self._delete("purchases", purchase_id)

    def list_purchases_by_supplier(self, supplier_id: str) -> list[Purchase]:
        return [
            Purchase.from_document(data)
            for data in self._where("purchases", "supplierId", supplier_id)
        ]

    def get_customer(self, customer_id: str) -> Customer:
        return Customer.from_document(self._get("customers", customer_id))

    def put_customer(self, customer: Customer) -> None:
        self._put("customers", customer.id, customer.to_document())

    def list_customers(self) -> list[Customer]:
        return [Customer.from_document(data) for data in self._all("customers")]

    def get_supplier(self, supplier_id: str) -> Supplier:
        return Supplier.from_document(self._get("suppliers", supplier_id))

    def put_supplier(self, supplier: Supplier) -> None:
        self._put("suppliers", supplier.id, supplier.to_document())

    def next_sequence(self, name: str) -> int:
        with self._lock:
            value = self._counters.get(name, 0) + 1
            self._counters[name] = value
            return value

    def close(self) -> None:
        return None
