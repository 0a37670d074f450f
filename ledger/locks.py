from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple

from ledger.errors import StoreError


class EntityLocks:
    """One re-entrant lock per customer or supplier.

    Every read-modify-write on a party's documents runs under that party's
    lock, so a bulk allocation can call ``record_payment`` for each invoice
    without deadlocking on itself. Different parties never contend.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.RLock] = {}

    def _lock_for(self, kind: str, entity_id: str) -> threading.RLock:
        key = (kind, entity_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, kind: str, entity_id: str) -> Iterator[None]:
        lock = self._lock_for(kind, entity_id)
        if not lock.acquire(timeout=self._timeout):
            raise StoreError(f"Timed out waiting for the {kind} {entity_id} ledger lock")
        try:
            yield
        finally:
            lock.release()

    def customer(self, customer_id: str):
        return self.hold("customer", customer_id)

    def supplier(self, supplier_id: str):
        return self.hold("supplier", supplier_id)
