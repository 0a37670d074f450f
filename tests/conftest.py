import pytest

from ledger.models import Customer, Supplier
from ledger.service import LedgerService
from ledger.store import InMemoryLedgerStore


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def service(store):
    ledger = LedgerService(store)
    store.put_customer(Customer(id="CUST-1", name="Asha Traders", address="12 Market Road"))
    store.put_customer(Customer(id="CUST-2", name="Blue Mart"))
    store.put_supplier(Supplier(id="SUP-1", name="Acme Wholesale"))
    store.put_supplier(Supplier(id="SUP-2", name="Northern Mills"))
    yield ledger
    ledger.close()
