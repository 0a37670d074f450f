import threading

import pytest

from ledger.errors import StoreError
from ledger.locks import EntityLocks


def test_lock_is_reentrant():
    locks = EntityLocks(timeout=0.1)
    with locks.customer("CUST-1"):
        with locks.customer("CUST-1"):
            pass


def test_busy_lock_times_out():
    locks = EntityLocks(timeout=0.05)
    held = threading.Event()
    release = threading.Event()

    def holder():
        with locks.customer("CUST-1"):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    held.wait(5)
    try:
        with pytest.raises(StoreError):
            with locks.customer("CUST-1"):
                pass
        with locks.customer("CUST-2"):
            pass
        with locks.supplier("CUST-1"):
            pass
    finally:
        release.set()
        thread.join()
