from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error the ledger raises to its callers."""


class ValidationError(LedgerError):
    """Malformed or out-of-range input: non-positive amount, over-payment, term mismatch."""


class NotFoundError(LedgerError):
    """A referenced order, purchase, payment, customer or supplier does not exist."""


class StoreError(LedgerError):
    """The backing store failed (I/O, timeout, conflict). Never retried here."""
