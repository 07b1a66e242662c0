# rentledger/errors.py
from __future__ import annotations


class LedgerError(Exception):
    """Base class for errors raised by the installment engine."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError, ValueError):
    """Malformed input to a core operation. Nothing was written."""

    status_code = 400


class NotFoundError(LedgerError, LookupError):
    """Referenced office, contract, installment or item does not exist."""

    status_code = 404


class ConflictError(LedgerError):
    """
    A row with the same natural key already exists.

    Generation treats this as a skip; it only reaches a caller when a
    conditional create is used outside the idempotent paths.
    """

    status_code = 409


class TransientStoreError(LedgerError):
    """Underlying storage failure. Callers decide whether to retry."""

    status_code = 503
