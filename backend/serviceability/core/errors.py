"""Error hierarchy for the merchant record store, pincode index and sync engine.

Stores raise these; the sync engine catches them and turns them into tagged
results, so none of them reach a route handler as an exception.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Tag carried by failed sync results and used for HTTP status mapping."""

    NOT_FOUND = "not_found"
    STORAGE_WRITE_FAILED = "storage_write_failed"
    INDEX_WRITE_FAILED = "index_write_failed"
    NO_OP = "no_op"
    INVALID_INPUT = "invalid_input"


class ServiceabilityError(Exception):
    """Base exception for all serviceability failures."""

    kind: ErrorKind = ErrorKind.STORAGE_WRITE_FAILED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MerchantNotFound(ServiceabilityError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, merchant_id: int):
        super().__init__(f"Merchant {merchant_id} not found")
        self.merchant_id = merchant_id


class StorageWriteFailed(ServiceabilityError):
    """The authoritative store rejected a read or write (includes duplicate ids)."""

    kind = ErrorKind.STORAGE_WRITE_FAILED


class IndexWriteFailed(ServiceabilityError):
    """The derived pincode index rejected a command."""

    kind = ErrorKind.INDEX_WRITE_FAILED


class NoOpChange(ServiceabilityError):
    """A pincode delta matched nothing; reported, not a failure of the stores."""

    kind = ErrorKind.NO_OP


class PincodeFormatError(ServiceabilityError):
    kind = ErrorKind.INVALID_INPUT
