"""Shared helpers for database error handling."""

from __future__ import annotations

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from serviceability.core.errors import StorageWriteFailed

MYSQL_DUPLICATE_KEY = 1062


def extract_error_code(exc: SQLAlchemyError) -> tuple[int | None, str | None]:
    """Return the driver error code and SQLSTATE carried by a DBAPI error."""

    orig = getattr(exc, "orig", None)
    if not orig:
        return None, None
    code = None
    sqlstate = getattr(orig, "sqlstate", None)
    if hasattr(orig, "args") and orig.args:
        try:
            code = int(orig.args[0])
        except (TypeError, ValueError):
            code = None
    return code, sqlstate


def is_duplicate_key(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, IntegrityError):
        return True
    code, _ = extract_error_code(exc)
    return code == MYSQL_DUPLICATE_KEY


def storage_error(exc: SQLAlchemyError, action: str) -> StorageWriteFailed:
    """Translate a SQLAlchemy failure into the store-level error."""

    if is_duplicate_key(exc):
        return StorageWriteFailed(f"Failed to {action}: duplicate merchant id")
    detail = str(getattr(exc, "orig", None) or exc) if isinstance(exc, DBAPIError) else str(exc)
    return StorageWriteFailed(f"Failed to {action}: {detail}")
