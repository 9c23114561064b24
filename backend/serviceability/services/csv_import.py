"""Bulk merchant import from an uploaded CSV file.

Expected columns, after a header row:
    name, business_category, phone_number, email, pincodes

``pincodes`` uses the stored ``", "`` form. Each row is fed through the normal
create path, one at a time, and the import stops at the first failure.
"""

from __future__ import annotations

import csv
import io
from typing import Callable, Optional

from anyio import fail_after

from serviceability.core import pincodes
from serviceability.core.concurrency import run_in_thread_limited
from serviceability.core.config import settings
from serviceability.core.errors import (
    ErrorKind,
    NoOpChange,
    PincodeFormatError,
    ServiceabilityError,
)
from serviceability.schemas.merchant import ContactInformation, MerchantData
from serviceability.services.sync_engine import MerchantSyncEngine, SyncResult

EXPECTED_COLUMNS = 5


class CsvFormatError(ServiceabilityError):
    """The upload is not a readable merchant CSV."""

    kind = ErrorKind.INVALID_INPUT


def parse_merchant_csv(raw: bytes) -> list[MerchantData]:
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CsvFormatError("The uploaded file is not UTF-8 text") from exc

    reader = csv.reader(io.StringIO(text))
    if next(reader, None) is None:
        raise CsvFormatError("The uploaded file is empty")

    merchants = []
    for line_no, row in enumerate(reader, start=2):
        if not any(cell.strip() for cell in row):
            continue
        if len(row) < EXPECTED_COLUMNS:
            raise CsvFormatError(
                f"Row {line_no}: expected {EXPECTED_COLUMNS} columns, got {len(row)}"
            )
        name, category, phone, email, serviced = (cell.strip() for cell in row[:EXPECTED_COLUMNS])
        if not name:
            raise CsvFormatError(f"Row {line_no}: merchant name is required")
        try:
            codes = pincodes.decode(serviced)
        except PincodeFormatError as exc:
            raise CsvFormatError(f"Row {line_no}: {exc.message}") from exc
        merchants.append(
            MerchantData(
                name=name,
                business_category=category,
                contact=ContactInformation(phone_number=phone, email=email),
                pincodes_serviced=codes,
            )
        )
    return merchants


async def import_merchants(
    engine: MerchantSyncEngine,
    raw: bytes,
    on_created: Optional[Callable[[MerchantData, SyncResult], None]] = None,
) -> SyncResult:
    """Parse off the event loop, then create merchants in file order.

    Raises ``TimeoutError`` when parsing exceeds ``CSV_OP_TIMEOUT_SEC``.
    """

    try:
        with fail_after(settings.CSV_OP_TIMEOUT_SEC):
            rows = await run_in_thread_limited(parse_merchant_csv, raw)
    except ServiceabilityError as exc:
        return SyncResult.failure(exc)

    added: list[int] = []
    for payload in rows:
        result = await engine.create_merchant(payload)
        if not result.ok:
            result.data["merchant_ids"] = added
            return result
        added.append(result.merchant_id)
        if on_created is not None:
            on_created(payload, result)

    if not added:
        return SyncResult.failure(NoOpChange("No merchants added"))
    return SyncResult.success("Merchants added successfully", data={"merchant_ids": added})
