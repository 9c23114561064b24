"""Keeps the merchant record store and the derived pincode index in step.

Every write goes to the record store first and is then projected into the
index (deletes run the other way round: index retraction first). There is no
transaction spanning the two stores. When the projection fails after the
record write succeeded the result is tagged ``INDEX_FAILED`` and the record is
left in place; ``reconcile`` rebuilds the index from the record store.

No method raises: failures come back as ``SyncResult`` values.
"""

from __future__ import annotations

import functools
from collections import defaultdict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Iterable

from loguru import logger

from serviceability.core import pincodes
from serviceability.core.config import settings
from serviceability.core.errors import (
    ErrorKind,
    IndexWriteFailed,
    MerchantNotFound,
    PincodeFormatError,
    ServiceabilityError,
    StorageWriteFailed,
)
from serviceability.core.logging import sync_operation
from serviceability.schemas.merchant import (
    MerchantData,
    MerchantOut,
    MerchantServiceability,
    MerchantSummary,
    MerchantUpdate,
)
from serviceability.services.identifiers import next_merchant_id
from serviceability.services.merchant_store import MerchantRecord, MerchantRecordStore
from serviceability.services.pincode_index import PincodeIndex

DeltaFn = Callable[[Iterable[str], Iterable[str]], pincodes.PincodeDelta]


def _operation(name: str):
    """Run the wrapped engine method inside ``sync_operation(name)``."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            with sync_operation(name):
                return await func(self, *args, **kwargs)

        return wrapper

    return decorator


class SyncState(str, Enum):
    PENDING = "pending"
    AUTH_WRITTEN = "auth_written"
    INDEX_SYNCED = "index_synced"
    INDEX_FAILED = "index_failed"
    AUTH_FAILED = "auth_failed"


@dataclass(slots=True)
class SyncResult:
    ok: bool
    message: str
    state: SyncState | None = None
    error: ErrorKind | None = None
    merchant_id: int | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, message: str, **kwargs: Any) -> "SyncResult":
        return cls(ok=True, message=message, **kwargs)

    @classmethod
    def failure(cls, exc: ServiceabilityError, **kwargs: Any) -> "SyncResult":
        return cls(ok=False, message=exc.message, error=exc.kind, **kwargs)


def _failed_state(state: SyncState) -> SyncState:
    return SyncState.INDEX_FAILED if state is SyncState.AUTH_WRITTEN else SyncState.AUTH_FAILED


class MerchantSyncEngine:
    def __init__(
        self,
        store: MerchantRecordStore,
        index: PincodeIndex,
        *,
        cas_attempts: int | None = None,
    ):
        self._store = store
        self._index = index
        self._cas_attempts = cas_attempts or settings.PINCODE_CAS_ATTEMPTS

    def _fail(
        self,
        operation: str,
        exc: ServiceabilityError,
        terminal: SyncState,
        merchant_id: int | None = None,
    ) -> SyncResult:
        log = logger.bind(
            operation=operation,
            merchant_id=merchant_id,
            state=terminal.value,
            error=exc.kind.value,
            detail=exc.message,
        )
        if exc.kind in (ErrorKind.STORAGE_WRITE_FAILED, ErrorKind.INDEX_WRITE_FAILED):
            log.error("sync_operation_failed")
        else:
            log.info("sync_operation_rejected")
        return SyncResult.failure(exc, state=terminal, merchant_id=merchant_id)

    # -- reads -------------------------------------------------------------

    async def get_merchant(self, merchant_id: int) -> SyncResult:
        try:
            record = await self._store.get(merchant_id)
        except ServiceabilityError as exc:
            return self._fail("get", exc, SyncState.AUTH_FAILED, merchant_id)
        return SyncResult.success(
            "Merchant found",
            merchant_id=merchant_id,
            data=MerchantOut.model_validate(record.to_dict()).model_dump(),
        )

    async def list_merchants(self) -> SyncResult:
        try:
            rows = await self._store.list()
        except ServiceabilityError as exc:
            return self._fail("list", exc, SyncState.AUTH_FAILED)
        merchants = [MerchantSummary(id=mid, name=name).model_dump() for mid, name in rows]
        return SyncResult.success("Merchants listed", data={"merchants": merchants})

    async def list_snapshots(self) -> SyncResult:
        try:
            snapshots = await self._index.snapshots()
        except ServiceabilityError as exc:
            return self._fail("list_snapshots", exc, SyncState.AUTH_FAILED)
        return SyncResult.success("Merchant snapshots listed", data={"merchants": snapshots})

    async def lookup(self, requested: Iterable[str]) -> SyncResult:
        """Map each requested pincode to the merchant ids serviceable there."""

        result: dict[str, dict[str, Any]] = {}
        try:
            for pincode in pincodes.normalize(requested):
                merchant_ids = sorted(await self._index.lookup(pincode))
                result[pincode] = MerchantServiceability(merchant_ids=merchant_ids).model_dump()
        except ServiceabilityError as exc:
            return self._fail("lookup", exc, SyncState.AUTH_FAILED)
        return SyncResult.success("Serviceability resolved", data=result)

    # -- writes ------------------------------------------------------------

    @_operation("create")
    async def create_merchant(self, payload: MerchantData) -> SyncResult:
        """Allocate an id, persist the record, then index it."""

        state = SyncState.PENDING
        merchant_id: int | None = None
        try:
            serviced = pincodes.normalize(payload.pincodes_serviced)
            merchant_id = await next_merchant_id(self._store)
            record = MerchantRecord(
                id=merchant_id,
                name=payload.name,
                business_category=payload.business_category,
                phone_number=payload.contact.phone_number,
                email=payload.contact.email,
                pincodes_serviced=pincodes.encode(serviced),
            )
            await self._store.create(record)
            state = SyncState.AUTH_WRITTEN
            await self._index.add_merchant_to_index(record)
            state = SyncState.INDEX_SYNCED
        except ServiceabilityError as exc:
            return self._fail("create", exc, _failed_state(state), merchant_id)

        logger.bind(merchant_id=merchant_id, pincodes=len(serviced)).info("merchant_created")
        return SyncResult.success(
            "Merchant Information added",
            state=state,
            merchant_id=merchant_id,
            data={"ONDC_merchant_id": str(merchant_id)},
        )

    @_operation("update_fields")
    async def update_fields(self, merchant_id: int, payload: MerchantUpdate) -> SyncResult:
        """Overwrite the descriptive fields; pincode membership is untouched."""

        state = SyncState.PENDING
        try:
            rows = await self._store.update_fields(
                merchant_id,
                payload.name,
                payload.business_category,
                payload.phone_number,
                payload.email,
            )
            if rows != 1:
                await self._store.get(merchant_id)
                raise StorageWriteFailed("Failed to update merchant information")
            state = SyncState.AUTH_WRITTEN
            record = await self._store.get(merchant_id)
            try:
                await self._index.store_snapshot(record)
            except PincodeFormatError as exc:
                raise IndexWriteFailed(
                    f"Cannot snapshot merchant {merchant_id}: {exc.message}"
                ) from exc
            state = SyncState.INDEX_SYNCED
        except ServiceabilityError as exc:
            return self._fail("update_fields", exc, _failed_state(state), merchant_id)
        return SyncResult.success(
            "Merchant Information updated successfully", state=state, merchant_id=merchant_id
        )

    async def _apply_delta(
        self, merchant_id: int, apply: DeltaFn, requested: list[str],
    ) -> tuple[MerchantRecord, pincodes.PincodeDelta]:
        """Read, apply the delta and compare-and-swap the pincode text.

        Losing the swap to a concurrent writer re-reads and re-applies the delta.
        """

        for attempt in range(1, self._cas_attempts + 1):
            record = await self._store.get(merchant_id)
            delta = apply(pincodes.decode(record.pincodes_serviced), requested)
            text = pincodes.encode(delta.pincodes)
            if await self._store.update_pincode_text(
                merchant_id, text, expected=record.pincodes_serviced
            ):
                return replace(record, pincodes_serviced=text), delta
            logger.bind(merchant_id=merchant_id, attempt=attempt).warning("pincode_cas_conflict")
        raise StorageWriteFailed(
            f"Serviced pincodes of merchant {merchant_id} changed concurrently; retry later"
        )

    @_operation("add_pincodes")
    async def add_pincodes(self, merchant_id: int, requested: list[str]) -> SyncResult:
        state = SyncState.PENDING
        try:
            record, delta = await self._apply_delta(merchant_id, pincodes.add, requested)
            state = SyncState.AUTH_WRITTEN
            await self._index.add_merchant_to_index(record, delta.changed)
            state = SyncState.INDEX_SYNCED
        except ServiceabilityError as exc:
            return self._fail("add_pincodes", exc, _failed_state(state), merchant_id)

        logger.bind(merchant_id=merchant_id, added=delta.changed).info("pincodes_added")
        return SyncResult.success(
            "Serviceable pincodes added",
            state=state,
            merchant_id=merchant_id,
            data={
                "ONDC_merchant_id": str(merchant_id),
                "added": delta.changed,
                "pincodes_serviced": record.pincodes_serviced,
            },
        )

    @_operation("remove_pincodes")
    async def remove_pincodes(self, merchant_id: int, requested: list[str]) -> SyncResult:
        state = SyncState.PENDING
        try:
            record, delta = await self._apply_delta(merchant_id, pincodes.remove, requested)
            state = SyncState.AUTH_WRITTEN
            for pincode in delta.changed:
                await self._index.remove_merchant_from_pincode(pincode, merchant_id)
            await self._index.store_snapshot(record)
            state = SyncState.INDEX_SYNCED
        except ServiceabilityError as exc:
            return self._fail("remove_pincodes", exc, _failed_state(state), merchant_id)

        logger.bind(merchant_id=merchant_id, removed=delta.changed).info("pincodes_removed")
        return SyncResult.success(
            "Serviceable pincodes removed",
            state=state,
            merchant_id=merchant_id,
            data={
                "ONDC_merchant_id": str(merchant_id),
                "removed": delta.changed,
                "pincodes_serviced": record.pincodes_serviced,
            },
        )

    @_operation("delete")
    async def delete_merchant(self, merchant_id: int) -> SyncResult:
        """Retract the merchant from the index, then delete the record.

        A failure between the two steps leaves a record the index no longer
        points at, never an index entry without a record. The exception is a
        record whose pincode text does not decode: it is deleted without
        retraction and ``reconcile`` drops the ids it left in the index.
        """

        retracted = False
        try:
            record = await self._store.get(merchant_id)
            try:
                serviced = record.pincodes
            except PincodeFormatError as exc:
                logger.bind(merchant_id=merchant_id, detail=exc.message).warning(
                    "delete_skipped_retraction"
                )
                serviced = []
            for pincode in serviced:
                await self._index.remove_merchant_from_pincode(pincode, merchant_id)
            await self._index.remove_snapshot(merchant_id)
            retracted = True
            if await self._store.delete(merchant_id) == 0:
                raise MerchantNotFound(merchant_id)
        except ServiceabilityError as exc:
            index_failed = not retracted and exc.kind is ErrorKind.INDEX_WRITE_FAILED
            terminal = SyncState.INDEX_FAILED if index_failed else SyncState.AUTH_FAILED
            return self._fail("delete", exc, terminal, merchant_id)

        logger.bind(merchant_id=merchant_id).info("merchant_deleted")
        return SyncResult.success(
            "Merchant Information Deleted!",
            state=SyncState.INDEX_SYNCED,
            merchant_id=merchant_id,
            data={"ONDC_merchant_id": str(merchant_id)},
        )

    # -- repair ------------------------------------------------------------

    @_operation("reconcile")
    async def reconcile(self) -> SyncResult:
        """Recompute the pincode index and snapshots from the record store."""

        try:
            records = await self._store.all()
            expected: dict[str, set[int]] = defaultdict(set)
            serviced: dict[int, list[str]] = {}
            skipped: list[int] = []
            for record in records:
                try:
                    serviced[record.id] = record.pincodes
                except PincodeFormatError as exc:
                    logger.bind(merchant_id=record.id, detail=exc.message).warning(
                        "reconcile_skipped_merchant"
                    )
                    skipped.append(record.id)
                    continue
                for pincode in serviced[record.id]:
                    expected[pincode].add(record.id)

            known = set(expected) | set(await self._index.indexed_pincodes())
            current = {pincode: await self._index.lookup(pincode) for pincode in sorted(known)}

            added = 0
            for record in records:
                if record.id not in serviced:
                    continue
                missing = [p for p in serviced[record.id] if record.id not in current[p]]
                await self._index.add_merchant_to_index(record, missing)
                added += len(missing)

            removed = 0
            protected = set(skipped)
            for pincode, merchant_ids in current.items():
                for stale in sorted(merchant_ids - expected.get(pincode, set()) - protected):
                    await self._index.remove_merchant_from_pincode(pincode, stale)
                    removed += 1

            live = {record.id for record in records}
            dropped = 0
            for snapshot in await self._index.snapshots():
                if snapshot["id"] not in live:
                    await self._index.remove_snapshot(snapshot["id"])
                    dropped += 1
        except ServiceabilityError as exc:
            terminal = (
                SyncState.INDEX_FAILED
                if exc.kind is ErrorKind.INDEX_WRITE_FAILED
                else SyncState.AUTH_FAILED
            )
            return self._fail("reconcile", exc, terminal)

        logger.bind(added=added, removed=removed, dropped=dropped, skipped=skipped).info(
            "index_reconciled"
        )
        return SyncResult.success(
            "Pincode index reconciled",
            state=SyncState.INDEX_SYNCED,
            data={
                "added": added,
                "removed": removed,
                "snapshots_dropped": dropped,
                "skipped_merchant_ids": skipped,
            },
        )
