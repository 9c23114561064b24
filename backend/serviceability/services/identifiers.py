"""Merchant id allocation."""

from __future__ import annotations

from serviceability.services.merchant_store import MerchantRecordStore


async def next_merchant_id(store: MerchantRecordStore) -> int:
    """Return one more than the highest id currently stored (1 for an empty store).

    There is no reservation: two concurrent callers can get the same value, and
    the store's primary key rejects whichever insert lands second.
    """

    current = await store.max_id()
    return (current or 0) + 1
