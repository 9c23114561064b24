"""Rebuild the Redis pincode index from the merchants table."""

import asyncio
import sys
import pathlib

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from serviceability.core.db import SessionLocal, engine
from serviceability.core.redis_client import close_redis_client, get_redis_client
from serviceability.services.merchant_store import SqlMerchantStore
from serviceability.services.pincode_index import RedisPincodeIndex
from serviceability.services.sync_engine import MerchantSyncEngine


async def reconcile() -> int:
    sync = MerchantSyncEngine(SqlMerchantStore(SessionLocal), RedisPincodeIndex(get_redis_client()))
    try:
        result = await sync.reconcile()
    finally:
        await close_redis_client()
        await engine.dispose()

    if not result.ok:
        print(f"Reconciliation failed ({result.error.value}): {result.message}")
        return 1
    print(
        "Reconciled: added={added} removed={removed} snapshots_dropped={snapshots_dropped}".format(
            **result.data
        )
    )
    if result.data["skipped_merchant_ids"]:
        print(f"Skipped malformed merchants: {result.data['skipped_merchant_ids']}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(reconcile()))
