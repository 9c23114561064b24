"""FastAPI dependencies wiring the stores into the sync engine."""

from fastapi import Depends

from serviceability.core.db import SessionLocal
from serviceability.core.redis_client import get_redis_client
from serviceability.services.merchant_store import MerchantRecordStore, SqlMerchantStore
from serviceability.services.pincode_index import PincodeIndex, RedisPincodeIndex
from serviceability.services.sync_engine import MerchantSyncEngine


def get_merchant_store() -> MerchantRecordStore:
    return SqlMerchantStore(SessionLocal)


def get_pincode_index() -> PincodeIndex:
    return RedisPincodeIndex(get_redis_client())


def get_sync_engine(
    store: MerchantRecordStore = Depends(get_merchant_store),
    index: PincodeIndex = Depends(get_pincode_index),
) -> MerchantSyncEngine:
    return MerchantSyncEngine(store, index)
