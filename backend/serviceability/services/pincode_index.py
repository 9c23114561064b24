"""Derived pincode -> merchant ids index, plus merchant snapshots, kept in Redis.

Key layout:
    {prefix}:{pincode}   set of merchant ids serviceable at the pincode
    {snapshot_key}       hash of merchant id -> JSON snapshot of the merchant

Everything here is a projection of the merchant record store and may be
rebuilt from it at any time.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from serviceability.core.config import settings
from serviceability.core.errors import IndexWriteFailed
from serviceability.services.merchant_store import MerchantRecord


class PincodeIndex(Protocol):
    """Contract for the derived index; all failures raise ``IndexWriteFailed``."""

    async def add_merchant_to_index(
        self, record: MerchantRecord, pincodes: Iterable[str] | None = None,
    ) -> None: ...
    async def remove_merchant_from_pincode(self, pincode: str, merchant_id: int) -> None: ...
    async def lookup(self, pincode: str) -> set[int]: ...
    async def store_snapshot(self, record: MerchantRecord) -> None: ...
    async def remove_snapshot(self, merchant_id: int) -> None: ...
    async def snapshots(self) -> list[dict[str, Any]]: ...
    async def indexed_pincodes(self) -> list[str]: ...


class RedisPincodeIndex:
    """``PincodeIndex`` on Redis sets and a snapshot hash."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        prefix: str | None = None,
        snapshot_key: str | None = None,
    ):
        self._client = client
        self._prefix = prefix or settings.PINCODE_KEY_PREFIX
        self._snapshot_key = snapshot_key or settings.SNAPSHOT_KEY

    def _key(self, pincode: str) -> str:
        return f"{self._prefix}:{pincode}"

    async def add_merchant_to_index(
        self, record: MerchantRecord, pincodes: Iterable[str] | None = None,
    ) -> None:
        """Add the merchant id under each pincode (all of its own when None), then snapshot it."""

        targets = record.pincodes if pincodes is None else list(pincodes)
        try:
            for pincode in targets:
                await self._client.sadd(self._key(pincode), record.id)
        except RedisError as exc:
            raise IndexWriteFailed(f"Failed to store data in Redis: {exc}") from exc
        await self.store_snapshot(record)

    async def remove_merchant_from_pincode(self, pincode: str, merchant_id: int) -> None:
        try:
            await self._client.srem(self._key(pincode), merchant_id)
        except RedisError as exc:
            raise IndexWriteFailed(
                f"Failed to remove merchant {merchant_id} from pincode {pincode}: {exc}"
            ) from exc

    async def lookup(self, pincode: str) -> set[int]:
        try:
            members = await self._client.smembers(self._key(pincode))
        except RedisError as exc:
            raise IndexWriteFailed(f"Error retrieving data for pincode {pincode}: {exc}") from exc
        return {int(member) for member in members}

    async def store_snapshot(self, record: MerchantRecord) -> None:
        try:
            await self._client.hset(
                self._snapshot_key, str(record.id), json.dumps(record.to_snapshot())
            )
        except RedisError as exc:
            raise IndexWriteFailed(f"Failed to store merchant snapshot: {exc}") from exc

    async def remove_snapshot(self, merchant_id: int) -> None:
        try:
            await self._client.hdel(self._snapshot_key, str(merchant_id))
        except RedisError as exc:
            raise IndexWriteFailed(f"Failed to remove merchant snapshot: {exc}") from exc

    async def snapshots(self) -> list[dict[str, Any]]:
        try:
            values = await self._client.hvals(self._snapshot_key)
        except RedisError as exc:
            raise IndexWriteFailed(f"Failed to read merchant snapshots: {exc}") from exc
        return sorted((json.loads(value) for value in values), key=lambda snap: snap["id"])

    async def indexed_pincodes(self) -> list[str]:
        offset = len(self._prefix) + 1
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{self._prefix}:*")]
        except RedisError as exc:
            raise IndexWriteFailed(f"Failed to scan pincode keys: {exc}") from exc
        return sorted(key[offset:] for key in keys)
