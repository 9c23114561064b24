import fnmatch
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from serviceability.core.errors import IndexWriteFailed
from serviceability.services.merchant_store import MerchantRecord
from serviceability.services.pincode_index import RedisPincodeIndex


class FakeRedis:
    """Just enough of redis.asyncio.Redis (decode_responses=True) for the index."""

    def __init__(self):
        self.sets: dict[str, set[str]] = {}
        self.hashes: dict[str, dict[str, str]] = {}

    async def sadd(self, key, *members):
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(str(m) for m in members)
        return len(bucket) - before

    async def srem(self, key, *members):
        bucket = self.sets.get(key, set())
        removed = 0
        for member in members:
            if str(member) in bucket:
                bucket.discard(str(member))
                removed += 1
        if not bucket:
            self.sets.pop(key, None)
        return removed

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def hset(self, name, key, value):
        self.hashes.setdefault(name, {})[key] = value
        return 1

    async def hdel(self, name, *keys):
        bucket = self.hashes.get(name, {})
        return sum(1 for key in keys if bucket.pop(key, None) is not None)

    async def hvals(self, name):
        return list(self.hashes.get(name, {}).values())

    async def scan_iter(self, match=None):
        for key in list(self.sets):
            if match is None or fnmatch.fnmatch(key, match):
                yield key


class DownRedis(FakeRedis):
    async def sadd(self, key, *members):
        raise RedisConnectionError("Connection refused")

    async def srem(self, key, *members):
        raise RedisConnectionError("Connection refused")

    async def smembers(self, key):
        raise RedisConnectionError("Connection refused")


def _record(merchant_id: int = 6, text: str = "560001, 560002") -> MerchantRecord:
    return MerchantRecord(id=merchant_id, name="Acme", email="ops@acme.test", pincodes_serviced=text)


@pytest.fixture
def client():
    return FakeRedis()


@pytest.fixture
def redis_index(client):
    return RedisPincodeIndex(client, prefix="pincodes", snapshot_key="merchants")


@pytest.mark.anyio
async def test_index_adds_id_under_each_pincode_key(redis_index, client):
    await redis_index.add_merchant_to_index(_record())

    assert client.sets == {"pincodes:560001": {"6"}, "pincodes:560002": {"6"}}
    assert await redis_index.lookup("560001") == {6}
    assert await redis_index.lookup("999999") == set()


@pytest.mark.anyio
async def test_index_only_given_pincodes_but_snapshot_whole_record(redis_index, client):
    await redis_index.add_merchant_to_index(_record(), ["560002"])

    assert list(client.sets) == ["pincodes:560002"]
    snapshot = json.loads(client.hashes["merchants"]["6"])
    assert snapshot["pincodes_serviced"] == ["560001", "560002"]
    assert snapshot["contact"] == {"phone_number": "", "email": "ops@acme.test"}


@pytest.mark.anyio
async def test_snapshot_is_overwritten_not_appended(redis_index):
    await redis_index.store_snapshot(_record(text="560001"))
    await redis_index.store_snapshot(_record(text="560001, 560003"))
    await redis_index.store_snapshot(_record(merchant_id=2, text=""))

    snapshots = await redis_index.snapshots()

    assert [s["id"] for s in snapshots] == [2, 6]
    assert snapshots[1]["pincodes_serviced"] == ["560001", "560003"]

    await redis_index.remove_snapshot(6)
    assert [s["id"] for s in await redis_index.snapshots()] == [2]


@pytest.mark.anyio
async def test_remove_merchant_from_pincode_leaves_others(redis_index):
    await redis_index.add_merchant_to_index(_record(merchant_id=1, text="560001"))
    await redis_index.add_merchant_to_index(_record(merchant_id=2, text="560001"))

    await redis_index.remove_merchant_from_pincode("560001", 1)
    await redis_index.remove_merchant_from_pincode("560009", 1)

    assert await redis_index.lookup("560001") == {2}


@pytest.mark.anyio
async def test_indexed_pincodes_strips_prefix(redis_index, client):
    await redis_index.add_merchant_to_index(_record(text="560002, 110001"))
    client.sets["other:123"] = {"1"}

    assert await redis_index.indexed_pincodes() == ["110001", "560002"]


@pytest.mark.anyio
async def test_connection_errors_become_index_failures():
    down = RedisPincodeIndex(DownRedis(), prefix="pincodes", snapshot_key="merchants")

    with pytest.raises(IndexWriteFailed) as excinfo:
        await down.add_merchant_to_index(_record())
    assert "Connection refused" in excinfo.value.message

    with pytest.raises(IndexWriteFailed):
        await down.remove_merchant_from_pincode("560001", 6)
    with pytest.raises(IndexWriteFailed):
        await down.lookup("560001")


@pytest.mark.anyio
async def test_repeated_add_keeps_one_member_and_one_snapshot(redis_index, client):
    await redis_index.add_merchant_to_index(_record(text="560001"))
    await redis_index.add_merchant_to_index(_record(text="560001"))
    await redis_index.add_merchant_to_index(_record(text="560001"), ["560001"])

    assert client.sets == {"pincodes:560001": {"6"}}
    assert await redis_index.lookup("560001") == {6}
    assert list(client.hashes["merchants"]) == ["6"]
    assert len(await redis_index.snapshots()) == 1
