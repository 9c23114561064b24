import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from serviceability.core.db import create_tables
from serviceability.core.errors import MerchantNotFound, StorageWriteFailed
from serviceability.services.merchant_store import MerchantRecord, SqlMerchantStore


@pytest.fixture
async def sql_store():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(bind=engine)
    yield SqlMerchantStore(async_sessionmaker(bind=engine, expire_on_commit=False))
    await engine.dispose()


def _record(merchant_id: int, name: str = "Acme", text: str = "560001, 560002") -> MerchantRecord:
    return MerchantRecord(
        id=merchant_id,
        name=name,
        business_category="Grocery",
        phone_number="9999999999",
        email="ops@acme.test",
        pincodes_serviced=text,
    )


@pytest.mark.anyio
async def test_create_then_get_round_trips_record(sql_store):
    await sql_store.create(_record(6))

    record = await sql_store.get(6)

    assert record == _record(6)
    assert record.pincodes == ["560001", "560002"]


@pytest.mark.anyio
async def test_get_missing_raises_not_found(sql_store):
    with pytest.raises(MerchantNotFound) as excinfo:
        await sql_store.get(404)
    assert excinfo.value.message == "Merchant 404 not found"


@pytest.mark.anyio
async def test_duplicate_id_is_a_storage_failure(sql_store):
    await sql_store.create(_record(1))

    with pytest.raises(StorageWriteFailed) as excinfo:
        await sql_store.create(_record(1, name="Other"))

    assert "duplicate merchant id" in excinfo.value.message
    assert (await sql_store.get(1)).name == "Acme"


@pytest.mark.anyio
async def test_max_id_and_listing(sql_store):
    assert await sql_store.max_id() is None

    await sql_store.create(_record(5, name="Five"))
    await sql_store.create(_record(2, name="Two"))

    assert await sql_store.max_id() == 5
    assert await sql_store.list() == [(2, "Two"), (5, "Five")]
    assert [r.id for r in await sql_store.all()] == [2, 5]


@pytest.mark.anyio
async def test_update_fields_reports_rows_matched(sql_store):
    await sql_store.create(_record(1))

    assert await sql_store.update_fields(1, "Acme Foods", "Food", "1", "a@b.c") == 1
    assert await sql_store.update_fields(9, "Ghost", "", "", "") == 0

    record = await sql_store.get(1)
    assert record.name == "Acme Foods"
    assert record.pincodes_serviced == "560001, 560002"


@pytest.mark.anyio
async def test_pincode_text_swap_only_applies_to_expected_value(sql_store):
    await sql_store.create(_record(1, text="560001"))

    assert await sql_store.update_pincode_text(1, "560001, 560003", expected="560001")
    assert not await sql_store.update_pincode_text(1, "560009", expected="560001")
    assert (await sql_store.get(1)).pincodes_serviced == "560001, 560003"

    assert await sql_store.update_pincode_text(1, "")
    assert (await sql_store.get(1)).pincodes == []


@pytest.mark.anyio
async def test_delete_returns_rows_removed(sql_store):
    await sql_store.create(_record(1))

    assert await sql_store.delete(1) == 1
    assert await sql_store.delete(1) == 0
    with pytest.raises(MerchantNotFound):
        await sql_store.get(1)
