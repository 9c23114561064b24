import pytest
from httpx import ASGITransport, AsyncClient

from serviceability.core.deps import get_sync_engine
from serviceability.main import app
from serviceability.services.notifications import get_mailer

ACME = {
    "name": "Acme",
    "business_category": "Grocery",
    "contact": {"phone_number": "9999999999", "email": "ops@acme.test"},
    "pincodes_serviced": ["560001", "560002"],
}


class RecordingMailer:
    def __init__(self):
        self.sent: list[tuple[str, int]] = []

    async def send_registration(self, to_address, merchant_id):
        self.sent.append((to_address, merchant_id))
        return True


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
async def client(sync, mailer):
    app.dependency_overrides[get_sync_engine] = lambda: sync
    app.dependency_overrides[get_mailer] = lambda: mailer
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_create_returns_id_and_schedules_email(client, mailer):
    response = await client.post("/merchant", json=ACME)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["ONDC_merchant_id"] == "1"
    assert mailer.sent == [("ops@acme.test", 1)]
    assert response.headers["X-Request-ID"]


@pytest.mark.anyio
async def test_create_validation_error(client):
    response = await client.post("/merchant", json={**ACME, "name": ""})

    assert response.status_code == 422


@pytest.mark.anyio
async def test_serviceability_lookup(client):
    await client.post("/merchant", json=ACME)

    response = await client.get("/merchant/serviceability", params={"pincodes": "560001, 110001"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["560001"] == {"merchant_ids": [1]}
    assert data["110001"] == {"merchant_ids": []}


@pytest.mark.anyio
async def test_serviceability_lookup_needs_a_pincode(client):
    response = await client.get("/merchant/serviceability", params={"pincodes": " , "})

    assert response.status_code == 422
    assert response.json()["status"] == "error"


@pytest.mark.anyio
async def test_add_and_remove_pincodes(client, index):
    await client.post("/merchant", json=ACME)

    added = await client.put("/merchant/serviceability/1", json={"pincodes": ["560003"]})
    assert added.status_code == 200
    assert added.json()["data"]["pincodes_serviced"] == "560001, 560002, 560003"

    removed = await client.request(
        "DELETE", "/merchant/serviceability/1", json={"pincodes": ["560001"]}
    )
    assert removed.status_code == 200
    assert await index.lookup("560001") == set()


@pytest.mark.anyio
async def test_removing_unserviced_pincode_is_a_conflict(client, store):
    await client.post("/merchant", json=ACME)

    response = await client.request(
        "DELETE", "/merchant/serviceability/1", json={"pincodes": ["999999"]}
    )

    assert response.status_code == 409
    body = response.json()
    assert body["data"]["error"] == "no_op"
    assert body["data"]["message"] == "No pincodes were deleted"
    assert store.rows[1].pincodes_serviced == "560001, 560002"


@pytest.mark.anyio
async def test_unknown_merchant_is_404(client):
    response = await client.get("/merchant/41")

    assert response.status_code == 404
    assert response.json()["data"]["message"] == "Merchant 41 not found"


@pytest.mark.anyio
async def test_get_update_and_delete_merchant(client):
    await client.post("/merchant", json=ACME)

    fetched = await client.get("/merchant/1")
    assert fetched.json()["data"]["pincodes_serviced"] == "560001, 560002"

    updated = await client.put("/merchant/1", json={"name": "Acme Foods", "email": "new@acme.test"})
    assert updated.status_code == 200

    listing = await client.get("/merchants")
    assert listing.json()["data"]["merchants"] == [{"id": 1, "name": "Acme Foods"}]

    deleted = await client.delete("/merchant/1")
    assert deleted.status_code == 200
    assert deleted.json()["data"]["message"] == "Merchant Information Deleted!"
    assert (await client.get("/merchant/1")).status_code == 404


@pytest.mark.anyio
async def test_index_failure_reports_partial_state(client, index, store):
    index.fail_writes = True

    response = await client.post("/merchant", json=ACME)

    assert response.status_code == 502
    data = response.json()["data"]
    assert data["error"] == "index_write_failed"
    assert data["state"] == "index_failed"
    assert 1 in store.rows


@pytest.mark.anyio
async def test_reconcile_endpoint_and_snapshots(client, index):
    index.fail_writes = True
    await client.post("/merchant", json=ACME)
    index.fail_writes = False

    response = await client.post("/merchant/index/reconcile")
    assert response.status_code == 200
    assert response.json()["data"]["added"] == 2

    snapshots = await client.get("/merchants/snapshot")
    assert [s["id"] for s in snapshots.json()["data"]["merchants"]] == [1]


@pytest.mark.anyio
async def test_upload_csv_creates_merchants(client, mailer):
    csv_body = (
        "name,business_category,phone_number,email,pincodes\n"
        'Acme,Grocery,999,ops@acme.test,"560001, 560002"\n'
        "Beta,Pharmacy,888,beta@acme.test,560003\n"
    )

    response = await client.post(
        "/upload_csv", files={"upload": ("merchants.csv", csv_body, "text/csv")}
    )

    assert response.status_code == 200
    assert response.json()["data"]["merchant_ids"] == [1, 2]
    assert [merchant_id for _, merchant_id in mailer.sent] == [1, 2]


@pytest.mark.anyio
async def test_upload_csv_rejects_other_extensions(client):
    response = await client.post(
        "/upload_csv", files={"upload": ("merchants.xlsx", b"data", "application/octet-stream")}
    )

    assert response.status_code == 400
    assert "csv" in response.json()["data"]["message"]


@pytest.mark.anyio
async def test_healthz(client):
    response = await client.get("/api/healthz")

    assert response.json() == {"status": "ok"}
