import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import FakeBlobClient, make_pdf
from shared.errors import NetworkError, StoreUnavailableError
from server.api_server import app, lifespan

API_KEY = "test-key"
ALICE = {"X-Api-Key": API_KEY, "X-Owner-Id": "alice"}


@pytest.fixture
def store(pdf_bytes) -> FakeBlobClient:
    store = FakeBlobClient()
    store.seed("health_records/alice/bloodwork.pdf", pdf_bytes)
    store.seed("health_records/alice/xray.pdf", make_pdf(pages=1, title="X-ray"))
    store.seed("health_records/bob/private.pdf", pdf_bytes)
    return store


@pytest_asyncio.fixture
async def client(store, monkeypatch, tmp_path):
    monkeypatch.setenv("API_SERVER_API_KEY", API_KEY)
    monkeypatch.setenv("HEALTH_RECORDS_DOWNLOAD_DIR", str(tmp_path / "downloads"))
    app.state.blob_client = store
    async with lifespan(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_wrong_api_key_is_rejected(client, store):
    resp = await client.get("/records", headers={"X-Api-Key": "nope", "X-Owner-Id": "alice"})
    assert resp.status_code == 401
    assert store.total_calls == 0


@pytest.mark.asyncio
async def test_missing_owner_is_rejected_without_store_calls(client, store):
    resp = await client.get("/records", headers={"X-Api-Key": API_KEY})

    assert resp.status_code == 401
    assert resp.json()["error"] == "missing_owner"
    assert store.total_calls == 0


@pytest.mark.asyncio
async def test_list_and_search(client):
    resp = await client.get("/records", headers=ALICE)
    assert resp.status_code == 200
    body = resp.json()
    assert body["owner_id"] == "alice"
    assert [d["name"] for d in body["documents"]] == ["bloodwork.pdf", "xray.pdf"]
    assert body["total"] == 2

    resp = await client.get("/records", params={"query": "XRAY"}, headers=ALICE)
    assert [d["name"] for d in resp.json()["documents"]] == ["xray.pdf"]


@pytest.mark.asyncio
async def test_owner_listing_is_cached_until_refresh(client, store, pdf_bytes):
    await client.get("/records", headers=ALICE)
    store.seed("health_records/alice/new.pdf", pdf_bytes)

    resp = await client.get("/records", headers=ALICE)
    assert resp.json()["total"] == 2
    resp = await client.post("/records/refresh", headers=ALICE)
    assert resp.json()["total"] == 3
    assert store.calls["list"] == 2


@pytest.mark.asyncio
async def test_upload(client, store, pdf_bytes):
    resp = await client.put(
        "/records/discharge letter.pdf",
        content=pdf_bytes,
        headers={**ALICE, "Content-Type": "application/pdf"},
    )

    assert resp.status_code == 201
    assert resp.json()["id"] == "alice/discharge letter.pdf"
    assert store.objects["health_records/alice/discharge letter.pdf"][0] == pdf_bytes
    resp = await client.get("/records", headers=ALICE)
    assert resp.json()["total"] == 3


@pytest.mark.asyncio
async def test_upload_of_empty_body_is_rejected(client, store):
    resp = await client.put("/records/empty.pdf", content=b"", headers=ALICE)
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_input"
    assert store.calls["put"] == 0


@pytest.mark.asyncio
async def test_preview(client):
    resp = await client.get("/records/0/preview", headers=ALICE)

    assert resp.status_code == 200
    body = resp.json()
    assert body["document"]["name"] == "bloodwork.pdf"
    assert body["page_count"] == 2
    assert body["content_type"] == "application/pdf"

    resp = await client.get("/records/status", headers=ALICE)
    assert resp.json() == {"owner_id": "alice", "busy": False, "documents": 2}


@pytest.mark.asyncio
async def test_preview_of_corrupt_document(client, store):
    store.seed("health_records/alice/bloodwork.pdf", b"%PDF-1.4\nbroken")
    resp = await client.get("/records/0/preview", headers=ALICE)
    assert resp.status_code == 422
    assert resp.json()["error"] == "corrupt_artifact"


@pytest.mark.asyncio
async def test_preview_fetch_failure(client, store):
    store.fail["download"] = NetworkError("connection reset")
    resp = await client.get("/records/1/preview", headers=ALICE)
    assert resp.status_code == 502
    assert resp.json()["error"] == "network_error"


@pytest.mark.asyncio
async def test_download(client, pdf_bytes):
    resp = await client.get("/records/0/download", headers=ALICE)
    assert resp.status_code == 200
    assert resp.content == pdf_bytes
    assert resp.headers["content-type"] == "application/pdf"


@pytest.mark.asyncio
async def test_delete(client, store):
    resp = await client.delete("/records/1", headers=ALICE)

    assert resp.status_code == 200
    assert [d["name"] for d in resp.json()["documents"]] == ["bloodwork.pdf"]
    assert "health_records/alice/xray.pdf" not in store.objects
    assert "health_records/bob/private.pdf" in store.objects


@pytest.mark.asyncio
async def test_delete_out_of_range(client, store):
    resp = await client.delete("/records/5", headers=ALICE)
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_index"
    assert store.calls["delete"] == 0


@pytest.mark.asyncio
async def test_owners_are_isolated(client):
    resp = await client.get("/records", headers={"X-Api-Key": API_KEY, "X-Owner-Id": "bob"})
    assert [d["name"] for d in resp.json()["documents"]] == ["private.pdf"]

    resp = await client.get("/records", headers=ALICE)
    assert "private.pdf" not in [d["name"] for d in resp.json()["documents"]]


@pytest.mark.asyncio
async def test_store_unavailable_on_first_listing(client, store):
    store.fail["list"] = StoreUnavailableError("503", status_code=503)

    resp = await client.get("/records", headers=ALICE)
    assert resp.status_code == 503
    assert resp.json()["error"] == "store_unavailable"

    del store.fail["list"]
    resp = await client.get("/records", headers=ALICE)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_delete_by_id(client, store):
    resp = await client.delete("/records/by-id/alice/bloodwork.pdf", headers=ALICE)

    assert resp.status_code == 200
    assert [d["name"] for d in resp.json()["documents"]] == ["xray.pdf"]

    resp = await client.delete("/records/by-id/alice/bloodwork.pdf", headers=ALICE)
    assert resp.status_code == 409
    assert store.calls["delete"] == 1


@pytest.mark.asyncio
async def test_served_downloads_are_removed_from_disk(client, pdf_bytes, tmp_path):
    for _ in range(3):
        resp = await client.get("/records/0/download", headers=ALICE)
        assert resp.status_code == 200
        assert resp.content == pdf_bytes

    assert list((tmp_path / "downloads").iterdir()) == []


@pytest.mark.asyncio
async def test_least_recently_used_owner_session_is_dropped(client, store):
    app.state.max_owner_sessions = 2
    bob = {"X-Api-Key": API_KEY, "X-Owner-Id": "bob"}
    carol = {"X-Api-Key": API_KEY, "X-Owner-Id": "carol"}

    await client.get("/records", headers=ALICE)
    await client.get("/records", headers=bob)
    await client.get("/records", headers=ALICE)
    await client.get("/records", headers=carol)

    assert list(app.state.record_services) == ["alice", "carol"]
    assert store.calls["list"] == 3

    resp = await client.get("/records", headers=bob)
    assert resp.status_code == 200
    assert [d["name"] for d in resp.json()["documents"]] == ["private.pdf"]
    assert store.calls["list"] == 4
    assert list(app.state.record_services) == ["carol", "bob"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "header",
    [
        "application/x-www-form-urlencoded",
        "text/plain; charset=utf-8",
        "Application/PDF; charset=binary",
    ],
)
async def test_upload_stores_pdf_type_for_non_document_headers(client, store, pdf_bytes, header):
    resp = await client.put("/records/scan.pdf", content=pdf_bytes, headers={**ALICE, "Content-Type": header})

    assert resp.status_code == 201
    assert resp.json()["content_type"] == "application/pdf"
    assert store.objects["health_records/alice/scan.pdf"] == (pdf_bytes, "application/pdf")
