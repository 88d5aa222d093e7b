import asyncio

import pytest

from shared.errors import InvalidIndexError, MissingOwnerError, NetworkError, StoreUnavailableError
from services.health_records.DocumentRegistry import DocumentRegistry


@pytest.fixture
def registry(helper_config, blob_client) -> DocumentRegistry:
    return DocumentRegistry(helper_config=helper_config, blob_client=blob_client)


@pytest.fixture
def seeded(blob_client, pdf_bytes):
    blob_client.seed("health_records/alice/a.pdf", pdf_bytes)
    blob_client.seed("health_records/alice/b.pdf", pdf_bytes)
    blob_client.seed("health_records/bob/c.pdf", pdf_bytes)
    blob_client.seed("health_records/alice/nested/d.pdf", pdf_bytes)
    return blob_client


@pytest.mark.asyncio
async def test_refresh_lists_only_owner_documents(registry, seeded):
    documents = await registry.refresh("alice")

    assert [d.name for d in documents] == ["a.pdf", "b.pdf"]
    assert registry.snapshot() == documents
    assert registry.owner_id == "alice"
    assert all(d.owner_id == "alice" for d in documents)
    assert documents[0].id == "alice/a.pdf"
    assert documents[0].remote_locator.path == "health_records/alice/a.pdf"


@pytest.mark.asyncio
@pytest.mark.parametrize("owner_id", [None, ""])
async def test_refresh_without_owner_sends_nothing(registry, seeded, owner_id):
    with pytest.raises(MissingOwnerError):
        await registry.refresh(owner_id)
    assert seeded.total_calls == 0


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_snapshot(registry, seeded):
    before = await registry.refresh("alice")
    seeded.fail["list"] = NetworkError("connection reset")

    with pytest.raises(StoreUnavailableError) as exc_info:
        await registry.refresh("alice")

    assert exc_info.value.kind == "store_unavailable"
    assert registry.snapshot() == before


@pytest.mark.asyncio
async def test_owner_change_discards_previous_snapshot(registry, seeded):
    await registry.refresh("alice")
    seeded.fail["list"] = StoreUnavailableError("503", status_code=503)

    with pytest.raises(StoreUnavailableError):
        await registry.refresh("bob")

    assert registry.owner_id == "bob"
    assert registry.snapshot() == ()


@pytest.mark.asyncio
async def test_listing_for_previous_owner_is_discarded(registry, seeded):
    gate = asyncio.Event()
    seeded.gates["list:health_records/alice/"] = gate

    alice_refresh = asyncio.create_task(registry.refresh("alice"))
    await asyncio.sleep(0)
    bob_documents = await registry.refresh("bob")
    gate.set()
    alice_documents = await alice_refresh

    assert [d.name for d in alice_documents] == ["a.pdf", "b.pdf"]
    assert registry.owner_id == "bob"
    assert registry.snapshot() == bob_documents
    assert [d.name for d in registry.snapshot()] == ["c.pdf"]


@pytest.mark.asyncio
async def test_snapshot_is_not_mutated_by_refresh(registry, seeded, pdf_bytes):
    first = await registry.refresh("alice")
    seeded.seed("health_records/alice/c.pdf", pdf_bytes)
    await registry.refresh("alice")

    assert len(first) == 2
    assert len(registry.snapshot()) == 3


@pytest.mark.asyncio
async def test_get_and_index_of(registry, seeded):
    await registry.refresh("alice")

    assert registry.get(1).name == "b.pdf"
    assert registry.index_of("alice/b.pdf") == 1
    assert registry.index_of("alice/missing.pdf") is None
    with pytest.raises(InvalidIndexError):
        registry.get(2)
    with pytest.raises(InvalidIndexError):
        registry.get(-1)


@pytest.mark.asyncio
async def test_remove_by_index_and_by_id(registry, seeded):
    await registry.refresh("alice")
    a, b = registry.snapshot()

    # stale index, removed by id
    assert registry.remove(0, b) == b
    assert registry.snapshot() == (a,)
    assert registry.remove(0, a) == a
    assert registry.snapshot() == ()
    assert registry.remove(0, a) is None
