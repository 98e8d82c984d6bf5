"""Test suite for chunk status transitions and the in-memory stores."""

import pytest

from knowledge_rag.errors import ChunkStoreFailure, InvalidStatusTransition
from knowledge_rag.models import Chunk, ChunkStatus, Document

from conftest import add_ready_chunk


def new_chunk(content="text", document_id="doc-1", chunk_index=0):
    return Chunk(document_id=document_id, chunk_index=chunk_index, content=content)


@pytest.mark.parametrize("current,target,allowed", [
    (ChunkStatus.PENDING, ChunkStatus.PROCESSING, True),
    (ChunkStatus.PROCESSING, ChunkStatus.READY, True),
    (ChunkStatus.PROCESSING, ChunkStatus.ERROR, True),
    (ChunkStatus.ERROR, ChunkStatus.PROCESSING, True),
    (ChunkStatus.PENDING, ChunkStatus.READY, False),
    (ChunkStatus.READY, ChunkStatus.PROCESSING, False),
    (ChunkStatus.ERROR, ChunkStatus.READY, False),
])
def test_status_state_machine(current, target, allowed):
    assert current.can_transition_to(target) is allowed


@pytest.mark.asyncio
async def test_add_chunks_assigns_ids_and_resets_state(chunk_store):
    incoming = new_chunk()
    incoming.status = ChunkStatus.READY
    incoming.embedding = [1.0]

    stored = await chunk_store.add_chunks([incoming, new_chunk(chunk_index=1)])

    assert [c.id for c in stored] == [1, 2]
    assert all(c.status == ChunkStatus.PENDING for c in stored)
    assert stored[0].embedding is None


@pytest.mark.asyncio
async def test_ready_transition_stores_embedding(chunk_store):
    [chunk] = await chunk_store.add_chunks([new_chunk()])

    await chunk_store.mark_processing(chunk.id)
    ready = await chunk_store.mark_ready(chunk.id, [0.5, 0.5])

    assert ready.status == ChunkStatus.READY
    assert ready.embedding == [0.5, 0.5]
    assert (await chunk_store.get(chunk.id)).embedding == [0.5, 0.5]


@pytest.mark.asyncio
async def test_transition_replaces_record_without_mutating_old_copy(chunk_store):
    [chunk] = await chunk_store.add_chunks([new_chunk()])
    before = await chunk_store.get(chunk.id)

    await chunk_store.mark_processing(chunk.id)

    assert before.status == ChunkStatus.PENDING
    assert (await chunk_store.get(chunk.id)).status == ChunkStatus.PROCESSING


@pytest.mark.asyncio
async def test_error_then_retry(chunk_store):
    [chunk] = await chunk_store.add_chunks([new_chunk()])
    await chunk_store.mark_processing(chunk.id)

    failed = await chunk_store.mark_error(chunk.id, "model offline")
    assert failed.error_message == "model offline"

    await chunk_store.mark_processing(chunk.id)
    recovered = await chunk_store.mark_ready(chunk.id, [1.0])
    assert recovered.error_message is None


@pytest.mark.asyncio
async def test_invalid_transition_raises(chunk_store):
    [chunk] = await chunk_store.add_chunks([new_chunk()])

    with pytest.raises(InvalidStatusTransition) as exc_info:
        await chunk_store.mark_ready(chunk.id, [1.0])

    assert exc_info.value.current == ChunkStatus.PENDING
    assert exc_info.value.target == ChunkStatus.READY
    assert (await chunk_store.get(chunk.id)).status == ChunkStatus.PENDING


@pytest.mark.asyncio
async def test_transition_of_missing_chunk_raises(chunk_store):
    with pytest.raises(ChunkStoreFailure):
        await chunk_store.mark_processing(42)


@pytest.mark.asyncio
async def test_list_chunks_filters(chunk_store):
    await add_ready_chunk(chunk_store, "ready one", [1.0], document_id="a")
    await chunk_store.add_chunks([new_chunk("pending one", document_id="b")])

    assert len(await chunk_store.list_chunks()) == 2
    assert [c.content for c in await chunk_store.list_chunks(status=ChunkStatus.READY)] == ["ready one"]
    assert [c.content for c in await chunk_store.list_chunks(document_id="b")] == ["pending one"]


@pytest.mark.asyncio
async def test_list_searchable_requires_embedding(chunk_store):
    await add_ready_chunk(chunk_store, "with vector", [1.0])
    await add_ready_chunk(chunk_store, "without vector", None)

    assert [c.content for c in await chunk_store.list_searchable()] == ["with vector"]


@pytest.mark.asyncio
async def test_delete_document_keeps_ids_stable(chunk_store):
    await chunk_store.add_chunks([new_chunk(document_id="a"), new_chunk(document_id="b")])

    deleted = await chunk_store.delete_document("a")
    [added] = await chunk_store.add_chunks([new_chunk(document_id="c")])

    assert deleted == 1
    assert await chunk_store.get(1) is None
    assert (await chunk_store.get(2)).document_id == "b"
    assert added.id == 3


@pytest.mark.asyncio
async def test_get_many_skips_unknown_ids(chunk_store):
    await chunk_store.add_chunks([new_chunk(), new_chunk(chunk_index=1)])

    found = await chunk_store.get_many([2, 7, 1])

    assert set(found) == {1, 2}


@pytest.mark.asyncio
async def test_document_store_lookup(document_store):
    documents = await document_store.get_many(["returns", "returns", "missing"])

    assert list(documents) == ["returns"]
    assert documents["returns"].title == "Returns Policy"

    document_store.put(Document(id="faq", title="FAQ"))
    assert (await document_store.get("faq")).title == "FAQ"
