"""Test suite for hybrid retrieval: merge, fallback and re-ranking."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from knowledge_rag.config import EmbeddingConfig, SearchConfig
from knowledge_rag.deadline import Deadline
from knowledge_rag.embeddings import EmbeddingGateway, MockEmbeddingCapability
from knowledge_rag.keyword_index import ChunkStoreKeywordIndex, KeywordIndex
from knowledge_rag.models import Document
from knowledge_rag.retrieval_service import HybridRetriever, length_factor, quality_factor, rerank
from knowledge_rag.vector_store import VectorIndex

from conftest import FailingCapability, add_ready_chunk, make_result


def build_retriever(chunk_store, document_store=None, capability=None, keyword_hits=None,
                    embeddings_enabled=True, reranking=True):
    keyword_index = AsyncMock(spec=KeywordIndex)
    keyword_index.search.return_value = keyword_hits or []
    gateway = EmbeddingGateway(capability, EmbeddingConfig(enabled=embeddings_enabled))
    return HybridRetriever(
        vector_index=VectorIndex(chunk_store),
        keyword_index=keyword_index,
        embedding_gateway=gateway,
        chunk_store=chunk_store,
        document_store=document_store,
        config=SearchConfig(enable_reranking=reranking)
    )


@pytest.mark.asyncio
async def test_keyword_only_hit_is_discounted_when_embeddings_disabled(chunk_store, pipeline):
    """Returns Policy: one 600-char chunk, keyword score 0.9 → similarity 0.72"""
    [chunk] = await pipeline.ingest("returns", "x" * 600)
    retriever = build_retriever(
        chunk_store,
        capability=MockEmbeddingCapability(embedding_dim=8),
        keyword_hits=[(chunk.id, 0.9)],
        embeddings_enabled=False
    )

    results = await retriever.hybrid_search("return policy", top_k=5)

    assert len(results) == 1
    assert results[0].chunk_id == chunk.id
    assert results[0].similarity == pytest.approx(0.72)


@pytest.mark.asyncio
async def test_vector_hit_wins_over_keyword_hit(chunk_store):
    chunk = await add_ready_chunk(chunk_store, "return policy details", [1.0, 0.0])
    capability = MockEmbeddingCapability(embedding_dim=2, vectors={"return policy": [1.0, 0.0]})
    retriever = build_retriever(
        chunk_store,
        capability=capability,
        keyword_hits=[(chunk.id, 0.5)],
        reranking=False
    )

    results = await retriever.hybrid_search("return policy", top_k=5)

    assert len(results) == 1
    assert results[0].similarity == 1.0


@pytest.mark.asyncio
async def test_merge_contains_no_duplicate_chunks(chunk_store):
    first = await add_ready_chunk(chunk_store, "alpha text", [1.0, 0.0])
    second = await add_ready_chunk(chunk_store, "beta text", [0.8, 0.6])
    third = await add_ready_chunk(chunk_store, "gamma text", None)
    capability = MockEmbeddingCapability(embedding_dim=2, vectors={"query": [1.0, 0.0]})
    retriever = build_retriever(
        chunk_store,
        capability=capability,
        keyword_hits=[(first.id, 1.0), (second.id, 0.9), (third.id, 0.9)],
        reranking=False
    )

    results = await retriever.hybrid_search("query", top_k=10)

    ids = [r.chunk_id for r in results]
    assert len(ids) == len(set(ids)) == 3
    assert dict((r.chunk_id, r.similarity) for r in results)[third.id] == pytest.approx(0.72)


@pytest.mark.asyncio
async def test_unavailable_embedding_falls_back_to_keywords(chunk_store):
    chunk = await add_ready_chunk(chunk_store, "return policy", [1.0, 0.0])
    capability = FailingCapability()
    retriever = build_retriever(chunk_store, capability=capability, keyword_hits=[(chunk.id, 0.5)])

    results = await retriever.hybrid_search("return policy", top_k=5)

    assert capability.calls == 1
    assert [r.similarity for r in results] == [pytest.approx(0.4)]


@pytest.mark.asyncio
async def test_failing_keyword_index_keeps_vector_results(chunk_store):
    await add_ready_chunk(chunk_store, "return policy", [1.0, 0.0])
    capability = MockEmbeddingCapability(embedding_dim=2, vectors={"return policy": [1.0, 0.0]})
    retriever = build_retriever(chunk_store, capability=capability)
    retriever.keyword_index.search.side_effect = RuntimeError("index offline")

    results = await retriever.hybrid_search("return policy", top_k=5)

    assert [r.similarity for r in results] == [1.0]


@pytest.mark.asyncio
async def test_keyword_hits_for_unknown_chunks_are_dropped(chunk_store):
    retriever = build_retriever(chunk_store, keyword_hits=[(99, 1.0)], embeddings_enabled=False)

    assert await retriever.hybrid_search("anything", top_k=5) == []


@pytest.mark.asyncio
async def test_blank_query_or_zero_top_k(chunk_store):
    retriever = build_retriever(chunk_store, keyword_hits=[(1, 1.0)])

    assert await retriever.hybrid_search("   ", top_k=5) == []
    assert await retriever.hybrid_search("query", top_k=0) == []
    retriever.keyword_index.search.assert_not_called()


@pytest.mark.asyncio
async def test_results_truncated_to_top_k(chunk_store):
    hits = []
    for i in range(5):
        chunk = await add_ready_chunk(chunk_store, f"chunk {i}", None)
        hits.append((chunk.id, 1.0 - i * 0.1))
    retriever = build_retriever(chunk_store, keyword_hits=hits, embeddings_enabled=False, reranking=False)

    results = await retriever.hybrid_search("chunk", top_k=2)

    assert [r.similarity for r in results] == [pytest.approx(0.8), pytest.approx(0.72)]


@pytest.mark.asyncio
async def test_slow_query_embedding_hits_deadline(chunk_store):
    class SlowCapability(MockEmbeddingCapability):
        async def embed_batch(self, texts):
            await asyncio.sleep(5)
            return await super().embed_batch(texts)

    chunk = await add_ready_chunk(chunk_store, "return policy", [1.0, 0.0])
    retriever = build_retriever(
        chunk_store,
        capability=SlowCapability(embedding_dim=2),
        keyword_hits=[(chunk.id, 1.0)]
    )

    results = await retriever.vector_search("return policy", top_k=5, deadline=Deadline(0.05))

    assert results == []


@pytest.mark.asyncio
async def test_reranking_applies_popularity_and_length_to_vector_hits(chunk_store, document_store):
    document_store.put(Document(id="popular", title="Popular", view_count=100, like_count=10))
    plain = await add_ready_chunk(chunk_store, "p" * 50, [1.0, 0.0], document_id="shipping")
    popular = await add_ready_chunk(chunk_store, "q" * 300, [0.75, 0.6614378277661477], document_id="popular")
    keyword_only = await add_ready_chunk(chunk_store, "r" * 300, None, document_id="popular")
    capability = MockEmbeddingCapability(embedding_dim=2, vectors={"anything": [1.0, 0.0]})
    retriever = build_retriever(
        chunk_store,
        document_store=document_store,
        capability=capability,
        keyword_hits=[(keyword_only.id, 1.0)]
    )

    results = await retriever.hybrid_search("anything", top_k=5)

    scores = {r.chunk_id: r.similarity for r in results}
    assert results[0].chunk_id == popular.id
    assert scores[popular.id] == pytest.approx(0.75 * 1.2 * 1.1)
    assert scores[plain.id] == pytest.approx(1.0 * 0.9)
    assert scores[keyword_only.id] == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_keyword_only_hits_are_not_reranked(chunk_store, document_store):
    """Without embeddings every hit is exactly its keyword score times 0.8"""
    await add_ready_chunk(chunk_store, "return policy " + "x" * 300, None, document_id="returns")
    await add_ready_chunk(chunk_store, "return policy", None, document_id="shipping")
    gateway = EmbeddingGateway(None, EmbeddingConfig(enabled=False))
    retriever = HybridRetriever(
        vector_index=VectorIndex(chunk_store),
        keyword_index=ChunkStoreKeywordIndex(chunk_store),
        embedding_gateway=gateway,
        chunk_store=chunk_store,
        document_store=document_store,
        config=SearchConfig(enable_reranking=True)
    )

    results = await retriever.hybrid_search("return policy", top_k=5)

    assert {r.chunk_id: r.similarity for r in results} == {1: pytest.approx(0.8), 2: pytest.approx(0.8)}


@pytest.mark.asyncio
async def test_reranked_similarity_is_capped_at_one(chunk_store, document_store):
    for document_id in ["hot-a", "hot-b"]:
        document_store.put(Document(id=document_id, title=document_id, view_count=1000, like_count=50))
        await add_ready_chunk(chunk_store, "s" * 350, [1.0, 0.0], document_id=document_id)
    capability = MockEmbeddingCapability(embedding_dim=2, vectors={"query": [1.0, 0.0]})
    retriever = build_retriever(chunk_store, document_store=document_store, capability=capability)

    results = await retriever.hybrid_search("query", top_k=5)

    assert len(results) == 2
    assert all(r.similarity == 1.0 for r in results)


@pytest.mark.parametrize("views,likes,expected", [
    (0, 0, 1.0),
    (100, 10, 1.2),
    (10_000, 0, 1.5),
])
def test_quality_factor(views, likes, expected):
    document = Document(id="d", title="t", view_count=views, like_count=likes)

    assert quality_factor(document) == pytest.approx(expected)


def test_quality_factor_without_document():
    assert quality_factor(None) == 1.0


@pytest.mark.parametrize("size,expected", [
    (50, 0.9),
    (99, 0.9),
    (100, 1.0),
    (200, 1.1),
    (800, 1.1),
    (801, 1.0),
])
def test_length_factor(size, expected):
    assert length_factor(size) == expected


def test_rerank_resorts_results():
    short = make_result(0.9, content="s" * 10, chunk_id=1, document_id="a")
    medium = make_result(0.85, content="m" * 400, chunk_id=2, document_id="b")

    ranked = rerank([short, medium], {})

    assert [r.chunk_id for r in ranked] == [2, 1]
