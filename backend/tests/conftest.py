"""Shared fixtures for the retrieval pipeline tests."""

import pytest

from knowledge_rag.config import RAGConfig
from knowledge_rag.embeddings import EmbeddingCapability, MockEmbeddingCapability
from knowledge_rag.models import Chunk, ChunkStatus, Document, SearchResult
from knowledge_rag.pipeline import create_rag_pipeline
from knowledge_rag.stores import InMemoryChunkStore, InMemoryDocumentStore


class FailingCapability(EmbeddingCapability):
    """Capability whose every call raises."""

    def __init__(self):
        self.calls = 0

    async def embed_batch(self, texts):
        self.calls += 1
        raise RuntimeError("model offline")


def make_chunk(
    content: str = "some chunk text",
    document_id: str = "doc-1",
    chunk_index: int = 0,
    chunk_id: int = 1,
    embedding=None,
    status: ChunkStatus = ChunkStatus.READY
) -> Chunk:
    return Chunk(
        id=chunk_id,
        document_id=document_id,
        chunk_index=chunk_index,
        content=content,
        start_position=0,
        end_position=len(content),
        embedding=embedding,
        status=status,
    )


def make_result(similarity: float, **chunk_kwargs) -> SearchResult:
    return SearchResult(chunk=make_chunk(**chunk_kwargs), similarity=similarity)


async def add_ready_chunk(store: InMemoryChunkStore, content: str, embedding, document_id: str = "doc-1") -> Chunk:
    """Store a chunk and walk it through PROCESSING to READY."""
    [stored] = await store.add_chunks([Chunk(document_id=document_id, chunk_index=0, content=content)])
    await store.mark_processing(stored.id)
    return await store.mark_ready(stored.id, embedding)


@pytest.fixture
def config():
    return RAGConfig()


@pytest.fixture
def chunk_store():
    return InMemoryChunkStore()


@pytest.fixture
def document_store():
    return InMemoryDocumentStore([
        Document(id="returns", title="Returns Policy", summary="How to send items back"),
        Document(id="shipping", title="Shipping Guide"),
    ])


@pytest.fixture
def mock_capability():
    return MockEmbeddingCapability(embedding_dim=8)


@pytest.fixture
def pipeline(config, mock_capability, chunk_store, document_store):
    return create_rag_pipeline(
        config=config,
        capability=mock_capability,
        chunk_store=chunk_store,
        document_store=document_store
    )
