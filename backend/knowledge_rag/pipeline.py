"""
Wiring for the retrieval pipeline.

Builds a RetrievalOrchestrator from configuration plus optional collaborators,
falling back to in-memory stores and the chunk-store keyword index.
"""

import logging
from typing import Optional

from .chunking import OverlappingChunker
from .config import RAGConfig
from .context_builder import ContextAssembler
from .embeddings import EmbeddingCapability, EmbeddingGateway
from .ingestion_service import IngestionService
from .keyword_index import ChunkStoreKeywordIndex, KeywordIndex
from .rag_service import RetrievalOrchestrator
from .retrieval_service import HybridRetriever
from .stores import ChunkStore, DocumentStore, InMemoryChunkStore, InMemoryDocumentStore
from .vector_store import VectorIndex

logger = logging.getLogger(__name__)


def create_rag_pipeline(
    config: Optional[RAGConfig] = None,
    capability: Optional[EmbeddingCapability] = None,
    chunk_store: Optional[ChunkStore] = None,
    document_store: Optional[DocumentStore] = None,
    keyword_index: Optional[KeywordIndex] = None
) -> RetrievalOrchestrator:
    """
    Create a fully wired RetrievalOrchestrator.

    Args:
        config: RAGConfig instance (defaults apply when omitted)
        capability: Embedding model; without one the gateway stays disabled
        chunk_store: Chunk persistence (in-memory when omitted)
        document_store: Document metadata (in-memory when omitted)
        keyword_index: Lexical index (scans the chunk store when omitted)

    Returns:
        RetrievalOrchestrator ready for ingest and retrieval
    """
    config = config or RAGConfig()
    chunk_store = chunk_store or InMemoryChunkStore()
    document_store = document_store or InMemoryDocumentStore()
    keyword_index = keyword_index or ChunkStoreKeywordIndex(chunk_store)

    gateway = EmbeddingGateway(capability, config.embedding)
    if capability is None:
        logger.warning("No embedding capability configured, vector search is disabled")

    retriever = HybridRetriever(
        vector_index=VectorIndex(chunk_store),
        keyword_index=keyword_index,
        embedding_gateway=gateway,
        chunk_store=chunk_store,
        document_store=document_store,
        config=config.search
    )

    ingestion_service = IngestionService(
        chunker=OverlappingChunker(config.chunking),
        embedding_gateway=gateway,
        chunk_store=chunk_store
    )

    orchestrator = RetrievalOrchestrator(
        retriever=retriever,
        assembler=ContextAssembler(config.context),
        ingestion_service=ingestion_service,
        chunk_store=chunk_store,
        document_store=document_store,
        config=config
    )

    logger.info("RAG pipeline created successfully")
    return orchestrator
