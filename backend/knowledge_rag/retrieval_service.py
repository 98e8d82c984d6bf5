"""
Hybrid retrieval service combining vector and keyword search.

Provides:
- Vector similarity search through the embedding gateway and vector index
- Keyword search through a pluggable keyword index
- Merge by chunk identity (vector evidence wins, keyword-only hits discounted)
- Optional re-ranking by document popularity and chunk length
"""

import asyncio
import logging
from typing import Dict, List, Optional

from .config import SearchConfig
from .deadline import Deadline
from .embeddings import EmbeddingGateway
from .keyword_index import KeywordIndex
from .models import Document, SearchResult
from .stores import ChunkStore, DocumentStore
from .vector_store import VectorIndex

logger = logging.getLogger(__name__)

MAX_QUALITY_FACTOR = 1.5
MAX_SIMILARITY = 1.0


def quality_factor(document: Optional[Document]) -> float:
    """Popularity boost, capped at +50%."""
    if document is None:
        return 1.0
    factor = 1.0 + document.view_count * 0.001 + document.like_count * 0.01
    return min(factor, MAX_QUALITY_FACTOR)


def length_factor(chunk_size: int) -> float:
    """Reward mid-sized chunks, penalize fragments."""
    if 200 <= chunk_size <= 800:
        return 1.1
    if chunk_size < 100:
        return 0.9
    return 1.0


def rerank(results: List[SearchResult], documents: Dict[str, Document]) -> List[SearchResult]:
    """
    Rescale each result's similarity by quality and length factors, then re-sort.

    Boosted scores are capped at 1.0 so similarities stay in [0, 1].
    """
    for result in results:
        score = result.similarity
        score *= quality_factor(documents.get(result.document_id))
        score *= length_factor(result.chunk.chunk_size)
        result.similarity = min(score, MAX_SIMILARITY)

    results.sort(key=lambda r: r.similarity, reverse=True)
    return results


class HybridRetriever:
    """
    Service for retrieving relevant chunks from vector and keyword indexes.

    Never raises for unavailable embeddings or a failing keyword index: the
    affected half of the search simply contributes nothing.
    """

    def __init__(
        self,
        vector_index: VectorIndex,
        keyword_index: KeywordIndex,
        embedding_gateway: EmbeddingGateway,
        chunk_store: ChunkStore,
        document_store: Optional[DocumentStore] = None,
        config: Optional[SearchConfig] = None
    ):
        self.vector_index = vector_index
        self.keyword_index = keyword_index
        self.embedding_gateway = embedding_gateway
        self.chunk_store = chunk_store
        self.document_store = document_store
        self.config = config or SearchConfig()

        logger.info("Initialized hybrid retriever")

    async def hybrid_search(
        self,
        query: str,
        top_k: int,
        deadline: Optional[Deadline] = None
    ) -> List[SearchResult]:
        """
        Retrieve up to top_k chunks for a query.

        Args:
            query: User query text
            top_k: Number of results to return
            deadline: Optional deadline; stages still pending when it expires
                contribute nothing

        Returns:
            Results sorted by score descending
        """
        if not query or not query.strip() or top_k <= 0:
            return []

        deadline = deadline or Deadline.never()

        vector_results = await self.vector_search(query, top_k, deadline)
        keyword_results = await self.keyword_search(query, top_k, deadline)

        # Only vector hits are re-ranked; keyword-only hits carry just the keyword weight
        if self.config.enable_reranking and len(vector_results) > 1:
            vector_results = rerank(vector_results, await self._load_documents(vector_results))

        # Vector hits take priority over keyword hits for the same chunk
        merged: Dict[int, SearchResult] = {r.chunk_id: r for r in vector_results}
        for result in keyword_results:
            if result.chunk_id not in merged:
                result.similarity *= self.config.keyword_weight
                merged[result.chunk_id] = result

        results = list(merged.values())
        results.sort(key=lambda r: r.similarity, reverse=True)
        final_results = results[:top_k]

        logger.info(
            f"Hybrid search returned {len(final_results)} results "
            f"({len(vector_results)} vector, {len(keyword_results)} keyword)"
        )
        return final_results

    async def vector_search(
        self,
        query: str,
        top_k: int,
        deadline: Optional[Deadline] = None
    ) -> List[SearchResult]:
        """Vector half of the hybrid search; empty when no query vector is available."""
        deadline = deadline or Deadline.never()

        try:
            query_vector = await asyncio.wait_for(
                self.embedding_gateway.embed(query),
                timeout=deadline.remaining()
            )
        except asyncio.TimeoutError:
            logger.warning("Query embedding hit the retrieval deadline, using keyword search only")
            return []

        if query_vector is None:
            logger.warning("Could not embed query, falling back to keyword search")
            return []

        return await self.vector_index.search(
            query_vector,
            top_k=top_k,
            similarity_threshold=self.config.similarity_threshold,
            deadline=deadline
        )

    async def keyword_search(
        self,
        query: str,
        top_k: int,
        deadline: Optional[Deadline] = None
    ) -> List[SearchResult]:
        """Keyword half of the hybrid search, with chunk ids resolved to chunks."""
        deadline = deadline or Deadline.never()
        if deadline.expired:
            logger.warning("Retrieval deadline reached before keyword search")
            return []

        try:
            hits = await asyncio.wait_for(
                self.keyword_index.search(query, top_k),
                timeout=deadline.remaining()
            )
        except asyncio.TimeoutError:
            logger.warning("Keyword search hit the retrieval deadline")
            return []
        except Exception as e:
            logger.error(f"Keyword search failed: {e}")
            return []

        chunks = await self.chunk_store.get_many(chunk_id for chunk_id, _ in hits)
        return [
            SearchResult(chunk=chunks[chunk_id], similarity=score)
            for chunk_id, score in hits
            if chunk_id in chunks
        ]

    async def _load_documents(self, results: List[SearchResult]) -> Dict[str, Document]:
        if self.document_store is None:
            return {}
        return await self.document_store.get_many(r.document_id for r in results)
