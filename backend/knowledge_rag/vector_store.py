"""
Exhaustive cosine-similarity vector index over READY chunks.

Every searchable chunk is compared once per query (O(n·d)). There is no
approximate index, so results are exact for the current ready set.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .deadline import Deadline
from .errors import DimensionMismatch
from .models import Chunk, SearchResult
from .stores import ChunkStore

logger = logging.getLogger(__name__)

# How many candidates are scored between deadline checks
DEADLINE_CHECK_INTERVAL = 256


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatch(va.size, vb.size)

    squared_a = float(np.dot(va, va))
    squared_b = float(np.dot(vb, vb))
    if squared_a == 0.0 or squared_b == 0.0:
        return 0.0

    # sqrt of the product keeps cosine(v, v) exactly 1.0
    similarity = float(np.dot(va, vb)) / np.sqrt(squared_a * squared_b)
    return max(-1.0, min(1.0, float(similarity)))


class VectorIndex:
    """Query view over the chunk store's READY, embedded chunks."""

    def __init__(self, chunk_store: ChunkStore):
        self.chunk_store = chunk_store

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: int,
        similarity_threshold: float,
        deadline: Optional[Deadline] = None
    ) -> List[SearchResult]:
        """
        Find the chunks most similar to `query_vector`.

        Returns:
            At most top_k results, similarity >= threshold, sorted by
            similarity descending.
        """
        if top_k <= 0 or not query_vector:
            return []

        candidates = await self.chunk_store.list_searchable()
        if not candidates:
            logger.warning("No embedded chunks available for vector search")
            return []

        results = self._scan(query_vector, candidates, similarity_threshold, deadline)
        results.sort(key=lambda r: r.similarity, reverse=True)
        top_results = results[:top_k]

        logger.debug(
            f"Vector search scored {len(candidates)} chunks, "
            f"{len(results)} above threshold {similarity_threshold}, returning {len(top_results)}"
        )
        return top_results

    async def find_similar(
        self,
        chunk_id: int,
        top_k: int,
        similarity_threshold: float
    ) -> List[SearchResult]:
        """Find chunks similar to a stored chunk, excluding the chunk itself."""
        reference = await self.chunk_store.get(chunk_id)
        if reference is None:
            logger.warning(f"Chunk not found: {chunk_id}")
            return []
        if not reference.has_embedding:
            logger.warning(f"Reference chunk has no embedding: {chunk_id}")
            return []

        candidates = [c for c in await self.chunk_store.list_searchable() if c.id != chunk_id]
        results = self._scan(reference.embedding, candidates, similarity_threshold, None)
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:max(top_k, 0)]

    def _scan(
        self,
        query_vector: Sequence[float],
        candidates: List[Chunk],
        similarity_threshold: float,
        deadline: Optional[Deadline]
    ) -> List[SearchResult]:
        results = []
        skipped = 0

        for scanned, chunk in enumerate(candidates):
            if deadline is not None and scanned % DEADLINE_CHECK_INTERVAL == 0 and deadline.expired:
                logger.warning(
                    f"Vector search deadline reached after {scanned}/{len(candidates)} chunks"
                )
                break

            try:
                similarity = cosine_similarity(query_vector, chunk.embedding)
            except DimensionMismatch as e:
                skipped += 1
                logger.debug(f"Skipping chunk {chunk.id}: {e}")
                continue

            if similarity >= similarity_threshold:
                results.append(SearchResult(chunk=chunk, similarity=similarity))

        if skipped:
            logger.warning(f"Skipped {skipped} chunks with mismatched embedding dimension")
        return results
