"""
Keyword index abstraction and a substring-scoring implementation.

The hybrid retriever only depends on `KeywordIndex.search`; any lexical
engine returning (chunk_id, score) pairs can be plugged in.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

from .models import ChunkStatus
from .stores import ChunkStore

logger = logging.getLogger(__name__)

EXACT_MATCH_SCORE = 1.0
PREFIX_MATCH_SCORE = 0.5
PREFIX_LENGTH = 3


class KeywordIndex(ABC):
    """Interface for lexical chunk lookup."""

    @abstractmethod
    async def search(self, query: str, top_k: int) -> List[Tuple[int, float]]:
        """Return up to top_k (chunk_id, relevance_score) pairs, best first."""
        pass


def keyword_score(content: str, keywords: List[str]) -> float:
    """
    Score lower-cased content against lower-cased keywords.

    Each keyword adds 1.0 when it occurs in the content, otherwise 0.5 when
    its first three characters do. The sum is divided by the keyword count.
    """
    if not keywords:
        return 0.0

    score = 0.0
    for keyword in keywords:
        if keyword in content:
            score += EXACT_MATCH_SCORE
        elif keyword[:PREFIX_LENGTH] in content:
            score += PREFIX_MATCH_SCORE
    return score / len(keywords)


class ChunkStoreKeywordIndex(KeywordIndex):
    """Scans READY chunks of a chunk store with substring scoring."""

    def __init__(self, chunk_store: ChunkStore):
        self.chunk_store = chunk_store

    async def search(self, query: str, top_k: int) -> List[Tuple[int, float]]:
        keywords = query.lower().split()
        if not keywords or top_k <= 0:
            return []

        scored = []
        for chunk in await self.chunk_store.list_chunks(status=ChunkStatus.READY):
            score = keyword_score(chunk.content.lower(), keywords)
            if score > 0:
                scored.append((chunk.id, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        logger.debug(f"Keyword search matched {len(scored)} chunks for: {query!r}")
        return scored[:top_k]
