"""
Embedding capability implementations and the gateway that guards them.

Provides:
- EmbeddingCapability interface (the actual model call, may fail)
- OpenAI implementation with retry logic
- Deterministic mock implementation for tests and offline use
- EmbeddingGateway: cleaning, batching, timeout, enable switch and
  failure isolation in front of any capability
"""

import asyncio
import hashlib
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import openai
from openai import OpenAI

from .chunking import clean_text
from .config import EmbeddingConfig
from .errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

Vector = List[float]


class EmbeddingCapability(ABC):
    """Interface for embedding models."""

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[Vector]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of non-blank text strings to embed

        Returns:
            One embedding vector per input text, in input order

        Raises:
            Any exception on failure; the gateway handles it.
        """
        pass


class OpenAIEmbeddingCapability(EmbeddingCapability):
    """
    OpenAI embedding capability (text-embedding-3-small by default).

    The blocking client call runs in a worker thread so the gateway timeout
    can release the caller even if the request stalls.
    """

    def __init__(self, config: EmbeddingConfig, client: Optional[OpenAI] = None):
        self.config = config
        self.client = client or OpenAI(api_key=config.api_key)
        self.model = config.model_name

        logger.info(f"Initialized OpenAI embedding capability with model: {self.model}")

    async def embed_batch(self, texts: List[str]) -> List[Vector]:
        if not texts:
            return []
        return await asyncio.to_thread(self._embed_with_retry, texts)

    def _embed_with_retry(self, texts: List[str]) -> List[Vector]:
        """
        Call the embeddings endpoint with retry logic.

        Implements exponential backoff for rate limiting and API errors.
        """
        for attempt in range(self.config.max_retries):
            try:
                response = self.client.embeddings.create(
                    model=self.model,
                    input=texts,
                    timeout=self.config.timeout_seconds
                )

                # Extract embeddings in order
                embeddings = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]

                logger.debug(f"Successfully embedded batch of {len(texts)} texts")
                return embeddings

            except openai.RateLimitError:
                wait_time = 2 ** attempt  # Exponential backoff
                logger.warning(
                    f"Rate limit hit, retrying in {wait_time}s (attempt {attempt + 1}/{self.config.max_retries})"
                )
                if attempt < self.config.max_retries - 1:
                    time.sleep(wait_time)
                else:
                    logger.error("Max retries reached for embedding batch")
                    raise

            except openai.APIError as e:
                logger.error(f"OpenAI API error: {e}")
                if attempt < self.config.max_retries - 1:
                    time.sleep(2 ** attempt)
                else:
                    raise

        return []


class MockEmbeddingCapability(EmbeddingCapability):
    """
    Mock embedding capability for testing.

    Returns a fixed vector for texts found in `vectors`, otherwise a
    deterministic pseudo-random vector seeded from the text hash.
    """

    def __init__(self, embedding_dim: int = 384, vectors: Optional[Dict[str, Vector]] = None):
        self.embedding_dim = embedding_dim
        self.vectors = dict(vectors or {})
        self.calls: List[List[str]] = []

    async def embed_batch(self, texts: List[str]) -> List[Vector]:
        self.calls.append(list(texts))
        return [self._vector_for(text) for text in texts]

    def _vector_for(self, text: str) -> Vector:
        if text in self.vectors:
            return list(self.vectors[text])
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        return rng.standard_normal(self.embedding_dim).tolist()


class EmbeddingGateway:
    """
    Guarded access to an embedding capability.

    Failures never propagate: `embed` returns None and `embed_batch` omits
    the affected entries. Every capability call is bounded by
    `config.timeout_seconds`.
    """

    def __init__(self, capability: Optional[EmbeddingCapability], config: Optional[EmbeddingConfig] = None):
        self.capability = capability
        self.config = config or EmbeddingConfig()

    @property
    def enabled(self) -> bool:
        return self.config.enabled and self.capability is not None

    def set_enabled(self, enabled: bool) -> None:
        self.config.enabled = enabled
        logger.info(f"Embedding gateway {'enabled' if enabled else 'disabled'}")

    async def embed(self, text: str) -> Optional[Vector]:
        """Embed a single text; None means the embedding is unavailable."""
        if not self.enabled:
            logger.debug("Embedding disabled, returning no vector")
            return None

        cleaned = clean_text(text)
        if not cleaned:
            logger.warning("Blank text, cannot generate embedding")
            return None

        try:
            vectors = await self._call_capability([cleaned])
        except EmbeddingUnavailable as e:
            logger.error(f"Failed to generate embedding: {e}")
            return None

        if not vectors or not vectors[0]:
            logger.warning("Embedding response was empty")
            return None
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[Tuple[int, Vector]]:
        """
        Embed many texts in batches of `config.batch_size`.

        Returns:
            (input_index, vector) pairs for every text that was embedded.
            Blank inputs and entries of failed batches are absent.
        """
        if not self.enabled:
            logger.debug("Embedding disabled, returning no vectors")
            return []

        indexed = [(i, clean_text(t)) for i, t in enumerate(texts)]
        indexed = [(i, t) for i, t in indexed if t]
        if not indexed:
            return []

        results: List[Tuple[int, Vector]] = []
        batch_size = self.config.batch_size

        for start in range(0, len(indexed), batch_size):
            batch = indexed[start:start + batch_size]
            try:
                vectors = await self._call_capability([t for _, t in batch])
            except EmbeddingUnavailable as e:
                logger.error(
                    f"Embedding batch {start // batch_size + 1} failed ({len(batch)} texts): {e}"
                )
                continue

            for (index, _), vector in zip(batch, vectors):
                if vector:
                    results.append((index, vector))

        logger.debug(f"Generated {len(results)}/{len(texts)} embeddings")
        return results

    async def _call_capability(self, texts: List[str]) -> List[Vector]:
        try:
            vectors = await asyncio.wait_for(
                self.capability.embed_batch(texts),
                timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError:
            raise EmbeddingUnavailable(
                f"embedding call timed out after {self.config.timeout_seconds}s"
            ) from None
        except Exception as e:
            raise EmbeddingUnavailable(str(e)) from e

        if vectors is None or len(vectors) != len(texts):
            got = 0 if vectors is None else len(vectors)
            raise EmbeddingUnavailable(f"expected {len(texts)} vectors, got {got}")

        return [[float(x) for x in vector] for vector in vectors]
