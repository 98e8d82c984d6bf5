"""
RAG configuration dataclasses for all retrieval pipeline components.

Provides centralized configuration with sensible defaults for:
- Chunking (size, overlap)
- Embeddings (model selection, batch size, timeout, enable switch)
- Vector search (similarity threshold, re-ranking)
- Context assembly (length budget, metadata, deduplication)
- Retrieval (top_k, prompt-level similarity gate, deadline)
"""

from dataclasses import dataclass, field
from typing import Optional
import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass
class ChunkingConfig:
    """Configuration for text chunking (sizes are in characters)."""

    chunk_size: int = 1000
    overlap_size: int = 200

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Validate configuration."""
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.overlap_size < 0:
            raise ValueError("overlap_size must not be negative")


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding gateway."""

    enabled: bool = True
    model_name: str = "text-embedding-3-small"
    batch_size: int = 10  # Max texts per capability call
    max_retries: int = 3  # Retry attempts for API failures
    timeout_seconds: float = 30.0  # Hard limit per gateway call

    # Environment variable for API key
    api_key_env_var: str = "OPENAI_API_KEY"

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Validate configuration."""
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

    @property
    def api_key(self) -> str:
        """Get OpenAI API key from environment."""
        key = os.getenv(self.api_key_env_var)
        if not key:
            raise ValueError(
                f"OpenAI API key not found in environment variable: {self.api_key_env_var}"
            )
        return key


@dataclass
class SearchConfig:
    """Configuration for vector and hybrid search."""

    similarity_threshold: float = 0.7  # Minimum cosine similarity for vector hits
    keyword_weight: float = 0.8  # Multiplier applied to keyword-only hits
    enable_reranking: bool = True

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Validate configuration."""
        if not -1 <= self.similarity_threshold <= 1:
            raise ValueError("similarity_threshold must be between -1 and 1")
        if not 0 <= self.keyword_weight <= 1:
            raise ValueError("keyword_weight must be between 0 and 1")


@dataclass
class ContextConfig:
    """Configuration for context assembly."""

    max_context_length: int = 2000  # Characters
    include_metadata: bool = True
    deduplicate: bool = True

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Validate configuration."""
        if self.max_context_length <= 0:
            raise ValueError("max_context_length must be positive")


@dataclass
class RetrievalConfig:
    """Configuration for the retrieval orchestrator."""

    top_k: int = 5  # Number of chunks to retrieve
    similarity_threshold: float = 0.7  # Prompt-level gate applied after hybrid search
    low_confidence_threshold: float = 0.8  # Below this the prompt carries a caveat
    timeout_seconds: Optional[float] = 10.0  # Query deadline, None disables it

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Validate configuration."""
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")
        if not 0 <= self.similarity_threshold <= 1:
            raise ValueError("similarity_threshold must be between 0 and 1")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


@dataclass
class RAGConfig:
    """Aggregated RAG configuration."""

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)

    # Environment-based overrides
    def __post_init__(self):
        """Apply environment variable overrides."""
        if chunk_size := _env_int("RAG_CHUNK_SIZE"):
            self.chunking.chunk_size = chunk_size

        if (overlap := _env_int("RAG_CHUNK_OVERLAP")) is not None:
            self.chunking.overlap_size = overlap

        if batch_size := _env_int("RAG_EMBEDDING_BATCH_SIZE"):
            self.embedding.batch_size = batch_size

        if (enabled := _env_bool("RAG_EMBEDDING_ENABLED")) is not None:
            self.embedding.enabled = enabled

        if model_name := os.getenv("RAG_EMBEDDING_MODEL"):
            self.embedding.model_name = model_name

        if (threshold := _env_float("RAG_SIMILARITY_THRESHOLD")) is not None:
            self.search.similarity_threshold = threshold
            self.retrieval.similarity_threshold = threshold

        if max_length := _env_int("RAG_MAX_CONTEXT_LENGTH"):
            self.context.max_context_length = max_length

        if (include_metadata := _env_bool("RAG_INCLUDE_METADATA")) is not None:
            self.context.include_metadata = include_metadata

        if (deduplicate := _env_bool("RAG_DEDUPLICATE")) is not None:
            self.context.deduplicate = deduplicate

        # Overridden values must pass the same checks as constructor arguments
        for section in (self.chunking, self.embedding, self.search, self.context, self.retrieval):
            section.validate()

    @classmethod
    def from_env(cls) -> "RAGConfig":
        """Create configuration with .env and environment variable overrides."""
        load_dotenv()
        return cls()


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {raw!r}")
        return None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {raw!r}")
        return None


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Ignoring non-boolean value for {name}: {raw!r}")
    return None
