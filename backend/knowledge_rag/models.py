"""
RAG domain models for documents, chunks, and retrieval results.

These models represent the core entities in the retrieval pipeline:
- Document: read-only view of a knowledge document
- Chunk: text segment with embedding and processing status
- SearchResult: chunk paired with a per-query similarity score
- RetrievalContext: assembled prompt context for one query
- RetrievalStatistics: chunk processing counters
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ChunkStatus(str, Enum):
    """Chunk processing state."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"

    def can_transition_to(self, target: "ChunkStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS = {
    ChunkStatus.PENDING: {ChunkStatus.PROCESSING},
    ChunkStatus.PROCESSING: {ChunkStatus.READY, ChunkStatus.ERROR},
    ChunkStatus.READY: set(),
    ChunkStatus.ERROR: {ChunkStatus.PROCESSING},
}


class Document(BaseModel):
    """Represents a knowledge document owned by the document collaborator."""

    id: str
    title: str
    summary: Optional[str] = None
    view_count: int = 0
    like_count: int = 0
    status: DocumentStatus = DocumentStatus.PUBLISHED


class Chunk(BaseModel):
    """
    Represents a text chunk with its embedding and processing status.

    Instances are treated as immutable once stored: status changes are made
    by replacing the stored record with an updated copy.
    """

    id: int = 0  # Assigned by the chunk store
    document_id: str
    chunk_index: int
    content: str
    start_position: int = 0
    end_position: int = 0
    overlap_length: int = 0
    embedding: Optional[List[float]] = None
    status: ChunkStatus = ChunkStatus.PENDING
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def chunk_size(self) -> int:
        return len(self.content)

    @property
    def embedding_dimension(self) -> int:
        return len(self.embedding) if self.embedding else 0

    @property
    def is_ready(self) -> bool:
        return self.status == ChunkStatus.READY

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def __repr__(self) -> str:
        preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return (
            f"Chunk(id={self.id}, document_id={self.document_id!r}, "
            f"index={self.chunk_index}, status={self.status.value}, preview={preview!r})"
        )


class SearchResult(BaseModel):
    """A chunk matched by a query. `similarity` may be rewritten by re-ranking."""

    chunk: Chunk
    similarity: float

    @property
    def chunk_id(self) -> int:
        return self.chunk.id

    @property
    def document_id(self) -> str:
        return self.chunk.document_id

    @property
    def text(self) -> str:
        return self.chunk.content

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "chunk_id": self.chunk_id,
            "document_id": self.document_id,
            "chunk_index": self.chunk.chunk_index,
            "text": self.text,
            "similarity": self.similarity,
        }


class RetrievalContext(BaseModel):
    """Prompt-ready context assembled for a single query."""

    context: str = ""
    search_results: List[SearchResult] = Field(default_factory=list)
    average_similarity: float = 0.0
    partial: bool = False  # True when a deadline cut retrieval short

    @classmethod
    def empty(cls, partial: bool = False) -> "RetrievalContext":
        return cls(partial=partial)

    @property
    def has_context(self) -> bool:
        return bool(self.context and self.context.strip())

    @property
    def chunk_count(self) -> int:
        return len(self.search_results)

    @property
    def document_count(self) -> int:
        return len({r.document_id for r in self.search_results})

    @property
    def max_similarity(self) -> float:
        return max((r.similarity for r in self.search_results), default=0.0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "context": self.context,
            "chunk_count": self.chunk_count,
            "document_count": self.document_count,
            "average_similarity": self.average_similarity,
            "max_similarity": self.max_similarity,
            "partial": self.partial,
            "results": [r.to_dict() for r in self.search_results],
        }


class RetrievalStatistics(BaseModel):
    """Chunk processing counters across the store."""

    total_chunks: int = 0
    pending_chunks: int = 0
    processing_chunks: int = 0
    ready_chunks: int = 0
    error_chunks: int = 0
    embedded_chunks: int = 0  # Ready chunks that carry a vector
    avg_chunk_size: float = 0.0
    avg_dimension: float = 0.0

    @property
    def ready_rate(self) -> float:
        return self.ready_chunks / self.total_chunks if self.total_chunks else 0.0

    @property
    def embedding_rate(self) -> float:
        return self.embedded_chunks / self.ready_chunks if self.ready_chunks else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            **self.model_dump(),
            "ready_rate": self.ready_rate,
            "embedding_rate": self.embedding_rate,
        }
