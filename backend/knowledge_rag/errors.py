"""
Error taxonomy for the retrieval pipeline.

Only ChunkStoreFailure and InvalidStatusTransition are expected to reach
callers; the others are raised and handled inside the pipeline.
"""


class RAGError(Exception):
    """Base class for retrieval pipeline errors."""


class EmbeddingUnavailable(RAGError):
    """Gateway disabled, blank input, timeout or capability failure."""


class DimensionMismatch(RAGError):
    """A stored vector's dimension disagrees with the query vector."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")


class RetrievalFailure(RAGError):
    """Unexpected failure while answering a query."""


class ChunkStoreFailure(RAGError):
    """Persistence error while reading or writing chunks."""


class InvalidStatusTransition(RAGError):
    """A chunk status change not allowed by the status state machine."""

    def __init__(self, chunk_id: int, current, target):
        self.chunk_id = chunk_id
        self.current = current
        self.target = target
        super().__init__(
            f"Chunk {chunk_id}: cannot move from {current.value} to {target.value}"
        )
