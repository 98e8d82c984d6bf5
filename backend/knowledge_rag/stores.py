"""
Chunk and document store abstractions with in-memory implementations.

The pipeline treats storage as an external collaborator; these classes define
the contract it relies on:
- ChunkStore: durable chunk records and their status transitions
- DocumentStore: read-only document metadata lookup

The in-memory chunk store is an append-only arena keyed by integer id. Stored
chunks are never mutated: a status change swaps in an updated copy in a
single assignment, so a reader sees either the old or the new record.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .errors import ChunkStoreFailure, InvalidStatusTransition
from .models import Chunk, ChunkStatus, Document

logger = logging.getLogger(__name__)


class ChunkStore(ABC):
    """Interface for chunk persistence."""

    @abstractmethod
    async def add_chunks(self, chunks: List[Chunk]) -> List[Chunk]:
        """Persist new chunks as PENDING and return them with ids assigned."""
        pass

    @abstractmethod
    async def get(self, chunk_id: int) -> Optional[Chunk]:
        """Return a chunk by id, or None."""
        pass

    @abstractmethod
    async def list_chunks(
        self,
        status: Optional[ChunkStatus] = None,
        document_id: Optional[str] = None
    ) -> List[Chunk]:
        """List chunks, optionally filtered by status and/or document."""
        pass

    @abstractmethod
    async def transition(
        self,
        chunk_id: int,
        target: ChunkStatus,
        embedding: Optional[List[float]] = None,
        error_message: Optional[str] = None
    ) -> Chunk:
        """
        Move a chunk to `target` status.

        Raises:
            ChunkStoreFailure: If the chunk does not exist
            InvalidStatusTransition: If the state machine forbids the move
        """
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> int:
        """Delete all chunks of a document. Returns count of deleted chunks."""
        pass

    async def get_many(self, chunk_ids: Iterable[int]) -> Dict[int, Chunk]:
        found = {}
        for chunk_id in chunk_ids:
            chunk = await self.get(chunk_id)
            if chunk is not None:
                found[chunk_id] = chunk
        return found

    async def list_searchable(self) -> List[Chunk]:
        """READY chunks that carry an embedding."""
        return [c for c in await self.list_chunks(status=ChunkStatus.READY) if c.has_embedding]

    async def mark_processing(self, chunk_id: int) -> Chunk:
        return await self.transition(chunk_id, ChunkStatus.PROCESSING)

    async def mark_ready(self, chunk_id: int, embedding: Optional[List[float]] = None) -> Chunk:
        return await self.transition(chunk_id, ChunkStatus.READY, embedding=embedding)

    async def mark_error(self, chunk_id: int, error_message: str) -> Chunk:
        return await self.transition(chunk_id, ChunkStatus.ERROR, error_message=error_message)


class InMemoryChunkStore(ChunkStore):
    """Arena-backed chunk store. Ids start at 1 and are never reused."""

    def __init__(self):
        self._arena: List[Optional[Chunk]] = []
        self._lock = threading.Lock()

    async def add_chunks(self, chunks: List[Chunk]) -> List[Chunk]:
        stored = []
        with self._lock:
            for chunk in chunks:
                record = chunk.model_copy(update={
                    "id": len(self._arena) + 1,
                    "status": ChunkStatus.PENDING,
                    "embedding": None,
                    "error_message": None,
                })
                self._arena.append(record)
                stored.append(record)

        logger.debug(f"Stored {len(stored)} chunks")
        return stored

    async def get(self, chunk_id: int) -> Optional[Chunk]:
        return self._record(chunk_id)

    def _record(self, chunk_id: int) -> Optional[Chunk]:
        index = chunk_id - 1
        if 0 <= index < len(self._arena):
            return self._arena[index]
        return None

    async def list_chunks(
        self,
        status: Optional[ChunkStatus] = None,
        document_id: Optional[str] = None
    ) -> List[Chunk]:
        snapshot = list(self._arena)
        return [
            chunk for chunk in snapshot
            if chunk is not None
            and (status is None or chunk.status == status)
            and (document_id is None or chunk.document_id == document_id)
        ]

    async def transition(
        self,
        chunk_id: int,
        target: ChunkStatus,
        embedding: Optional[List[float]] = None,
        error_message: Optional[str] = None
    ) -> Chunk:
        # Build the replacement completely before taking the lock
        vector = list(embedding) if embedding is not None else None

        with self._lock:
            current = self._record(chunk_id)
            if current is None:
                raise ChunkStoreFailure(f"Chunk not found: {chunk_id}")
            if not current.status.can_transition_to(target):
                raise InvalidStatusTransition(chunk_id, current.status, target)

            update = {"status": target, "updated_at": datetime.utcnow()}
            if target == ChunkStatus.READY:
                update["embedding"] = vector
                update["error_message"] = None
            elif target == ChunkStatus.ERROR:
                update["error_message"] = error_message or "embedding failed"

            replacement = current.model_copy(update=update)
            self._arena[chunk_id - 1] = replacement

        return replacement

    async def delete_document(self, document_id: str) -> int:
        deleted = 0
        with self._lock:
            for index, chunk in enumerate(self._arena):
                if chunk is not None and chunk.document_id == document_id:
                    self._arena[index] = None
                    deleted += 1

        if deleted:
            logger.info(f"Deleted {deleted} chunks for document: {document_id}")
        return deleted


class DocumentStore(ABC):
    """Read-only access to document metadata."""

    @abstractmethod
    async def get(self, document_id: str) -> Optional[Document]:
        pass

    async def get_many(self, document_ids: Iterable[str]) -> Dict[str, Document]:
        found = {}
        for document_id in set(document_ids):
            document = await self.get(document_id)
            if document is not None:
                found[document_id] = document
        return found


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store."""

    def __init__(self, documents: Optional[Iterable[Document]] = None):
        self._documents: Dict[str, Document] = {}
        for document in documents or []:
            self.put(document)

    def put(self, document: Document) -> None:
        self._documents[document.id] = document

    async def get(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)
