"""
Document ingestion service for RAG.

Handles the complete pipeline:
1. Removal of the document's previous chunks
2. Text chunking
3. Chunk persistence (PENDING)
4. Embedding generation (PROCESSING → READY / ERROR)

Ingestion is meant to run off the request path; `ingest_in_background`
schedules it as a fire-and-forget task.
"""

import asyncio
import logging
from typing import List, Optional, Set

from .chunking import OverlappingChunker
from .embeddings import EmbeddingGateway
from .errors import ChunkStoreFailure, RAGError
from .models import Chunk, ChunkStatus
from .stores import ChunkStore

logger = logging.getLogger(__name__)

EMBEDDING_FAILED_MESSAGE = "embedding generation failed"
STORE_FAILED_MESSAGE = "chunk store failed during embedding"


class IngestionService:
    """
    Service for ingesting documents into the RAG system.

    Pipeline: text → chunks → chunk store → embeddings → status updates
    """

    def __init__(
        self,
        chunker: OverlappingChunker,
        embedding_gateway: EmbeddingGateway,
        chunk_store: ChunkStore
    ):
        self.chunker = chunker
        self.embedding_gateway = embedding_gateway
        self.chunk_store = chunk_store
        self._background_tasks: Set[asyncio.Task] = set()

        logger.info("Initialized ingestion service")

    async def ingest(self, document_id: str, text: str) -> List[Chunk]:
        """
        Chunk, store and embed a document, replacing any previous chunks.

        Args:
            document_id: Document identifier
            text: Full document text

        Returns:
            The document's chunks in their final state

        Raises:
            ChunkStoreFailure: If the chunk store fails
        """
        logger.info(f"Starting ingestion for document {document_id} ({len(text or '')} chars)")

        chunks = self.chunker.chunk_text(text, document_id)

        try:
            await self.chunk_store.delete_document(document_id)

            if not chunks:
                logger.warning(f"No chunks created for document {document_id}")
                return []

            stored = await self.chunk_store.add_chunks(chunks)
            processed = await self.embed_chunks(stored)
        except RAGError:
            raise
        except Exception as e:
            raise ChunkStoreFailure(f"Ingestion of document {document_id} failed: {e}") from e

        ready = sum(1 for c in processed if c.status == ChunkStatus.READY)
        logger.info(
            f"Successfully ingested document {document_id}: "
            f"{len(processed)} chunks, {ready} ready"
        )
        return processed

    def ingest_in_background(self, document_id: str, text: str) -> asyncio.Task:
        """Schedule `ingest` without waiting for it. Failures are logged."""
        task = asyncio.create_task(self.ingest(document_id, text), name=f"ingest-{document_id}")
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    async def wait_for_background_tasks(self, timeout: Optional[float] = None) -> None:
        """Wait until every scheduled ingestion has finished."""
        if not self._background_tasks:
            return
        await asyncio.wait(set(self._background_tasks), timeout=timeout)

    async def reprocess_failed(self) -> int:
        """
        Re-run embedding for every chunk in ERROR status.

        Returns:
            Number of chunks that were retried
        """
        failed = await self.chunk_store.list_chunks(status=ChunkStatus.ERROR)
        if not failed:
            logger.info("No failed chunks to reprocess")
            return 0

        logger.info(f"Reprocessing {len(failed)} failed chunks")
        processed = await self.embed_chunks(failed)

        still_failing = sum(1 for c in processed if c.status == ChunkStatus.ERROR)
        logger.info(f"Reprocessed failed chunks: {len(processed) - still_failing} recovered")
        return len(failed)

    async def embed_chunks(self, chunks: List[Chunk]) -> List[Chunk]:
        """
        Embed chunks and record the outcome on each of them.

        Each chunk is moved to PROCESSING first. A chunk becomes READY only
        once its vector is fully built; chunks without a vector end in ERROR.
        With the gateway disabled, chunks become READY without a vector and
        stay reachable through keyword search only.

        If the chunk store fails midway, chunks left in PROCESSING are moved
        to ERROR before the failure propagates, so `reprocess_failed` can
        pick them up.
        """
        processing: List[Chunk] = []
        try:
            for chunk in chunks:
                processing.append(await self.chunk_store.mark_processing(chunk.id))
            results = await self._finish_chunks(processing)
        except Exception:
            await self._release_stranded(processing)
            raise

        failed = sum(1 for c in results if c.status == ChunkStatus.ERROR)
        if failed:
            logger.warning(f"{failed}/{len(results)} chunks failed to embed")
        return results

    async def _finish_chunks(self, processing: List[Chunk]) -> List[Chunk]:
        if not self.embedding_gateway.enabled:
            logger.warning("Embedding disabled, marking chunks ready without vectors")
            return [await self.chunk_store.mark_ready(chunk.id) for chunk in processing]

        vectors = dict(await self.embedding_gateway.embed_batch([c.content for c in processing]))

        results = []
        for index, chunk in enumerate(processing):
            vector = vectors.get(index)
            if vector:
                results.append(await self.chunk_store.mark_ready(chunk.id, vector))
            else:
                results.append(await self.chunk_store.mark_error(chunk.id, EMBEDDING_FAILED_MESSAGE))
        return results

    async def _release_stranded(self, processing: List[Chunk]) -> None:
        """Best-effort move of chunks still in PROCESSING to ERROR."""
        for chunk in processing:
            try:
                current = await self.chunk_store.get(chunk.id)
                if current is not None and current.status == ChunkStatus.PROCESSING:
                    await self.chunk_store.mark_error(chunk.id, STORE_FAILED_MESSAGE)
            except Exception as e:
                logger.error(f"Could not release chunk {chunk.id} from processing: {e}")

        logger.warning(f"Released stranded chunks after store failure ({len(processing)} checked)")

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background ingestion cancelled: {task.get_name()}")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background ingestion failed ({task.get_name()}): {error}")
