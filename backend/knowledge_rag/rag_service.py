"""
Retrieval orchestrator: the entry point the conversational layer talks to.

Query time: hybrid search → prompt-level similarity gate → context assembly.
Ingest time: delegates to the ingestion service.

`retrieve` never raises. Failures become an empty RetrievalContext and an
expired deadline returns whatever context could be assembled so far.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import RAGConfig
from .context_builder import ContextAssembler
from .deadline import Deadline
from .errors import RAGError, RetrievalFailure
from .ingestion_service import IngestionService
from .models import Chunk, ChunkStatus, Document, RetrievalContext, RetrievalStatistics, SearchResult
from .retrieval_service import HybridRetriever
from .stores import ChunkStore, DocumentStore

logger = logging.getLogger(__name__)

KNOWLEDGE_HEADER = "=== Retrieved knowledge ==="
GUIDELINES_HEADER = "=== Answer guidelines ==="
ANSWER_GUIDELINES = (
    "Answer the user's question based on the retrieved knowledge above and prefer it "
    "over general knowledge. If the knowledge base does not contain directly relevant "
    "information, say so honestly and offer whatever general guidance you can. "
    "Keep the answer accurate, helpful and friendly."
)
LOW_CONFIDENCE_NOTE = (
    "Note: the retrieved content may not be closely related to the question, use it with caution."
)


@dataclass
class _RetrievalProgress:
    """What a retrieval has produced so far, kept for deadline fallbacks."""

    results: List[SearchResult] = field(default_factory=list)
    documents: Dict[str, Document] = field(default_factory=dict)


class RetrievalOrchestrator:
    """
    High-level RAG service combining retrieval, context assembly and ingestion.

    Retrieval problems degrade the conversation instead of failing it.
    """

    def __init__(
        self,
        retriever: HybridRetriever,
        assembler: ContextAssembler,
        ingestion_service: IngestionService,
        chunk_store: ChunkStore,
        document_store: Optional[DocumentStore] = None,
        config: Optional[RAGConfig] = None
    ):
        self.retriever = retriever
        self.assembler = assembler
        self.ingestion_service = ingestion_service
        self.chunk_store = chunk_store
        self.document_store = document_store
        self.config = config or RAGConfig()

        logger.info("Initialized retrieval orchestrator")

    async def retrieve(
        self,
        query: str,
        top_k: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> RetrievalContext:
        """
        Retrieve and assemble context for a query.

        Args:
            query: User query text
            top_k: Number of chunks to retrieve (defaults to config)
            timeout: Deadline in seconds (defaults to config)

        Returns:
            RetrievalContext, empty when nothing relevant was found or
            retrieval failed; `partial` is set when the deadline expired
        """
        if not query or not query.strip():
            return RetrievalContext.empty()

        top_k = self.config.retrieval.top_k if top_k is None else top_k
        timeout = self.config.retrieval.timeout_seconds if timeout is None else timeout
        deadline = Deadline(timeout)
        progress = _RetrievalProgress()

        try:
            return await asyncio.wait_for(
                self._retrieve(query, top_k, deadline, progress),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Retrieval deadline of {timeout}s reached, returning partial context")
            return self._assemble_partial(query, progress)
        except Exception as e:
            logger.error(f"Retrieval failed for query {query!r}: {e}", exc_info=True)
            return RetrievalContext.empty()

    async def build_enhanced_prompt(self, query: str, base_prompt: str) -> str:
        """Append retrieved knowledge and answer guidelines to a base prompt."""
        rag_context = await self.retrieve(query)

        if not rag_context.has_context:
            return base_prompt

        parts = [
            base_prompt,
            "",
            KNOWLEDGE_HEADER,
            rag_context.context,
            "",
            GUIDELINES_HEADER,
            ANSWER_GUIDELINES,
        ]
        if rag_context.average_similarity < self.config.retrieval.low_confidence_threshold:
            parts.append(LOW_CONFIDENCE_NOTE)

        return "\n".join(parts)

    async def evaluate_match(self, query: str) -> float:
        """How well the knowledge base covers a query (0-1)."""
        rag_context = await self.retrieve(query)
        return rag_context.average_similarity

    async def ingest(self, document_id: str, text: str) -> List[Chunk]:
        return await self.ingestion_service.ingest(document_id, text)

    def ingest_in_background(self, document_id: str, text: str) -> asyncio.Task:
        return self.ingestion_service.ingest_in_background(document_id, text)

    async def reprocess_failed(self) -> int:
        return await self.ingestion_service.reprocess_failed()

    async def find_similar_chunks(self, chunk_id: int, top_k: Optional[int] = None) -> List[SearchResult]:
        """Chunks whose embeddings are closest to a stored chunk's embedding."""
        return await self.retriever.vector_index.find_similar(
            chunk_id,
            top_k=self.config.retrieval.top_k if top_k is None else top_k,
            similarity_threshold=self.config.search.similarity_threshold
        )

    async def get_statistics(self) -> RetrievalStatistics:
        """Chunk processing counters across the chunk store."""
        chunks = await self.chunk_store.list_chunks()
        if not chunks:
            return RetrievalStatistics()

        by_status = {status: 0 for status in ChunkStatus}
        for chunk in chunks:
            by_status[chunk.status] += 1

        embedded = [c for c in chunks if c.status == ChunkStatus.READY and c.has_embedding]

        return RetrievalStatistics(
            total_chunks=len(chunks),
            pending_chunks=by_status[ChunkStatus.PENDING],
            processing_chunks=by_status[ChunkStatus.PROCESSING],
            ready_chunks=by_status[ChunkStatus.READY],
            error_chunks=by_status[ChunkStatus.ERROR],
            embedded_chunks=len(embedded),
            avg_chunk_size=sum(c.chunk_size for c in chunks) / len(chunks),
            avg_dimension=(
                sum(c.embedding_dimension for c in embedded) / len(embedded) if embedded else 0.0
            ),
        )

    async def _retrieve(
        self,
        query: str,
        top_k: int,
        deadline: Deadline,
        progress: _RetrievalProgress
    ) -> RetrievalContext:
        try:
            results = await self.retriever.hybrid_search(query, top_k, deadline)
            if not results:
                logger.debug(f"No relevant chunks found for query: {query!r}")
                return RetrievalContext.empty(partial=deadline.expired)

            threshold = self.config.retrieval.similarity_threshold
            filtered = [r for r in results if r.similarity >= threshold]
            progress.results = filtered

            if not filtered:
                logger.debug(f"All {len(results)} results fell below threshold {threshold}")
                return RetrievalContext.empty(partial=deadline.expired)

            progress.documents = await self._load_documents(filtered)

            rag_context = self.assembler.assemble(filtered, query, documents=progress.documents)
            rag_context.partial = deadline.expired
        except RAGError:
            raise
        except Exception as e:
            raise RetrievalFailure(str(e)) from e

        logger.info(
            f"Retrieved {rag_context.chunk_count} chunks from {rag_context.document_count} documents, "
            f"average similarity {rag_context.average_similarity:.3f}"
        )
        return rag_context

    def _assemble_partial(self, query: str, progress: _RetrievalProgress) -> RetrievalContext:
        try:
            rag_context = self.assembler.assemble(progress.results, query, documents=progress.documents)
        except Exception as e:
            logger.error(f"Could not assemble partial context: {e}")
            return RetrievalContext.empty(partial=True)
        rag_context.partial = True
        return rag_context

    async def _load_documents(self, results: List[SearchResult]) -> Dict[str, Document]:
        if self.document_store is None:
            return {}
        return await self.document_store.get_many(r.document_id for r in results)
