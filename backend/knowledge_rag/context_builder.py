"""
Context assembly for prompt augmentation.

Turns ranked search results into one prompt-ready string within a character
budget, optionally deduplicating by document and annotating each block with
document metadata.
"""

import logging
from typing import Dict, List, Optional

from .config import ContextConfig
from .models import Document, RetrievalContext, SearchResult

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n"
ELLIPSIS = "..."
MIN_TRUNCATION_BUDGET = 100  # Below this, a block that does not fit is dropped


class ContextAssembler:
    """Builds a bounded-length RetrievalContext from ranked results."""

    def __init__(self, config: Optional[ContextConfig] = None):
        self.config = config or ContextConfig()

    def assemble(
        self,
        ranked_results: List[SearchResult],
        query: str,
        max_context_length: Optional[int] = None,
        include_metadata: Optional[bool] = None,
        deduplicate: Optional[bool] = None,
        documents: Optional[Dict[str, Document]] = None
    ) -> RetrievalContext:
        """
        Assemble context text from results in rank order.

        Args:
            ranked_results: Results sorted best first
            query: Original query (logged only)
            max_context_length: Character budget (defaults to config)
            include_metadata: Prefix blocks with document metadata (defaults to config)
            deduplicate: Keep at most one block per document (defaults to config)
            documents: Document metadata by id, used for annotation

        Returns:
            RetrievalContext whose text never exceeds the budget
        """
        max_length = self.config.max_context_length if max_context_length is None else max_context_length
        with_metadata = self.config.include_metadata if include_metadata is None else include_metadata
        dedupe = self.config.deduplicate if deduplicate is None else deduplicate
        documents = documents or {}

        blocks: List[str] = []
        used: List[SearchResult] = []
        seen_documents = set()
        current_length = 0

        for result in ranked_results:
            if dedupe and result.document_id in seen_documents:
                continue

            block = self.format_block(result, documents.get(result.document_id), with_metadata)
            separator_length = len(BLOCK_SEPARATOR) if blocks else 0
            remaining = max_length - current_length - separator_length

            if len(block) > remaining:
                if remaining > MIN_TRUNCATION_BUDGET:
                    blocks.append(block[:remaining - len(ELLIPSIS)] + ELLIPSIS)
                    used.append(result)
                break

            blocks.append(block)
            used.append(result)
            seen_documents.add(result.document_id)
            current_length += separator_length + len(block)

            if current_length >= max_length:
                break

        context = BLOCK_SEPARATOR.join(blocks)
        average = sum(r.similarity for r in used) / len(used) if used else 0.0

        logger.debug(
            f"Assembled context for {query!r}: {len(used)}/{len(ranked_results)} results, "
            f"{len(context)} chars"
        )
        return RetrievalContext(context=context, search_results=used, average_similarity=average)

    def format_block(
        self,
        result: SearchResult,
        document: Optional[Document],
        include_metadata: bool
    ) -> str:
        if not include_metadata:
            return result.text

        title = document.title if document else result.document_id
        lines = [f"[Document: {title}]"]
        if document and document.summary and document.summary.strip():
            lines.append(f"Summary: {document.summary}")
        lines.append(f"Similarity: {result.similarity:.2f}")
        lines.append(f"Content: {result.text}")
        return "\n".join(lines)
