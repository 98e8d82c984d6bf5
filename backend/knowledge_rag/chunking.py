"""
Sentence-aware overlapping text chunker for RAG.

Implements character-window chunking that:
- Cleans markup and whitespace before splitting
- Prefers to cut right after a sentence terminator (. ! ? 。！？)
- Records the configured overlap on every chunk after the first
"""

import re
import logging
from typing import Iterator, List, Optional

from .models import Chunk
from .config import ChunkingConfig

logger = logging.getLogger(__name__)

HTML_TAG_PATTERN = re.compile(r"<[^>]+>")
LINE_BREAK_PATTERN = re.compile(r"[\r\n\t]+")
MULTIPLE_SPACES_PATTERN = re.compile(r"\s+")

SENTENCE_TERMINATORS = frozenset(".!?。！？")


def clean_text(text: Optional[str]) -> str:
    """Strip markup tags, collapse whitespace runs into single spaces, trim."""
    if not text:
        return ""
    cleaned = HTML_TAG_PATTERN.sub(" ", text)
    cleaned = LINE_BREAK_PATTERN.sub(" ", cleaned)
    cleaned = MULTIPLE_SPACES_PATTERN.sub(" ", cleaned)
    return cleaned.strip()


def find_last_sentence_end(text: str, start: int, end: int) -> int:
    """Return the index of the last sentence terminator in text[start:end], or -1."""
    for i in range(end - 1, start - 1, -1):
        if text[i] in SENTENCE_TERMINATORS:
            return i
    return -1


class OverlappingChunker:
    """
    Character-window chunker with sentence-boundary snapping.

    The window advances to the end of the previous chunk; `overlap_length` is
    recorded on each chunk but the overlapped text is not scanned again.
    """

    def __init__(self, config: Optional[ChunkingConfig] = None):
        self.config = config or ChunkingConfig()

    def split(
        self,
        document_text: str,
        document_id: str,
        chunk_size: Optional[int] = None,
        overlap_size: Optional[int] = None,
    ) -> Iterator[Chunk]:
        """
        Split document text into chunks.

        Args:
            document_text: Raw document text (cleaned before splitting)
            document_id: Owning document identifier
            chunk_size: Window length in characters (defaults to config)
            overlap_size: Recorded overlap in characters (defaults to config)

        Yields:
            Chunk objects in index order, spans relative to the cleaned text
        """
        chunk_size = self.config.chunk_size if chunk_size is None else chunk_size
        overlap_size = self.config.overlap_size if overlap_size is None else overlap_size

        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap_size < 0:
            raise ValueError("overlap_size must not be negative")

        text = clean_text(document_text)
        if not text:
            logger.warning(f"Empty text provided for chunking: {document_id}")
            return

        if len(text) <= chunk_size:
            yield Chunk(
                document_id=document_id,
                chunk_index=0,
                content=text,
                start_position=0,
                end_position=len(text),
            )
            return

        chunk_index = 0
        start = 0
        half_window = chunk_size // 2

        while start < len(text):
            end = min(start + chunk_size, len(text))

            # Snap to a sentence end unless that would leave a tiny chunk
            if end < len(text):
                sentence_end = find_last_sentence_end(text, start, end)
                if sentence_end > start + half_window:
                    end = sentence_end + 1

            content = text[start:end]
            yield Chunk(
                document_id=document_id,
                chunk_index=chunk_index,
                content=content,
                start_position=start,
                end_position=end,
                overlap_length=min(overlap_size, len(content)) if chunk_index > 0 else 0,
            )
            chunk_index += 1

            start = max(end - overlap_size, end)

        logger.debug(f"Created {chunk_index} chunks for document: {document_id}")

    def chunk_text(self, text: str, document_id: str) -> List[Chunk]:
        """Split with configured sizes and return a list."""
        chunks = list(self.split(text, document_id))
        logger.info(f"Created {len(chunks)} chunks for document: {document_id}")
        return chunks
