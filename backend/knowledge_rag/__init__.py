"""
Knowledge retrieval module for augmenting chat prompts with document facts.

This module implements a retrieval pipeline using:
- Sentence-aware overlapping text chunking
- OpenAI embeddings behind a timeout-guarded gateway
- Exhaustive cosine-similarity vector search
- Keyword search merged with vector search and re-ranked
- Length-bounded, deduplicated context assembly

Retrieval never raises to the conversational layer: when anything goes
wrong the caller receives an empty context and keeps its base prompt.
"""

from .config import RAGConfig
from .models import Chunk, ChunkStatus, Document, RetrievalContext, SearchResult
from .pipeline import create_rag_pipeline
from .rag_service import RetrievalOrchestrator

__version__ = "1.0.0"

__all__ = [
    "RAGConfig",
    "Chunk",
    "ChunkStatus",
    "Document",
    "RetrievalContext",
    "SearchResult",
    "RetrievalOrchestrator",
    "create_rag_pipeline",
]
