"""
Command-line interface for the knowledge retrieval pipeline.

Ingests text files into in-memory stores, then answers queries in a loop,
showing the assembled context and how well the knowledge base matches.

Usage:
    knowledge-rag docs/returns.txt docs/shipping.md
    knowledge-rag --mock-embeddings docs/*.txt
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from .config import RAGConfig
from .embeddings import MockEmbeddingCapability, OpenAIEmbeddingCapability
from .models import Document
from .pipeline import create_rag_pipeline
from .rag_service import RetrievalOrchestrator
from .stores import InMemoryDocumentStore

logger = logging.getLogger(__name__)


class CLI:
    """
    Interactive query loop over a RetrievalOrchestrator.
    """

    def __init__(self, orchestrator: RetrievalOrchestrator):
        self.orchestrator = orchestrator

    def display_welcome(self) -> None:
        """Display welcome message and usage instructions."""
        print("=" * 70)
        print("Knowledge Retrieval")
        print("=" * 70)
        print()
        print("Each query you enter will be:")
        print("  1. Embedded and compared against every ready chunk")
        print("  2. Matched against chunk text by keyword")
        print("  3. Merged, re-ranked and assembled into a bounded context")
        print()
        print("Commands: 'stats' shows chunk statistics, 'retry' re-embeds failed chunks,")
        print("'exit' quits.")
        print("=" * 70)
        print()

    def format_context(self, rag_context) -> str:
        if not rag_context.has_context:
            return "No relevant knowledge found."

        output = f"\nMatched {rag_context.chunk_count} chunks from {rag_context.document_count} documents"
        output += f" (average similarity {rag_context.average_similarity:.2f})"
        if rag_context.partial:
            output += " [partial: deadline reached]"
        output += "\n" + "-" * 70 + "\n"
        output += rag_context.context
        return output

    async def run(self) -> None:
        """Prompt for queries until the user types 'exit'."""
        self.display_welcome()

        while True:
            try:
                user_input = (await asyncio.to_thread(input, "\nQuery (or 'exit' to quit): ")).strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if user_input.lower() == "exit":
                print("\nGoodbye!")
                break

            if not user_input:
                print("Please enter a non-empty query.")
                continue

            if user_input.lower() == "stats":
                stats = await self.orchestrator.get_statistics()
                for key, value in stats.to_dict().items():
                    print(f"  {key}: {value}")
                continue

            if user_input.lower() == "retry":
                retried = await self.orchestrator.reprocess_failed()
                print(f"Retried {retried} failed chunks.")
                continue

            rag_context = await self.orchestrator.retrieve(user_input)
            print(self.format_context(rag_context))


async def ingest_files(
    orchestrator: RetrievalOrchestrator,
    document_store: InMemoryDocumentStore,
    paths: List[Path]
) -> None:
    for path in paths:
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            content = path.read_text(encoding="latin-1")
            logger.warning(f"File {path.name} decoded with latin-1 encoding")

        document_store.put(Document(id=path.name, title=path.stem))
        orchestrator.ingest_in_background(path.name, content)

    await orchestrator.ingestion_service.wait_for_background_tasks()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="knowledge-rag", description=__doc__.splitlines()[1])
    parser.add_argument("files", nargs="*", type=Path, help="Text files to ingest")
    parser.add_argument(
        "--mock-embeddings",
        action="store_true",
        help="Use deterministic offline embeddings instead of OpenAI"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


async def run_cli(args: argparse.Namespace) -> None:
    config = RAGConfig.from_env()

    if args.mock_embeddings:
        capability = MockEmbeddingCapability()
    elif config.embedding.enabled:
        capability = OpenAIEmbeddingCapability(config.embedding)
    else:
        capability = None

    document_store = InMemoryDocumentStore()
    orchestrator = create_rag_pipeline(
        config=config,
        capability=capability,
        document_store=document_store
    )

    await ingest_files(orchestrator, document_store, args.files)
    await CLI(orchestrator).run()


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        asyncio.run(run_cli(args))
    except ValueError as e:
        print(f"Configuration error: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
