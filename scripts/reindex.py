#!/usr/bin/env python
"""Rebuild the knowledge-base index from extracted documents.

Usage:
    python scripts/reindex.py                      # Rebuild from DOCUMENTS_DIR
    python scripts/reindex.py --documents-dir DIR  # Rebuild from another directory
    python scripts/reindex.py --status             # Show what is currently indexed
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from arcana import config
from arcana.main import configure_logging
from arcana.rag.service import IndexBuildError, RetrievalService
from arcana.rag.store import VectorStore
import structlog

logger = structlog.get_logger()


def print_status(stats: dict) -> None:
    """Print a summary of the loaded store."""
    print(f"\n{'=' * 60}")
    print("  Knowledge Base Status")
    print(f"{'=' * 60}\n")
    print(f"  Records:     {stats['record_count']}")
    print(f"  Sources:     {len(stats['sources'])}")
    for source in stats["sources"]:
        print(f"    - {source}")
    print(f"  Dimensions:  {', '.join(str(d) for d in stats['dimensions']) or '-'}")
    print(f"  Store dir:   {stats['store_dir']}\n")


def print_summary(stats: dict, started: datetime, store_dir: Path) -> None:
    """Print the result of a rebuild."""
    elapsed_seconds = (datetime.now() - started).total_seconds()

    print(f"\n{'=' * 60}")
    print("  Indexing Complete!")
    print(f"{'=' * 60}\n")
    print(f"  Sources processed:      {stats['sources_processed']}")
    print(f"  Chunks created:         {stats['chunks_created']}")
    print(f"  Embeddings generated:   {stats['embeddings_generated']}")
    print(f"  Time elapsed:           {elapsed_seconds:.1f}s")

    if stats["chunks_created"] > 0 and elapsed_seconds > 0:
        rate = stats["chunks_created"] / elapsed_seconds
        print(f"  Indexing rate:          {rate:.1f} chunks/sec")

    print(f"\n{'=' * 60}\n")

    if stats["sources_processed"] == 0:
        print("Warning: no documents found, existing index left unchanged.\n")
    else:
        print(f"Index ready at: {store_dir}\n")


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Rebuild the knowledge-base index",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py
  python scripts/reindex.py --documents-dir ./knowledge-base/documents
  python scripts/reindex.py --status
        """,
    )

    parser.add_argument(
        "--documents-dir",
        type=Path,
        default=None,
        help=f"Documents directory (default: {config.DOCUMENTS_DIR})",
    )

    parser.add_argument(
        "--store-dir",
        type=Path,
        default=None,
        help=f"Embeddings directory (default: {config.EMBEDDINGS_DIR})",
    )

    parser.add_argument(
        "--dump-chunks",
        type=Path,
        default=None,
        metavar="DIR",
        help=f"Also write chunk lists as JSON to DIR (e.g. {config.CHUNKS_DIR})",
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Only load the existing index and report on it",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )

    args = parser.parse_args()

    configure_logging("DEBUG" if args.verbose else "WARNING")

    store = VectorStore(store_dir=args.store_dir)
    service = RetrievalService(
        store=store,
        documents_dir=args.documents_dir,
        chunks_dir=args.dump_chunks,
    )

    if args.status:
        await store.load()
        print_status(store.get_stats())
        return

    print("\nConfiguration:")
    print(f"   Documents directory:  {service.documents_dir}")
    print(f"   Store directory:      {store.store_dir}")
    print(f"   Embedder:             {type(service.embedder).__name__}")
    print(f"   Chunk size:           {service.chunker.chunk_size} chars")
    print(f"   Chunk overlap:        {service.chunker.chunk_overlap} chars")
    if service.chunks_dir:
        print(f"   Chunk dump directory: {service.chunks_dir}")

    started = datetime.now()

    try:
        stats = await service.build_index_from_directory()

    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user.\n")
        sys.exit(1)

    except IndexBuildError as e:
        print(f"\nError: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)

    print_summary(stats, started, store.store_dir)


if __name__ == "__main__":
    asyncio.run(main())
