"""Retrieval service: index building and knowledge lookup.

Orchestrates:
- Chunking and embedding a document set into the vector store
- Per-term knowledge retrieval
- Assembly of retrieved snippets into prompt context
"""
import asyncio
import json
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import structlog
from pydantic import ValidationError

from arcana import config
from arcana.rag.chunker import Chunk, TextChunker
from arcana.rag.documents import SourceDocument, discover_documents
from arcana.rag.embedder import Embedder, create_embedder
from arcana.rag.store import (
    EmbeddingRecord,
    RecordMetadata,
    SearchResult,
    VectorStore,
    shard_filename,
)

logger = structlog.get_logger()

KNOWLEDGE_HEADING = "## Additional Card Knowledge from Knowledge Base:"
KNOWLEDGE_TOP_K = 5


class IndexBuildError(RuntimeError):
    """Raised when a re-index cannot be completed."""


def no_knowledge_message(term: str) -> str:
    return f"No specific knowledge found for {term}."


@dataclass
class TermKnowledge:
    """Retrieved knowledge for one query term."""

    query_term: str
    top_results: List[SearchResult] = field(default_factory=list)
    assembled_context: str = ""

    @property
    def found(self) -> bool:
        return bool(self.top_results)


class RetrievalService:
    """Builds the knowledge index and answers knowledge queries."""

    def __init__(
        self,
        store: Optional[VectorStore] = None,
        embedder: Optional[Embedder] = None,
        chunker: Optional[TextChunker] = None,
        documents_dir: Path = None,
        chunks_dir: Optional[Path] = None,
    ):
        """Initialize the retrieval service.

        Args:
            store: Vector store (default: store at config.EMBEDDINGS_DIR)
            embedder: Embedding strategy (default picked from config)
            chunker: Text chunker (default sizes from config)
            documents_dir: Directory of extracted documents (default from config)
            chunks_dir: If set, each build also writes the chunk lists there as
                JSON for inspection
        """
        self.store = store or VectorStore()
        self.embedder = embedder or create_embedder()
        self.chunker = chunker or TextChunker()
        self.documents_dir = Path(documents_dir or config.DOCUMENTS_DIR)
        self.chunks_dir = Path(chunks_dir) if chunks_dir else None
        self._build_lock = asyncio.Lock()

    def is_ready(self) -> bool:
        return self.store.get_count() > 0

    async def initialize(self, auto_build: bool = True) -> int:
        """Load the persisted index, building it first if it is empty.

        A failed automatic build is logged and the service continues
        without knowledge context.

        Args:
            auto_build: Build from documents_dir when nothing is persisted

        Returns:
            Number of records available after initialization
        """
        count = await self.store.load()

        if count == 0 and auto_build:
            logger.info("knowledge_base_empty_building", documents_dir=str(self.documents_dir))
            try:
                await self.build_index_from_directory(self.documents_dir)
            except IndexBuildError as e:
                logger.error("knowledge_base_auto_build_failed", error=str(e))

        count = self.store.get_count()
        logger.info("retrieval_service_initialized", record_count=count, ready=count > 0)
        return count

    async def build_index_from_directory(self, directory: Path = None) -> Dict[str, Any]:
        """Discover the document set in a directory and rebuild the index.

        Raises:
            IndexBuildError: If the document set can't be read or indexed
        """
        directory = Path(directory or self.documents_dir)
        try:
            documents = discover_documents(directory)
        except FileNotFoundError as e:
            raise IndexBuildError(f"Cannot read document set: {e}") from e

        return await self.build_index(documents)

    async def build_index(self, documents: Sequence[SourceDocument]) -> Dict[str, Any]:
        """Rebuild the whole index from a document set.

        The new record set is built completely in memory before the store
        is touched. With no documents nothing happens.

        Args:
            documents: Extracted documents to index

        Returns:
            Build statistics

        Raises:
            IndexBuildError: If embedding or persisting fails; the store keeps
                its previous contents
        """
        stats = {
            "sources_processed": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
        }

        if not documents:
            logger.warning("build_index_no_documents")
            return stats

        async with self._build_lock:
            logger.info("build_index_started", sources=len(documents))

            chunks = []
            for document in documents:
                document_chunks = self.chunker.chunk_text(document.text, document.source_id)
                if not document_chunks:
                    logger.warning("no_chunks_created", source=document.source_id)
                chunks.extend(document_chunks)
                stats["sources_processed"] += 1

            stats["chunks_created"] = len(chunks)

            try:
                vectors = await self.embedder.embed_batch([c.text for c in chunks])
            except Exception as e:
                logger.error("build_index_embedding_failed", error=str(e), error_type=type(e).__name__)
                raise IndexBuildError(f"Failed to generate embeddings: {e}") from e

            stats["embeddings_generated"] = len(vectors)

            if len(vectors) != len(chunks):
                logger.error(
                    "build_index_vector_count_mismatch",
                    chunks=len(chunks),
                    vectors=len(vectors),
                )
                raise IndexBuildError(
                    f"Embedder returned {len(vectors)} vectors for {len(chunks)} chunks"
                )

            try:
                records = [
                    EmbeddingRecord(
                        id=f"{chunk.source_id}-{chunk.chunk_index}",
                        text=chunk.text,
                        vector=vector,
                        metadata=RecordMetadata(
                            source=chunk.source_id,
                            page=chunk.page,
                            chunk_index=chunk.chunk_index,
                        ),
                    )
                    for chunk, vector in zip(chunks, vectors)
                ]
            except ValidationError as e:
                logger.error("build_index_invalid_record", error_count=e.error_count())
                raise IndexBuildError(f"Invalid embedding record: {e}") from e

            try:
                await self.store.replace(records)
            except RuntimeError as e:
                raise IndexBuildError(f"Failed to persist index: {e}") from e

            if self.chunks_dir is not None:
                self._dump_chunks(chunks)

        logger.info("build_index_completed", **stats)

        return stats

    def _dump_chunks(self, chunks: Sequence[Chunk]) -> None:
        """Write each source's chunks to chunks_dir. Failures are only logged."""
        by_file: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
        for chunk in chunks:
            by_file.setdefault(shard_filename(chunk.source_id), []).append(asdict(chunk))

        try:
            self.chunks_dir.mkdir(parents=True, exist_ok=True)
            for filename, items in by_file.items():
                with open(self.chunks_dir / filename, "w", encoding="utf-8") as f:
                    json.dump(items, f, indent=2)
        except OSError as e:
            logger.warning("chunk_dump_failed", chunks_dir=str(self.chunks_dir), error=str(e))
            return

        logger.info("chunks_dumped", chunks_dir=str(self.chunks_dir), files=len(by_file))

    async def retrieve_knowledge(self, query_terms: Sequence[str]) -> List[TermKnowledge]:
        """Look up knowledge for each query term independently.

        A failure for one term is logged and reported as "no knowledge" for
        that term only.

        Args:
            query_terms: Terms to look up (e.g. card names)

        Returns:
            One TermKnowledge per term, in input order
        """
        results = []

        for term in query_terms:
            try:
                query_vector = await self.embedder.embed(term)
                top_results = self.store.search(query_vector, KNOWLEDGE_TOP_K)
            except Exception as e:
                logger.error(
                    "knowledge_retrieval_failed",
                    term=term,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                top_results = []

            context = "\n\n".join(r.text for r in top_results)

            results.append(
                TermKnowledge(
                    query_term=term,
                    top_results=top_results,
                    assembled_context=context or no_knowledge_message(term),
                )
            )

            logger.debug("knowledge_retrieved", term=term, results=len(top_results))

        return results

    async def get_enhanced_context(self, *terms: str) -> str:
        """Combine knowledge for several terms into one prompt block.

        Terms without relevant chunks are left out. Returns an empty string
        when no term produced anything.
        """
        knowledge = await self.retrieve_knowledge(list(terms))
        return assemble_context(knowledge)


def assemble_context(knowledge: Sequence[TermKnowledge]) -> str:
    """Render retrieved knowledge as a heading block for a prompt."""
    terms = [k.query_term for k in knowledge]
    sections = [
        f"### {k.query_term}:\n{k.assembled_context}\n\n"
        for k in knowledge
        if k.found
    ]

    if not sections:
        logger.info("enhanced_context_empty", terms=terms)
        return ""

    logger.info("enhanced_context_built", terms=terms, sections=len(sections))

    return f"\n\n{KNOWLEDGE_HEADING}\n\n" + "".join(sections)
