"""Sentence-based text chunking with overlap for the RAG pipeline.

Text is split into sentence-like units which are packed greedily into
chunks of roughly `chunk_size` characters. Consecutive chunks share a
short window of trailing words.
"""
import re
from dataclasses import dataclass
from typing import List, Optional
import structlog

from arcana import config

logger = structlog.get_logger()

# Keeps terminal punctuation on the unit and captures the whitespace after it
SENTENCE_BOUNDARY = re.compile(r"((?<=[.!?])\s+)")
PAGE_BREAK = "\n\n"


@dataclass(frozen=True)
class Chunk:
    """A bounded span of a source document."""

    text: str
    source_id: str
    chunk_index: int
    page: Optional[int] = None


def split_sentences(text: str) -> List[tuple]:
    """Split text into (unit, trailing_whitespace) pairs."""
    parts = SENTENCE_BOUNDARY.split(text)
    units = parts[0::2]
    separators = parts[1::2] + [""]
    return [(unit, sep) for unit, sep in zip(units, separators) if unit]


class TextChunker:
    """Sentence-packing chunker with a word-based overlap window."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Target chunk size in characters (default from config)
            chunk_overlap: Overlap budget in characters (default from config).
                The carried-over window is `chunk_overlap // 10` words.
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    @property
    def overlap_words(self) -> int:
        return max(self.chunk_overlap // 10, 0)

    def chunk_text(self, text: str, source_id: str) -> List[Chunk]:
        """Split text into overlapping chunks.

        Args:
            text: Extracted plain text of one document
            source_id: Identifier of the document the text came from

        Returns:
            List of Chunk objects, indexed from 0
        """
        text = (text or "").strip()
        if not text:
            return []

        chunks: List[Chunk] = []
        buffer = ""
        page = 1
        page_break_seen = False

        for unit, separator in split_sentences(text):
            if len(buffer) + len(unit) > self.chunk_size and buffer.strip():
                chunks.append(
                    Chunk(
                        text=buffer.strip(),
                        source_id=source_id,
                        chunk_index=len(chunks),
                        page=page,
                    )
                )
                buffer = self._overlap_seed(buffer)

            # Heuristic page detection: blank lines usually separate pages
            if page_break_seen:
                page += 1

            buffer += unit + separator
            page_break_seen = PAGE_BREAK in unit or PAGE_BREAK in separator

        if buffer.strip():
            chunks.append(
                Chunk(
                    text=buffer.strip(),
                    source_id=source_id,
                    chunk_index=len(chunks),
                    page=page,
                )
            )

        logger.debug(
            "text_chunked",
            source=source_id,
            text_length=len(text),
            chunk_count=len(chunks),
        )

        return chunks

    def _overlap_seed(self, closed_buffer: str) -> str:
        """Return the trailing words of a closed chunk, ready to prefix a unit."""
        if self.overlap_words == 0:
            return ""
        words = closed_buffer.split()[-self.overlap_words:]
        return " ".join(words) + " " if words else ""

    def get_chunk_stats(self, chunks: List[Chunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of Chunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.text) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap_words": self.overlap_words,
        }


def chunk(
    full_text: str,
    source_id: str,
    target_size: int = 1000,
    overlap: int = 200,
) -> List[Chunk]:
    """Chunk a document's text (convenience function).

    Args:
        full_text: Extracted plain text
        source_id: Document identifier
        target_size: Target chunk size in characters
        overlap: Overlap budget in characters

    Returns:
        List of Chunk objects
    """
    return TextChunker(chunk_size=target_size, chunk_overlap=overlap).chunk_text(
        full_text, source_id
    )
