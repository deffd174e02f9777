"""JSON-backed vector store with cosine-similarity search.

Handles:
- One JSON shard per source document under a storage root
- Tolerant loading (corrupt shards and malformed records are skipped)
- Exact top-K cosine search with a relevance floor
- Atomic record-set replacement for re-indexing
"""
import asyncio
import json
import math
import os
import re
import tempfile
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import numpy as np
import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from arcana import config

logger = structlog.get_logger()

# Results scoring at or below this are not considered usable context
RELEVANCE_FLOOR = 0.5


class DimensionMismatchError(ValueError):
    """Raised when vectors of different lengths are compared."""


class RecordMetadata(BaseModel):
    """Where a record's text came from."""

    model_config = ConfigDict(populate_by_name=True)

    source: str
    page: Optional[int] = None
    chunk_index: int = Field(alias="chunkIndex")


class EmbeddingRecord(BaseModel):
    """A chunk's text together with its vector, as stored and persisted."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    text: str
    vector: List[float] = Field(validation_alias=AliasChoices("vector", "embedding"))
    metadata: RecordMetadata

    @field_validator("vector", mode="before")
    @classmethod
    def _numeric_sequence(cls, value: Any) -> List[float]:
        if not isinstance(value, (list, tuple)) or not value:
            raise ValueError("vector must be a non-empty sequence of numbers")
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
            raise ValueError("vector must contain only numbers")
        try:
            vector = [float(v) for v in value]
        except OverflowError as e:
            raise ValueError(f"vector component out of range: {e}") from e
        if not all(math.isfinite(v) for v in vector):
            raise ValueError("vector must contain only finite numbers")
        return vector

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


@dataclass
class SearchResult:
    """A scored record returned by a search."""

    text: str
    score: float
    metadata: RecordMetadata

    @property
    def source(self) -> str:
        return self.metadata.source


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors, 0.0 if either has zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Vector dimension mismatch: {len(a)} != {len(b)}"
        )

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denominator = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if denominator == 0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def shard_filename(source: str) -> str:
    """Filesystem-safe shard name for a source identifier."""
    return re.sub(r"[^a-z0-9]", "_", source, flags=re.IGNORECASE).lower() + ".json"


def normalize_shard(payload: Any) -> List[Any]:
    """Return the raw record list from either accepted shard shape.

    Accepted shapes are a bare array of records and an object with an
    `embeddings` array.

    Raises:
        ValueError: For any other shape
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("embeddings"), list):
        return payload["embeddings"]
    raise ValueError(
        f"Invalid shard format: expected array or object with 'embeddings' array, "
        f"got {type(payload).__name__}"
    )


class VectorStore:
    """In-memory record set backed by per-source JSON shards.

    The record sequence is an immutable tuple that is only ever replaced
    wholesale, so a concurrent `search` sees either the old or the new set.
    """

    def __init__(self, store_dir: Path = None):
        """Initialize the vector store.

        Args:
            store_dir: Directory holding the JSON shards (default: EMBEDDINGS_DIR)
        """
        self.store_dir = Path(store_dir or config.EMBEDDINGS_DIR)
        self._records: Tuple[EmbeddingRecord, ...] = ()
        self._lock = asyncio.Lock()

        logger.debug("vector_store_initialized", store_dir=str(self.store_dir))

    @property
    def records(self) -> Tuple[EmbeddingRecord, ...]:
        return self._records

    def get_count(self) -> int:
        return len(self._records)

    def add(self, records: Iterable[EmbeddingRecord]) -> None:
        """Append records in memory. Nothing is persisted until `save()`."""
        self._records = self._records + tuple(records)

    def clear(self) -> None:
        """Drop all records from memory. Shards on disk are left alone."""
        self._records = ()

    async def load(self) -> int:
        """Load all shards from the storage root.

        A missing root is created and leaves the store empty. Unparseable
        shards and malformed records are logged and skipped.

        Returns:
            Number of records loaded
        """
        async with self._lock:
            if not self.store_dir.exists():
                self.store_dir.mkdir(parents=True, exist_ok=True)
                logger.info("vector_store_dir_created", store_dir=str(self.store_dir))
                self._records = ()
                return 0

            loaded: List[EmbeddingRecord] = []
            shard_count = 0

            for shard_path in sorted(self.store_dir.glob("*.json")):
                records = self._read_shard(shard_path)
                if records is None:
                    continue
                loaded.extend(records)
                shard_count += 1

            self._records = tuple(loaded)

            logger.info(
                "vector_store_loaded",
                store_dir=str(self.store_dir),
                shards=shard_count,
                record_count=len(loaded),
            )

            return len(loaded)

    def _read_shard(self, shard_path: Path) -> Optional[List[EmbeddingRecord]]:
        try:
            with open(shard_path, "r", encoding="utf-8") as f:
                raw_records = normalize_shard(json.load(f))
        except (OSError, ValueError) as e:
            logger.error("shard_load_failed", path=str(shard_path), error=str(e))
            return None

        records = []
        skipped = 0
        for raw in raw_records:
            try:
                records.append(EmbeddingRecord.model_validate(raw))
            except ValidationError as e:
                skipped += 1
                logger.debug(
                    "record_skipped",
                    path=str(shard_path),
                    error_count=e.error_count(),
                )

        if skipped:
            logger.warning(
                "malformed_records_skipped",
                path=str(shard_path),
                skipped=skipped,
                kept=len(records),
            )

        return records

    async def save(self) -> None:
        """Persist the current records, one shard per source.

        Raises:
            RuntimeError: If writing fails
        """
        async with self._lock:
            self._write_shards(self._records)

    async def replace(self, records: Sequence[EmbeddingRecord]) -> None:
        """Replace the whole record set (clear, add and save as one step).

        The new set is written to disk first and swapped into memory only
        after every shard has been written.

        Raises:
            RuntimeError: If writing fails; the in-memory set is unchanged
        """
        new_records = tuple(records)
        async with self._lock:
            self._write_shards(new_records)
            self._records = new_records

        logger.info("vector_store_replaced", record_count=len(new_records))

    def _write_shards(self, records: Sequence[EmbeddingRecord]) -> None:
        # Sources whose names sanitize alike share one shard
        by_shard: "OrderedDict[str, List[EmbeddingRecord]]" = OrderedDict()
        for record in records:
            by_shard.setdefault(shard_filename(record.metadata.source), []).append(record)

        staged: List[Tuple[str, Path]] = []
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)

            # Stage every shard before renaming any of them into place
            for filename, shard_records in by_shard.items():
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.store_dir, prefix=".shard-", suffix=".tmp"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump([r.to_json() for r in shard_records], f, indent=2)
                staged.append((tmp_name, self.store_dir / filename))

            for tmp_name, target in staged:
                os.replace(tmp_name, target)

            written = {target.name for _, target in staged}
            for stale in self.store_dir.glob("*.json"):
                if stale.name not in written:
                    stale.unlink()
                    logger.info("stale_shard_removed", path=str(stale))

        except OSError as e:
            for tmp_name, _ in staged:
                Path(tmp_name).unlink(missing_ok=True)
            logger.error("vector_store_save_failed", store_dir=str(self.store_dir), error=str(e))
            raise RuntimeError(f"Failed to save embeddings: {e}") from e

        logger.info(
            "vector_store_saved",
            store_dir=str(self.store_dir),
            shards=len(by_shard),
            record_count=len(records),
        )

    def search(self, query_vector: Sequence[float], top_k: int = None) -> List[SearchResult]:
        """Find the records most similar to a query vector.

        Args:
            query_vector: Query embedding
            top_k: Maximum number of results (default from config)

        Returns:
            Up to top_k results, best first, all scoring above RELEVANCE_FLOOR

        Raises:
            DimensionMismatchError: If the query and a stored vector differ in length
        """
        if top_k is None:
            top_k = config.RETRIEVAL_TOP_K

        records = self._records
        if not records or top_k <= 0:
            return []

        scored = [
            SearchResult(
                text=record.text,
                score=cosine_similarity(query_vector, record.vector),
                metadata=record.metadata,
            )
            for record in records
        ]

        # sorted() is stable, so ties keep insertion order
        ranked = sorted(scored, key=lambda r: r.score, reverse=True)[:top_k]
        results = [r for r in ranked if r.score > RELEVANCE_FLOOR]

        logger.debug(
            "vector_search_completed",
            top_k=top_k,
            candidates=len(records),
            results_found=len(results),
            best_score=ranked[0].score if ranked else None,
        )

        return results

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store.

        Returns:
            Dictionary with store statistics
        """
        records = self._records
        return {
            "record_count": len(records),
            "sources": sorted({r.metadata.source for r in records}),
            "dimensions": sorted({len(r.vector) for r in records}),
            "store_dir": str(self.store_dir),
            "store_dir_exists": self.store_dir.exists(),
        }
