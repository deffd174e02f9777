"""Embedding strategies for the RAG pipeline.

Handles:
- Deterministic hashed bag-of-words embeddings (offline, always available)
- Network embeddings through an OpenAI-compatible API
- Falling back from the network strategy to the hash strategy on failure
- Paced batch embedding
"""
import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence
import httpx
import numpy as np
import structlog

from arcana import config
from arcana.embedding_client import EmbeddingAPIError, OpenAIEmbeddingClient

logger = structlog.get_logger()

INT32_MASK = 0xFFFFFFFF
INT32_SIGN = 0x80000000


class Embedder(ABC):
    """Produces a same-length vector for any string."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed several texts, preserving order."""
        return [await self.embed(text) for text in texts]


def _utf16_code_units(word: str):
    for ch in word:
        code = ord(ch)
        if code > 0xFFFF:
            code -= 0x10000
            yield 0xD800 + (code >> 10)
            yield 0xDC00 + (code & 0x3FF)
        else:
            yield code


def word_hash(word: str) -> int:
    """32-bit signed rolling hash (`h = h * 31 + code`) over UTF-16 code units."""
    value = 0
    for code in _utf16_code_units(word):
        value = (value * 31 + code) & INT32_MASK
    if value & INT32_SIGN:
        value -= 1 << 32
    return value


class HashEmbedder(Embedder):
    """Hashed bag-of-words embedding.

    Keeps similarity search working, if degraded, when no embedding model
    is reachable. Every word is hashed into one of `dimension` buckets and
    the resulting vector is L2-normalised.
    """

    def __init__(self, dimension: int = None):
        self.dimension = dimension or config.FALLBACK_EMBEDDING_DIMENSION

    def embed_sync(self, text: str) -> List[float]:
        vector = np.zeros(self.dimension, dtype=np.float64)

        for word in text.lower().split():
            value = word_hash(word)
            index = abs(value) % self.dimension
            # abs(value % 10) with a truncating remainder
            vector[index] += 1.0 / (1 + abs(value) % 10)

        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector = vector / norm

        return vector.tolist()

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)


class OpenAIEmbedder(Embedder):
    """Network-backed embeddings. Errors propagate to the caller."""

    def __init__(self, client: Optional[OpenAIEmbeddingClient] = None):
        self.client = client or OpenAIEmbeddingClient()

    async def embed(self, text: str) -> List[float]:
        return await self.client.embeddings(text)


class FallbackEmbedder(Embedder):
    """Try a primary embedder and fall back to a deterministic one on failure.

    Failures covered: transport errors, timeouts, non-2xx responses
    (all `httpx.HTTPError`) and malformed payloads (`EmbeddingAPIError`).
    """

    FALLBACK_ERRORS = (httpx.HTTPError, EmbeddingAPIError)

    def __init__(
        self,
        primary: Embedder,
        fallback: Optional[Embedder] = None,
        batch_size: int = None,
        batch_delay: float = None,
    ):
        """Initialize the fallback combinator.

        Args:
            primary: Embedder to try first (usually network-backed)
            fallback: Embedder used when the primary fails (default HashEmbedder)
            batch_size: Texts embedded concurrently per batch (default from config)
            batch_delay: Pause between batches in seconds (default from config)
        """
        self.primary = primary
        self.fallback = fallback or HashEmbedder()
        self.batch_size = batch_size or config.EMBEDDING_BATCH_SIZE
        self.batch_delay = config.EMBEDDING_BATCH_DELAY if batch_delay is None else batch_delay
        self.fallback_count = 0

    async def embed(self, text: str) -> List[float]:
        try:
            return await self.primary.embed(text)
        except self.FALLBACK_ERRORS as e:
            self.fallback_count += 1
            logger.warning(
                "embedding_fallback_used",
                error=str(e),
                error_type=type(e).__name__,
                text_preview=text[:100],
            )
            return await self.fallback.embed(text)

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts in paced batches.

        Args:
            texts: Texts to embed

        Returns:
            List of vectors in input order
        """
        if not texts:
            return []

        embeddings: List[List[float]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            batch_embeddings = await asyncio.gather(*(self.embed(text) for text in batch))
            embeddings.extend(batch_embeddings)

            logger.debug(
                "embeddings_batch_generated",
                batch_size=len(batch),
                total_so_far=len(embeddings),
            )

            # Respect upstream rate limits
            if i + self.batch_size < len(texts):
                await asyncio.sleep(self.batch_delay)

        return embeddings


def create_embedder(
    api_key: Optional[str] = None,
    client: Optional[OpenAIEmbeddingClient] = None,
) -> Embedder:
    """Pick the embedding strategy once, from configuration.

    Args:
        api_key: API key for the network strategy (default config.OPENAI_API_KEY)
        client: Pre-built client, overrides api_key

    Returns:
        FallbackEmbedder over the network strategy when credentials exist,
        otherwise a HashEmbedder
    """
    api_key = api_key or config.OPENAI_API_KEY

    if client is None and not api_key:
        logger.info("embedder_selected", strategy="hash", dimension=config.FALLBACK_EMBEDDING_DIMENSION)
        return HashEmbedder()

    client = client or OpenAIEmbeddingClient(api_key=api_key)
    logger.info("embedder_selected", strategy="openai", model=client.model)
    return FallbackEmbedder(OpenAIEmbedder(client), HashEmbedder())
