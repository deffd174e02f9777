"""Pytest configuration and fixtures."""
import json

import pytest

from arcana.rag.chunker import TextChunker
from arcana.rag.embedder import HashEmbedder
from arcana.rag.service import RetrievalService
from arcana.rag.store import EmbeddingRecord, RecordMetadata, VectorStore


def make_record(source: str, index: int, vector, text: str = None, page: int = None) -> EmbeddingRecord:
    """Build a record the way the index builder does."""
    return EmbeddingRecord(
        id=f"{source}-{index}",
        text=text or f"{source} chunk {index}",
        vector=vector,
        metadata=RecordMetadata(source=source, page=page, chunk_index=index),
    )


def write_shard(path, payload) -> None:
    path.write_text(json.dumps(payload), encoding="utf-8")


@pytest.fixture
def store_dir(tmp_path):
    """Storage root that does not exist yet."""
    return tmp_path / "embeddings"


@pytest.fixture
def store(store_dir):
    return VectorStore(store_dir=store_dir)


@pytest.fixture
def hash_embedder():
    return HashEmbedder()


@pytest.fixture
def documents_dir(tmp_path):
    directory = tmp_path / "documents"
    directory.mkdir()
    return directory


@pytest.fixture
def service(store, hash_embedder, documents_dir):
    return RetrievalService(
        store=store,
        embedder=hash_embedder,
        chunker=TextChunker(chunk_size=300, chunk_overlap=50),
        documents_dir=documents_dir,
    )


@pytest.fixture
def card_documents():
    """Small tarot text corpus keyed by source id."""
    return {
        "major-arcana.txt": (
            "The Tower signals sudden upheaval and revelation. "
            "The Tower breaks false structures apart. "
            "The Star follows the Tower with hope and renewal. "
            "The Star pours water onto land and sea."
        ),
        "minor-arcana.txt": (
            "The Three of Cups celebrates friendship and community. "
            "Cups belong to the element of water and the emotions."
        ),
    }
