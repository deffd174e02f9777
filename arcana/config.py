"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
KNOWLEDGE_BASE_DIR = Path(os.getenv("KNOWLEDGE_BASE_DIR", str(BASE_DIR / "knowledge-base")))
DOCUMENTS_DIR = Path(os.getenv("DOCUMENTS_DIR", str(KNOWLEDGE_BASE_DIR / "documents")))
EMBEDDINGS_DIR = Path(os.getenv("EMBEDDINGS_DIR", str(KNOWLEDGE_BASE_DIR / "embeddings")))
CHUNKS_DIR = Path(os.getenv("CHUNKS_DIR", str(KNOWLEDGE_BASE_DIR / "chunks")))

# Embedding API (OpenAI-compatible). Without a key the hash embedder is used.
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY") or None
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "10"))
EMBEDDING_BATCH_DELAY = float(os.getenv("EMBEDDING_BATCH_DELAY", "0.1"))  # seconds
FALLBACK_EMBEDDING_DIMENSION = int(os.getenv("FALLBACK_EMBEDDING_DIMENSION", "384"))

# RAG parameters (character-based)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
