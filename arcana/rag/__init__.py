"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document discovery
- Sentence-based chunking with overlap
- Embedding generation with an offline fallback
- JSON-backed vector storage and cosine search
- Knowledge retrieval and context assembly
"""
