"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document loading and text extraction
- Document chunking with overlap
- In-memory vector index (exact and faiss backends)
- The engine tying ingestion and retrieval together
"""
