"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document chunking with overlap (character or token windows)
- Embedding generation across batch and rate-limited providers
- Index building and flat-file persistence
- Cosine-similarity retrieval
"""
