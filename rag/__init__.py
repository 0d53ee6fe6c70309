"""
RAG (Retrieval-Augmented Generation) components for docchat

- split_into_chunks: Word-based document chunking
- EmbeddingModel: Lazily-loaded text embedding model
- VectorIndex: Exact cosine-similarity search over chunk embeddings
"""

from .chunking import split_into_chunks
from .embeddings import EmbeddingModel
from .vector_index import VectorIndex, cosine_similarity

__all__ = [
    "EmbeddingModel",
    "VectorIndex",
    "cosine_similarity",
    "split_into_chunks",
]
