"""
VectorStore Abstraction
Shop-scoped vector storage and cosine similarity search
"""

from inspection_engine.vectorstore.protocol import (
    VectorRecord,
    VectorSearchResult,
    VectorStoreProtocol,
)
from inspection_engine.vectorstore.factory import get_vectorstore

__all__ = ["VectorRecord", "VectorSearchResult", "VectorStoreProtocol", "get_vectorstore"]
