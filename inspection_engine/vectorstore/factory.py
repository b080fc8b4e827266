"""
VectorStore Factory
Creates appropriate VectorStore implementation based on configuration
"""

from inspection_engine.core.config import settings
from inspection_engine.core.logging import get_logger
from inspection_engine.vectorstore.mock import MockVectorStore
from inspection_engine.vectorstore.pgvector import PGVectorStore
from inspection_engine.vectorstore.protocol import VectorStoreProtocol

logger = get_logger(__name__)


def get_vectorstore() -> VectorStoreProtocol:
    """
    Get VectorStore implementation based on configuration

    Raises:
        ValueError: If vectorstore_type is not supported
    """
    vectorstore_type = settings.vectorstore_type
    logger.info("vectorstore_factory", vectorstore_type=vectorstore_type)

    if vectorstore_type == "mock":
        return MockVectorStore(dimension=settings.vectorstore_dimension)

    if vectorstore_type == "pgvector":
        return PGVectorStore()

    raise ValueError(
        f"Unsupported vectorstore_type: {vectorstore_type}. Supported types: mock, pgvector"
    )


# Singleton instance for dependency injection
_vectorstore: VectorStoreProtocol | None = None


def get_vectorstore_instance() -> VectorStoreProtocol:
    global _vectorstore
    if _vectorstore is None:
        _vectorstore = get_vectorstore()
    return _vectorstore
