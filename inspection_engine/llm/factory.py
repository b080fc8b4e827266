"""
Model Client Factory
Creates vision and embedding backends based on configuration
"""

from inspection_engine.core.config import settings
from inspection_engine.core.logging import get_logger
from inspection_engine.llm.embedder import SentenceTransformerEmbeddingModel
from inspection_engine.llm.mock import MockEmbeddingModel, MockVisionModel
from inspection_engine.llm.ollama import OllamaEmbeddingModel, OllamaVisionModel
from inspection_engine.llm.protocol import EmbeddingModelProtocol, VisionModelProtocol

logger = get_logger(__name__)


def get_vision_model() -> VisionModelProtocol:
    """
    Vision backend for ``settings.vision_provider``

    Raises:
        ValueError: If the provider is not supported
    """
    provider = settings.vision_provider
    logger.info("vision_model_factory", provider=provider, model=settings.ollama_vision_model)

    if provider == "mock":
        return MockVisionModel()
    if provider == "ollama":
        return OllamaVisionModel()

    raise ValueError(f"Unsupported vision_provider: {provider}. Supported: mock, ollama")


def get_embedding_model() -> EmbeddingModelProtocol:
    """
    Embedding backend for ``settings.embedding_provider``

    Raises:
        ValueError: If the provider is not supported
    """
    provider = settings.embedding_provider
    logger.info("embedding_model_factory", provider=provider)

    if provider == "mock":
        return MockEmbeddingModel()
    if provider == "ollama":
        return OllamaEmbeddingModel()
    if provider == "local":
        return SentenceTransformerEmbeddingModel()

    raise ValueError(
        f"Unsupported embedding_provider: {provider}. Supported: mock, ollama, local"
    )


# Singleton instances for dependency injection
_vision_model: VisionModelProtocol | None = None
_embedding_model: EmbeddingModelProtocol | None = None


def get_vision_model_instance() -> VisionModelProtocol:
    global _vision_model
    if _vision_model is None:
        _vision_model = get_vision_model()
    return _vision_model


def get_embedding_model_instance() -> EmbeddingModelProtocol:
    global _embedding_model
    if _embedding_model is None:
        _embedding_model = get_embedding_model()
    return _embedding_model
