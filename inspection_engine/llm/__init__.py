"""
Model Client Abstraction
Vision and embedding backends, assessment schema and prompt
"""

from inspection_engine.llm.protocol import EmbeddingModelProtocol, VisionModelProtocol
from inspection_engine.llm.factory import get_embedding_model, get_vision_model

__all__ = [
    "EmbeddingModelProtocol",
    "VisionModelProtocol",
    "get_embedding_model",
    "get_vision_model",
]
