"""
SQLAlchemy 2.0 Models
"""

from inspection_engine.models.base import Base, BaseModel  # noqa: F401
from inspection_engine.models.inspection import (  # noqa: F401
    Damage,
    EstimateItem,
    Inspection,
    InspectionStatus,
    PersistedSeverity,
)
from inspection_engine.models.knowledge_base import KnowledgeBaseChunk, kb_namespace  # noqa: F401

__all__ = [
    "Base",
    "BaseModel",
    "Damage",
    "EstimateItem",
    "Inspection",
    "InspectionStatus",
    "KnowledgeBaseChunk",
    "PersistedSeverity",
    "kb_namespace",
]
