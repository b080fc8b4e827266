"""
Similarity search and knowledge base schemas
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from inspection_engine.schemas.base import CamelSchema
from inspection_engine.vectorstore.protocol import ReferenceType


class SearchRequest(CamelSchema):
    shop_id: str = Field(min_length=1, max_length=64)
    query: str = Field(min_length=1, max_length=4000)
    reference_type: ReferenceType = "inspection"
    limit: int = Field(default=5, ge=1, le=50)


class SearchHitView(CamelSchema):
    reference_id: str
    score: float


class KnowledgeDocumentIn(CamelSchema):
    chunk_id: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class KnowledgeIngestRequest(CamelSchema):
    documents: list[KnowledgeDocumentIn] = Field(min_length=1, max_length=500)


class KnowledgeIngestResponse(CamelSchema):
    namespace: str
    ingested: int
    replaced: int
    chunk_ids: list[str]


class KnowledgeChunkView(CamelSchema):
    chunk_id: str
    namespace: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding_id: str | None = None
    created_at: datetime
    updated_at: datetime
