"""
Knowledge base chunks

A chunk lives in its shop namespace (``{shop_id}-kb``) and is identified by a
caller-supplied ``chunk_id``. Re-ingesting the same chunk id replaces the row
in place; its vector is replaced by the search service.
"""

from typing import Any

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inspection_engine.core.sqlalchemy_types import JSONB
from inspection_engine.models.base import BaseModel


def kb_namespace(shop_id: str) -> str:
    return f"{shop_id}-kb"


class KnowledgeBaseChunk(BaseModel):
    __tablename__ = "knowledge_base_chunks"
    __table_args__ = (
        UniqueConstraint("namespace", "chunk_id", name="uq_kb_chunk_namespace_chunk"),
    )

    shop_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    namespace: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    chunk_id: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
    )
    embedding_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    def __repr__(self) -> str:
        return f"<KnowledgeBaseChunk(namespace={self.namespace}, chunk_id={self.chunk_id})>"
