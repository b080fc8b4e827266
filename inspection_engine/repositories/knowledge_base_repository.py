"""
Knowledge base chunk repository
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inspection_engine.core.exceptions import PersistenceError
from inspection_engine.core.logging import get_logger
from inspection_engine.models.knowledge_base import KnowledgeBaseChunk, kb_namespace

logger = get_logger(__name__)


class KnowledgeBaseRepository:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def upsert(
        self,
        *,
        shop_id: str,
        chunk_id: str,
        content: str,
        metadata: dict[str, Any],
        embedding_id: str | None,
    ) -> tuple[KnowledgeBaseChunk, str | None]:
        """
        Insert or replace a chunk in the shop namespace.

        Returns:
            (chunk, previous embedding id or None)
        """
        namespace = kb_namespace(shop_id)
        now = datetime.now(timezone.utc)
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(KnowledgeBaseChunk).where(
                        KnowledgeBaseChunk.namespace == namespace,
                        KnowledgeBaseChunk.chunk_id == chunk_id,
                    )
                )
                chunk = result.scalar_one_or_none()
                previous_embedding_id: str | None = None
                if chunk is None:
                    chunk = KnowledgeBaseChunk(
                        id=uuid4(),
                        shop_id=shop_id,
                        namespace=namespace,
                        chunk_id=chunk_id,
                        content=content,
                        metadata_json=metadata,
                        embedding_id=embedding_id,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(chunk)
                else:
                    previous_embedding_id = chunk.embedding_id
                    chunk.content = content
                    chunk.metadata_json = metadata
                    chunk.embedding_id = embedding_id
                    chunk.updated_at = now
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("kb_chunk_upsert_failed", namespace=namespace, chunk_id=chunk_id, error=str(exc))
            raise PersistenceError(f"Failed to store knowledge base chunk: {exc}") from exc
        return chunk, previous_embedding_id

    async def get(self, shop_id: str, chunk_id: str) -> KnowledgeBaseChunk | None:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(KnowledgeBaseChunk).where(
                        KnowledgeBaseChunk.namespace == kb_namespace(shop_id),
                        KnowledgeBaseChunk.chunk_id == chunk_id,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load knowledge base chunk: {exc}") from exc

    async def list_namespace(self, shop_id: str, *, limit: int = 100) -> Sequence[KnowledgeBaseChunk]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(KnowledgeBaseChunk)
                    .where(KnowledgeBaseChunk.namespace == kb_namespace(shop_id))
                    .order_by(KnowledgeBaseChunk.created_at.desc())
                    .limit(limit)
                )
                return result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to list knowledge base: {exc}") from exc

    async def delete(self, shop_id: str, chunk_id: str) -> bool:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    delete(KnowledgeBaseChunk).where(
                        KnowledgeBaseChunk.namespace == kb_namespace(shop_id),
                        KnowledgeBaseChunk.chunk_id == chunk_id,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to delete knowledge base chunk: {exc}") from exc
        return result.rowcount > 0
