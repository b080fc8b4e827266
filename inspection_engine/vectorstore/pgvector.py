"""
PGVector VectorStore implementation.

One table holds every vector, scoped by shop_id and reference_type. Search
uses the cosine distance operator ``<=>``; score = 1 - distance.
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime
from typing import Any, Sequence

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Integer, String, bindparam, text as sa_text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from inspection_engine.core.config import settings
from inspection_engine.core.db import get_async_engine
from inspection_engine.core.exceptions import VectorIndexError, VectorSearchError
from inspection_engine.core.logging import get_logger
from inspection_engine.vectorstore.protocol import (
    ReferenceType,
    VectorRecord,
    VectorSearchResult,
)

logger = get_logger(__name__)


class PGVectorStore:
    """PostgreSQL + pgvector-backed VectorStore."""

    def __init__(self, engine: AsyncEngine | None = None, table_name: str | None = None) -> None:
        self.engine = engine or get_async_engine()
        self.dimension = settings.vectorstore_dimension
        self.table_name = self._safe_table_name(table_name or settings.pgvector_table_embeddings)
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def insert(self, record: VectorRecord) -> str:
        await self._ensure_initialized()

        stmt = sa_text(
            f"""
            INSERT INTO {self.table_name}
                (id, shop_id, reference_type, reference_id, embedding, metadata, created_at)
            VALUES
                (:id, :shop_id, :reference_type, :reference_id, :embedding, :metadata, :created_at)
            """
        ).bindparams(
            bindparam("id", type_=String()),
            bindparam("shop_id", type_=String()),
            bindparam("reference_type", type_=String()),
            bindparam("reference_id", type_=String()),
            bindparam("embedding", type_=Vector(self.dimension)),
            bindparam("metadata", type_=JSONB),
            bindparam("created_at", type_=DateTime(timezone=True)),
        )
        params: dict[str, Any] = {
            "id": record.id,
            "shop_id": record.shop_id,
            "reference_type": record.reference_type,
            "reference_id": record.reference_id,
            "embedding": record.embedding,
            "metadata": self._normalize_metadata(record.metadata),
            "created_at": record.created_at,
        }

        try:
            async with self.engine.begin() as conn:
                await conn.execute(stmt, params)
        except SQLAlchemyError as exc:
            logger.error("pgvector_insert_failed", vector_id=record.id, error=str(exc))
            raise VectorIndexError(f"Failed to index vector: {exc}") from exc

        logger.info(
            "pgvector_indexed",
            vector_id=record.id,
            shop_id=record.shop_id,
            reference_type=record.reference_type,
        )
        return record.id

    async def search(
        self,
        embedding: Sequence[float],
        *,
        shop_id: str,
        reference_type: ReferenceType,
        limit: int,
    ) -> list[VectorSearchResult]:
        await self._ensure_initialized()

        stmt = sa_text(
            f"""
            SELECT
                reference_id,
                shop_id,
                reference_type,
                metadata,
                created_at,
                1.0 - (embedding <=> :embedding) AS score
            FROM {self.table_name}
            WHERE shop_id = :shop_id AND reference_type = :reference_type
            ORDER BY embedding <=> :embedding, created_at DESC
            LIMIT :limit
            """
        ).bindparams(
            bindparam("embedding", type_=Vector(self.dimension)),
            bindparam("shop_id", type_=String()),
            bindparam("reference_type", type_=String()),
            bindparam("limit", type_=Integer()),
        )
        params = {
            "embedding": list(embedding),
            "shop_id": shop_id,
            "reference_type": reference_type,
            "limit": limit,
        }

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt, params)
                rows = result.fetchall()
        except SQLAlchemyError as exc:
            logger.error("pgvector_search_failed", shop_id=shop_id, error=str(exc))
            raise VectorSearchError(f"Failed to search: {exc}") from exc

        return [
            VectorSearchResult(
                reference_id=row.reference_id,
                score=float(row.score) if row.score is not None else 0.0,
                shop_id=row.shop_id,
                reference_type=row.reference_type,
                created_at=row.created_at,
                metadata=row.metadata,
            )
            for row in rows
        ]

    async def delete_by_reference(
        self,
        *,
        shop_id: str,
        reference_type: ReferenceType,
        reference_id: str,
        keep_id: str | None = None,
    ) -> int:
        await self._ensure_initialized()
        sql = (
            f"DELETE FROM {self.table_name} "
            "WHERE shop_id = :shop_id AND reference_type = :reference_type "
            "AND reference_id = :reference_id"
        )
        params = {"shop_id": shop_id, "reference_type": reference_type, "reference_id": reference_id}
        if keep_id is not None:
            sql += " AND id <> :keep_id"
            params["keep_id"] = keep_id
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(sa_text(sql), params)
        except SQLAlchemyError as exc:
            raise VectorIndexError(f"Failed to delete vectors: {exc}") from exc
        return result.rowcount or 0

    # Internal helpers -------------------------------------------------

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            await self._create_extension_and_table()
            self._initialized = True

    async def _create_extension_and_table(self) -> None:
        create_table_sql = f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                id TEXT PRIMARY KEY,
                shop_id TEXT NOT NULL,
                reference_type TEXT NOT NULL,
                reference_id TEXT NOT NULL,
                embedding VECTOR({self.dimension}) NOT NULL,
                metadata JSONB DEFAULT '{{}}'::jsonb,
                created_at TIMESTAMPTZ DEFAULT NOW()
            )
        """
        scope_idx = (
            f"CREATE INDEX IF NOT EXISTS idx_{self.table_name}_scope "
            f"ON {self.table_name} (shop_id, reference_type)"
        )
        ref_idx = (
            f"CREATE INDEX IF NOT EXISTS idx_{self.table_name}_reference "
            f"ON {self.table_name} (reference_id)"
        )

        async with self.engine.begin() as conn:
            await conn.execute(sa_text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.execute(sa_text(create_table_sql))
            await conn.execute(sa_text(scope_idx))
            await conn.execute(sa_text(ref_idx))
        logger.info("pgvector_table_ready", table=self.table_name, dimension=self.dimension)

    @staticmethod
    def _safe_table_name(table_name: str) -> str:
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", table_name):
            raise ValueError(f"Unsafe table name: {table_name}")
        return table_name

    @staticmethod
    def _normalize_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
        """Convert metadata to JSON-serializable values (datetimes -> isoformat)."""

        return {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in metadata.items()
        }
