"""
Mock VectorStore Implementation
In-memory exact cosine search for development/testing.
"""

import asyncio
import math
from typing import Sequence

from inspection_engine.core.exceptions import VectorIndexError, VectorSearchError
from inspection_engine.core.logging import get_logger
from inspection_engine.vectorstore.protocol import (
    ReferenceType,
    VectorRecord,
    VectorSearchResult,
    rank_results,
)

logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class MockVectorStore:
    """
    VectorStore backed by a dict of records.
    """

    def __init__(self, dimension: int | None = None) -> None:
        self.dimension = dimension
        self._records: dict[str, VectorRecord] = {}
        self._lock = asyncio.Lock()
        logger.info("mock_vectorstore_initialized", dimension=dimension)

    async def insert(self, record: VectorRecord) -> str:
        if self.dimension is not None and len(record.embedding) != self.dimension:
            raise VectorIndexError(
                f"Vector dimension {len(record.embedding)} != {self.dimension}"
            )
        async with self._lock:
            self._records[record.id] = record
        logger.debug(
            "vector_indexed",
            vector_id=record.id,
            shop_id=record.shop_id,
            reference_type=record.reference_type,
            reference_id=record.reference_id,
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
        try:
            async with self._lock:
                candidates = [
                    r
                    for r in self._records.values()
                    if r.shop_id == shop_id and r.reference_type == reference_type
                ]
            results = [
                VectorSearchResult(
                    reference_id=r.reference_id,
                    score=float(cosine_similarity(embedding, r.embedding)),
                    shop_id=r.shop_id,
                    reference_type=r.reference_type,
                    created_at=r.created_at,
                    metadata=r.metadata,
                )
                for r in candidates
            ]
        except Exception as e:
            logger.error("search_error", error=str(e), shop_id=shop_id)
            raise VectorSearchError(f"Failed to search: {e}")

        return rank_results(results, limit)

    async def delete_by_reference(
        self,
        *,
        shop_id: str,
        reference_type: ReferenceType,
        reference_id: str,
        keep_id: str | None = None,
    ) -> int:
        async with self._lock:
            doomed = [
                vid
                for vid, r in self._records.items()
                if r.shop_id == shop_id
                and r.reference_type == reference_type
                and r.reference_id == reference_id
                and vid != keep_id
            ]
            for vid in doomed:
                del self._records[vid]
        if doomed:
            logger.debug("vectors_deleted", reference_id=reference_id, count=len(doomed))
        return len(doomed)

    def __len__(self) -> int:
        return len(self._records)
