"""
VectorStore Protocol (Interface)
Defines contract for all VectorStore implementations
"""

from datetime import datetime, timezone
from typing import Any, Literal, NamedTuple, Protocol, Sequence
from uuid import uuid4

from pydantic import Field

from inspection_engine.schemas.base import BaseSchema

ReferenceType = Literal["inspection", "knowledgeBase"]


class VectorRecord(BaseSchema):
    """
    Stored embedding. Immutable once inserted: superseding content means a
    new record plus deletion of the old one.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    shop_id: str
    reference_type: ReferenceType
    reference_id: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class VectorSearchResult(NamedTuple):
    """
    Single vector search result

    Attributes:
        reference_id: ID of the inspection or knowledge base chunk
        score: Cosine similarity (higher is more similar)
        shop_id: Owning shop
        reference_type: inspection | knowledgeBase
        created_at: Vector creation time (tie breaker)
        metadata: Optional metadata dict
    """

    reference_id: str
    score: float
    shop_id: str
    reference_type: str
    created_at: datetime
    metadata: dict | None = None


class VectorStoreProtocol(Protocol):
    """
    Protocol for VectorStore implementations

    Every query is scoped by shop and reference type; implementations must
    never return a vector owned by another shop.
    """

    async def insert(self, record: VectorRecord) -> str:
        """
        Store one vector

        Returns:
            Vector ID

        Raises:
            VectorIndexError: If indexing fails
        """
        ...

    async def search(
        self,
        embedding: Sequence[float],
        *,
        shop_id: str,
        reference_type: ReferenceType,
        limit: int,
    ) -> list[VectorSearchResult]:
        """
        Nearest neighbours by cosine similarity

        Returns:
            At most ``limit`` results, score descending, newest first on ties

        Raises:
            VectorSearchError: If search fails
        """
        ...

    async def delete_by_reference(
        self,
        *,
        shop_id: str,
        reference_type: ReferenceType,
        reference_id: str,
        keep_id: str | None = None,
    ) -> int:
        """
        Remove every vector for one reference, except ``keep_id`` when given

        Returns:
            Number of vectors deleted
        """
        ...


def rank_results(results: list[VectorSearchResult], limit: int) -> list[VectorSearchResult]:
    """Score descending, ties broken by most recent creation."""
    ordered = sorted(
        results,
        key=lambda r: (-r.score, -r.created_at.timestamp()),
    )
    return ordered[:limit]
