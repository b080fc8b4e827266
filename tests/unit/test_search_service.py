"""
Similarity search engine: shop scoping, ranking, knowledge base ingestion
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from inspection_engine.core.exceptions import (
    PersistenceError,
    RecordNotFoundError,
    UpstreamAIError,
    ValidationError,
)
from inspection_engine.llm.mock import MockEmbeddingModel
from inspection_engine.services.search_service import KnowledgeDocument
from inspection_engine.vectorstore.mock import MockVectorStore
from inspection_engine.vectorstore.protocol import VectorRecord, VectorSearchResult, rank_results

DIMENSION = 1024


async def _index(container, *, shop_id: str, reference_id: str, text: str, reference_type="inspection"):
    model: MockEmbeddingModel = container.embeddings.model
    await container.vectorstore.insert(
        VectorRecord(
            shop_id=shop_id,
            reference_type=reference_type,
            reference_id=reference_id,
            embedding=model.embed_text(text),
        )
    )


# ============================================================
# Ranking
# ============================================================


def test_rank_results_orders_by_score_then_recency() -> None:
    now = datetime.now(timezone.utc)
    older = VectorSearchResult("old", 0.9, "s", "inspection", now - timedelta(days=1))
    newer = VectorSearchResult("new", 0.9, "s", "inspection", now)
    best = VectorSearchResult("best", 0.99, "s", "inspection", now - timedelta(days=2))
    worst = VectorSearchResult("worst", 0.1, "s", "inspection", now)

    ranked = rank_results([worst, older, best, newer], limit=3)

    assert [r.reference_id for r in ranked] == ["best", "new", "old"]


# ============================================================
# search
# ============================================================


@pytest.mark.asyncio
async def test_search_is_scoped_to_shop(container) -> None:
    await _index(container, shop_id="shop-a", reference_id="a-1", text="front bumper dent")
    await _index(container, shop_id="shop-b", reference_id="b-1", text="front bumper dent")

    hits = await container.search.search("shop-a", "front bumper dent", "inspection", 10)

    assert [h.reference_id for h in hits] == ["a-1"]
    assert hits[0].score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_search_is_scoped_to_reference_type(container) -> None:
    await _index(container, shop_id="shop-a", reference_id="kb-1", text="dent repair", reference_type="knowledgeBase")
    await _index(container, shop_id="shop-a", reference_id="insp-1", text="dent repair")

    hits = await container.search.search("shop-a", "dent repair", "knowledgeBase")

    assert [h.reference_id for h in hits] == ["kb-1"]


@pytest.mark.asyncio
async def test_search_sorts_and_limits(container) -> None:
    await _index(container, shop_id="shop-a", reference_id="exact", text="cracked windshield glass")
    await _index(container, shop_id="shop-a", reference_id="partial", text="cracked tail light")
    await _index(container, shop_id="shop-a", reference_id="unrelated", text="flat tire")

    hits = await container.search.search("shop-a", "cracked windshield glass", "inspection", 2)

    assert [h.reference_id for h in hits] == ["exact", "partial"]
    assert hits[0].score >= hits[1].score


@pytest.mark.asyncio
async def test_search_with_non_positive_limit_or_blank_query_is_empty(container) -> None:
    await _index(container, shop_id="shop-a", reference_id="a-1", text="dent")

    assert await container.search.search("shop-a", "dent", "inspection", 0) == []
    assert await container.search.search("shop-a", "   ", "inspection", 5) == []


@pytest.mark.asyncio
async def test_search_failure_returns_empty_list(container) -> None:
    await _index(container, shop_id="shop-a", reference_id="a-1", text="dent")
    container.embeddings.model.fail_with = RuntimeError("embedding offline")

    hits = await container.search.search("shop-a", "dent", "inspection", 5)

    assert hits == []
    assert container.window.snapshot("search").failures == 1


@pytest.mark.asyncio
async def test_stray_rows_from_store_are_dropped(container) -> None:
    class LeakyStore:
        async def search(self, embedding, *, shop_id, reference_type, limit):
            now = datetime.now(timezone.utc)
            return [
                VectorSearchResult("mine", 0.8, shop_id, reference_type, now),
                VectorSearchResult("theirs", 0.9, "other-shop", reference_type, now),
            ]

    container.search.vectorstore = LeakyStore()

    hits = await container.search.search("shop-a", "dent", "inspection", 5)

    assert [h.reference_id for h in hits] == ["mine"]


# ============================================================
# Knowledge base
# ============================================================


@pytest.mark.asyncio
async def test_ingest_then_search_knowledge_base(container) -> None:
    result = await container.search.ingest_knowledge_base(
        "shop-a",
        [
            KnowledgeDocument("bumper", "How to repair a dented plastic bumper", {"source": "manual"}),
            KnowledgeDocument("paint", "Matching metallic paint on door panels", {}),
        ],
    )

    assert result.namespace == "shop-a-kb"
    assert result.ingested == 2
    assert result.replaced == 0
    assert result.chunk_ids == ["bumper", "paint"]

    hits = await container.search.search("shop-a", "dented plastic bumper", "knowledgeBase", 1)
    assert [h.reference_id for h in hits] == ["bumper"]

    chunks = await container.search.list_knowledge_chunks("shop-a")
    assert {c.chunk_id for c in chunks} == {"bumper", "paint"}
    assert all(c.namespace == "shop-a-kb" for c in chunks)


@pytest.mark.asyncio
async def test_reingest_replaces_instead_of_duplicating(container) -> None:
    engine = container.search
    await engine.ingest_knowledge_base("shop-a", [KnowledgeDocument("bumper", "old text about bumpers", {})])

    result = await engine.ingest_knowledge_base(
        "shop-a", [KnowledgeDocument("bumper", "new text about bumpers", {"rev": 2})]
    )

    assert result.replaced == 1
    assert len(container.vectorstore) == 1
    [chunk] = await engine.list_knowledge_chunks("shop-a")
    assert chunk.content == "new text about bumpers"
    assert chunk.metadata_json == {"rev": 2}


class RoundTripVectorStore(MockVectorStore):
    """Yields to the loop on every call, like a real database round trip."""

    async def insert(self, record: VectorRecord) -> str:
        await asyncio.sleep(0)
        return await super().insert(record)

    async def delete_by_reference(self, **kwargs) -> int:
        await asyncio.sleep(0)
        return await super().delete_by_reference(**kwargs)


@pytest.mark.asyncio
async def test_concurrent_reingest_keeps_one_vector_per_chunk(container) -> None:
    store = RoundTripVectorStore(dimension=DIMENSION)
    container.search.vectorstore = store
    engine = container.search

    await asyncio.gather(
        engine.ingest_knowledge_base("shop-a", [KnowledgeDocument("c1", "bumper repair steps", {})]),
        engine.ingest_knowledge_base("shop-a", [KnowledgeDocument("c1", "bumper repair steps", {})]),
    )

    assert len(store) == 1
    hits = await engine.search("shop-a", "bumper repair steps", "knowledgeBase", 5)
    assert [h.reference_id for h in hits] == ["c1"]
    [chunk] = await engine.list_knowledge_chunks("shop-a")
    [record] = store._records.values()
    assert chunk.embedding_id == record.id


@pytest.mark.asyncio
async def test_failed_chunk_upsert_keeps_previous_vector(container) -> None:
    engine = container.search
    await engine.ingest_knowledge_base("shop-a", [KnowledgeDocument("c1", "old bumper text", {})])
    [before] = await engine.list_knowledge_chunks("shop-a")
    engine.kb_repository.upsert = AsyncMock(side_effect=PersistenceError("database unavailable"))

    with pytest.raises(PersistenceError):
        await engine.ingest_knowledge_base("shop-a", [KnowledgeDocument("c1", "new bumper text", {})])

    assert len(container.vectorstore) == 1
    [record] = container.vectorstore._records.values()
    assert record.id == before.embedding_id
    [after] = await engine.list_knowledge_chunks("shop-a")
    assert after.content == "old bumper text"


@pytest.mark.asyncio
async def test_ingest_failure_writes_nothing(container) -> None:
    container.embeddings.model.fail_with = RuntimeError("embedding offline")

    with pytest.raises(UpstreamAIError):
        await container.search.ingest_knowledge_base("shop-a", [KnowledgeDocument("c", "text", {})])

    assert len(container.vectorstore) == 0
    assert await container.search.list_knowledge_chunks("shop-a") == []


@pytest.mark.asyncio
async def test_duplicate_chunk_ids_are_rejected(container) -> None:
    with pytest.raises(ValidationError):
        await container.search.ingest_knowledge_base(
            "shop-a", [KnowledgeDocument("c", "one", {}), KnowledgeDocument("c", "two", {})]
        )


@pytest.mark.asyncio
async def test_knowledge_namespaces_are_per_shop(container) -> None:
    await container.search.ingest_knowledge_base("shop-a", [KnowledgeDocument("c", "paint guide", {})])
    await container.search.ingest_knowledge_base("shop-b", [KnowledgeDocument("c", "paint guide", {})])

    assert len(container.vectorstore) == 2
    hits = await container.search.search("shop-b", "paint guide", "knowledgeBase")
    assert [h.reference_id for h in hits] == ["c"]


@pytest.mark.asyncio
async def test_delete_knowledge_chunk(container) -> None:
    await container.search.ingest_knowledge_base("shop-a", [KnowledgeDocument("c", "paint guide", {})])

    await container.search.delete_knowledge_chunk("shop-a", "c")

    assert len(container.vectorstore) == 0
    with pytest.raises(RecordNotFoundError):
        await container.search.delete_knowledge_chunk("shop-a", "c")


# ============================================================
# Similar inspections
# ============================================================


@pytest.mark.asyncio
async def test_similar_inspections_unknown_id(container) -> None:
    with pytest.raises(RecordNotFoundError):
        await container.search.find_similar_inspections("shop-a", uuid4())
