"""
Similarity Search Engine

Shop-scoped semantic search over inspection summaries and knowledge base
chunks. Search is best-effort: any embedding or vector store failure is logged,
counted as ``search.error`` and answered with an empty list.
"""

from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass
from typing import Any, Sequence
from uuid import UUID

from inspection_engine.core.exceptions import RecordNotFoundError, ValidationError
from inspection_engine.core.logging import get_logger, measure_latency
from inspection_engine.llm.embedder import EmbeddingService
from inspection_engine.models.knowledge_base import KnowledgeBaseChunk, kb_namespace
from inspection_engine.monitoring.metrics import MetricsRecorder
from inspection_engine.repositories.inspection_repository import InspectionRepository
from inspection_engine.repositories.knowledge_base_repository import KnowledgeBaseRepository
from inspection_engine.vectorstore.protocol import (
    ReferenceType,
    VectorRecord,
    VectorStoreProtocol,
    rank_results,
)

logger = get_logger(__name__)

KNOWLEDGE_BASE: ReferenceType = "knowledgeBase"
INSPECTION: ReferenceType = "inspection"


@dataclass(frozen=True)
class SearchHit:
    reference_id: str
    score: float


@dataclass(frozen=True)
class KnowledgeDocument:
    chunk_id: str
    content: str
    metadata: dict[str, Any]


@dataclass(frozen=True)
class IngestResult:
    namespace: str
    ingested: int
    replaced: int
    chunk_ids: list[str]


class SimilaritySearchEngine:
    def __init__(
        self,
        *,
        embeddings: EmbeddingService,
        vectorstore: VectorStoreProtocol,
        kb_repository: KnowledgeBaseRepository,
        inspection_repository: InspectionRepository,
        metrics: MetricsRecorder,
    ) -> None:
        self.embeddings = embeddings
        self.vectorstore = vectorstore
        self.kb_repository = kb_repository
        self.inspection_repository = inspection_repository
        self.metrics = metrics
        self._chunk_locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @measure_latency("similarity_search")
    async def search(
        self,
        shop_id: str,
        query: str,
        reference_type: ReferenceType,
        limit: int = 5,
    ) -> list[SearchHit]:
        """
        Top ``limit`` references of ``reference_type`` in ``shop_id``.

        Never raises for backend failures; returns [] instead.
        """
        if limit <= 0 or not query.strip():
            return []
        try:
            vector = await self.embeddings.embed_one(query)
            return await self._search_vector(vector, shop_id, reference_type, limit)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "similarity_search_failed",
                shop_id=shop_id,
                reference_type=reference_type,
                error=str(exc),
            )
            self.metrics.track_metric(
                "search.error", 1, shop_id=shop_id, reference_type=reference_type, error=True
            )
            return []

    async def _search_vector(
        self,
        vector: Sequence[float],
        shop_id: str,
        reference_type: ReferenceType,
        limit: int,
        exclude: str | None = None,
    ) -> list[SearchHit]:
        fetch = limit + 1 if exclude is not None else limit
        results = await self.vectorstore.search(
            vector, shop_id=shop_id, reference_type=reference_type, limit=fetch
        )
        # the store already scopes by shop; a stray row is dropped, not returned
        scoped = [r for r in results if r.shop_id == shop_id and r.reference_type == reference_type]
        if len(scoped) < len(results):
            logger.warning(
                "search_scope_violation", shop_id=shop_id, dropped=len(results) - len(scoped)
            )
        scoped = [r for r in scoped if r.reference_id != exclude]

        hits = [SearchHit(reference_id=r.reference_id, score=r.score) for r in rank_results(scoped, limit)]
        self.metrics.track_metric(
            "search.success", 1, shop_id=shop_id, reference_type=reference_type, hits=len(hits)
        )
        logger.info(
            "similarity_search",
            shop_id=shop_id,
            reference_type=reference_type,
            limit=limit,
            hits=len(hits),
        )
        return hits

    async def ingest_knowledge_base(
        self, shop_id: str, docs: Sequence[KnowledgeDocument]
    ) -> IngestResult:
        """
        Embed every chunk first, then upsert chunks and replace their vectors.

        A failed embedding batch raises before anything is written.
        """
        namespace = kb_namespace(shop_id)
        documents = list(docs)
        chunk_ids = [doc.chunk_id for doc in documents]
        if len(set(chunk_ids)) != len(chunk_ids):
            raise ValidationError(
                "Duplicate chunkId in knowledge base batch",
                details={"field": "documents", "namespace": namespace},
            )
        if not documents:
            return IngestResult(namespace=namespace, ingested=0, replaced=0, chunk_ids=[])

        vectors = await self.embeddings.embed_batch([doc.content for doc in documents])

        replaced = 0
        for doc, vector in zip(documents, vectors):
            async with self._chunk_lock(shop_id, doc.chunk_id):
                if await self._replace_chunk(shop_id, namespace, doc, vector):
                    replaced += 1

        logger.info(
            "knowledge_base_ingested",
            namespace=namespace,
            ingested=len(documents),
            replaced=replaced,
        )
        return IngestResult(
            namespace=namespace, ingested=len(documents), replaced=replaced, chunk_ids=chunk_ids
        )

    def _chunk_lock(self, shop_id: str, chunk_id: str) -> asyncio.Lock:
        key = (shop_id, chunk_id)
        lock = self._chunk_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._chunk_locks[key] = lock
        return lock

    async def _replace_chunk(
        self, shop_id: str, namespace: str, doc: KnowledgeDocument, vector: list[float]
    ) -> bool:
        """
        Insert the new vector, point the chunk at it, then drop older vectors.

        Caller holds the chunk lock. If the chunk upsert fails the new vector
        is removed again, so the stored chunk and its vector stay paired.
        """
        embedding_id = await self.vectorstore.insert(
            VectorRecord(
                shop_id=shop_id,
                reference_type=KNOWLEDGE_BASE,
                reference_id=doc.chunk_id,
                embedding=vector,
                metadata={**doc.metadata, "namespace": namespace},
            )
        )
        try:
            _, previous = await self.kb_repository.upsert(
                shop_id=shop_id,
                chunk_id=doc.chunk_id,
                content=doc.content,
                metadata=doc.metadata,
                embedding_id=embedding_id,
            )
        except Exception:
            existing = await self.kb_repository.get(shop_id, doc.chunk_id)
            await self.vectorstore.delete_by_reference(
                shop_id=shop_id,
                reference_type=KNOWLEDGE_BASE,
                reference_id=doc.chunk_id,
                keep_id=existing.embedding_id if existing is not None else None,
            )
            logger.error("knowledge_chunk_upsert_failed", namespace=namespace, chunk_id=doc.chunk_id)
            raise

        removed = await self.vectorstore.delete_by_reference(
            shop_id=shop_id,
            reference_type=KNOWLEDGE_BASE,
            reference_id=doc.chunk_id,
            keep_id=embedding_id,
        )
        return bool(removed or previous)

    async def delete_knowledge_chunk(self, shop_id: str, chunk_id: str) -> None:
        async with self._chunk_lock(shop_id, chunk_id):
            deleted = await self.kb_repository.delete(shop_id, chunk_id)
            await self.vectorstore.delete_by_reference(
                shop_id=shop_id, reference_type=KNOWLEDGE_BASE, reference_id=chunk_id
            )
        if not deleted:
            raise RecordNotFoundError(
                f"Knowledge base chunk {chunk_id} not found in {kb_namespace(shop_id)}"
            )
        logger.info("knowledge_chunk_deleted", namespace=kb_namespace(shop_id), chunk_id=chunk_id)

    async def list_knowledge_chunks(self, shop_id: str, *, limit: int = 100) -> Sequence[KnowledgeBaseChunk]:
        return await self.kb_repository.list_namespace(shop_id, limit=limit)

    async def find_similar_inspections(
        self, shop_id: str, inspection_id: UUID, limit: int = 5
    ) -> list[SearchHit]:
        """Inspections of the same shop whose damage summary resembles this one's."""
        inspection = await self.inspection_repository.get_or_raise(inspection_id)
        if inspection.shop_id != shop_id:
            raise RecordNotFoundError(f"Inspection {inspection_id} not found")
        if not inspection.summary_text:
            return []

        try:
            vector = await self.embeddings.embed_one(inspection.summary_text)
            return await self._search_vector(
                vector, shop_id, INSPECTION, limit, exclude=str(inspection_id)
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("similar_inspections_failed", inspection_id=str(inspection_id), error=str(exc))
            self.metrics.track_metric("search.error", 1, shop_id=shop_id, error=True)
            return []
