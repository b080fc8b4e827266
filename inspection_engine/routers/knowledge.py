"""
Knowledge Base & Similarity Search API Routes

Knowledge base chunks live in the shop namespace ``{shopId}-kb``.
"""

from fastapi import APIRouter, Depends, Query, status

from inspection_engine.api.swagger_responses import combined_responses
from inspection_engine.core.dependencies import get_search_engine
from inspection_engine.schemas.search import (
    KnowledgeChunkView,
    KnowledgeIngestRequest,
    KnowledgeIngestResponse,
    SearchHitView,
    SearchRequest,
)
from inspection_engine.services.search_service import KnowledgeDocument, SimilaritySearchEngine

router = APIRouter(prefix="/knowledge", tags=["knowledge-base"])
search_router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "/{shop_id}",
    response_model=KnowledgeIngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest knowledge base chunks",
    responses=combined_responses(
        status_code=201,
        data_example={
            "namespace": "shop-1-kb",
            "ingested": 2,
            "replaced": 0,
            "chunkIds": ["bumper-repair", "paint-match"],
        },
        include_errors=[400, 500, 503],
    ),
)
async def ingest_knowledge(
    shop_id: str,
    payload: KnowledgeIngestRequest,
    engine: SimilaritySearchEngine = Depends(get_search_engine),
) -> KnowledgeIngestResponse:
    """
    Embed and store chunks. Re-sending a ``chunkId`` replaces the chunk and its
    vector. If embedding fails nothing is written.
    """
    result = await engine.ingest_knowledge_base(
        shop_id,
        [
            KnowledgeDocument(chunk_id=doc.chunk_id, content=doc.content, metadata=doc.metadata)
            for doc in payload.documents
        ],
    )
    return KnowledgeIngestResponse(
        namespace=result.namespace,
        ingested=result.ingested,
        replaced=result.replaced,
        chunk_ids=result.chunk_ids,
    )


@router.get(
    "/{shop_id}",
    response_model=list[KnowledgeChunkView],
    summary="List knowledge base chunks",
)
async def list_knowledge(
    shop_id: str,
    limit: int = Query(100, ge=1, le=500),
    engine: SimilaritySearchEngine = Depends(get_search_engine),
) -> list[KnowledgeChunkView]:
    chunks = await engine.list_knowledge_chunks(shop_id, limit=limit)
    return [
        KnowledgeChunkView(
            chunk_id=chunk.chunk_id,
            namespace=chunk.namespace,
            content=chunk.content,
            metadata=chunk.metadata_json or {},
            embedding_id=chunk.embedding_id,
            created_at=chunk.created_at,
            updated_at=chunk.updated_at,
        )
        for chunk in chunks
    ]


@router.delete(
    "/{shop_id}/{chunk_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a knowledge base chunk",
    responses=combined_responses(status_code=204, include_errors=[404]),
)
async def delete_knowledge(
    shop_id: str,
    chunk_id: str,
    engine: SimilaritySearchEngine = Depends(get_search_engine),
) -> None:
    await engine.delete_knowledge_chunk(shop_id, chunk_id)


@search_router.post(
    "",
    response_model=list[SearchHitView],
    summary="Similarity search within one shop",
    responses=combined_responses(
        data_example=[{"referenceId": "4b8e...", "score": 0.93}],
        include_errors=[400],
    ),
)
async def search(
    payload: SearchRequest,
    engine: SimilaritySearchEngine = Depends(get_search_engine),
) -> list[SearchHitView]:
    """
    Search is best-effort: backend failures return an empty list.
    """
    hits = await engine.search(payload.shop_id, payload.query, payload.reference_type, payload.limit)
    return [SearchHitView(reference_id=h.reference_id, score=h.score) for h in hits]
