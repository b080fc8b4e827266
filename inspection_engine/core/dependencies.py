"""
Application container and FastAPI dependencies

One container per app holds the shared runtime objects: the metrics window,
alert dispatcher, outbound queue, update broker, model clients and services.
It lives on ``app.state.container``; routers reach it through the Depends
helpers below. Tests build their own container with mocks and SQLite.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inspection_engine.core.config import settings
from inspection_engine.core.db import get_session_maker
from inspection_engine.core.retry import RetryPolicy
from inspection_engine.llm.embedder import EmbeddingService
from inspection_engine.llm.factory import get_embedding_model_instance, get_vision_model_instance
from inspection_engine.llm.protocol import EmbeddingModelProtocol, VisionModelProtocol
from inspection_engine.monitoring.alerts import AlertDispatcher
from inspection_engine.monitoring.metrics import MetricsRecorder
from inspection_engine.monitoring.window import MetricWindowStore
from inspection_engine.queue.inmemory import InMemoryOutboundQueue
from inspection_engine.queue.protocol import OutboundQueueProtocol
from inspection_engine.repositories.inspection_repository import InspectionRepository
from inspection_engine.repositories.knowledge_base_repository import KnowledgeBaseRepository
from inspection_engine.services.assessment_service import VisionAssessmentClient
from inspection_engine.services.inspection_service import InspectionService
from inspection_engine.services.progress import InspectionUpdateBroker
from inspection_engine.services.search_service import SimilaritySearchEngine
from inspection_engine.services.storage import FileStorageProtocol, LocalFileStorage
from inspection_engine.vectorstore.factory import get_vectorstore_instance
from inspection_engine.vectorstore.protocol import VectorStoreProtocol


@dataclass
class AppContainer:
    window: MetricWindowStore
    alerts: AlertDispatcher
    metrics: MetricsRecorder
    outbound: OutboundQueueProtocol
    broker: InspectionUpdateBroker
    vectorstore: VectorStoreProtocol
    embeddings: EmbeddingService
    assessor: VisionAssessmentClient
    inspections: InspectionService
    search: SimilaritySearchEngine
    storage: FileStorageProtocol


def build_container(
    *,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    vision_model: VisionModelProtocol | None = None,
    embedding_model: EmbeddingModelProtocol | None = None,
    vectorstore: VectorStoreProtocol | None = None,
    outbound: OutboundQueueProtocol | None = None,
    storage: FileStorageProtocol | None = None,
    window: MetricWindowStore | None = None,
    retry_policy: RetryPolicy | None = None,
    sync_timeout_seconds: float | None = None,
) -> AppContainer:
    """Wire the runtime graph; every collaborator can be overridden."""
    if session_maker is None:
        session_maker = get_session_maker()
    if retry_policy is None:
        retry_policy = RetryPolicy.from_settings()

    if window is None:
        window = MetricWindowStore(
            window_seconds=settings.metrics_window_seconds,
            min_events=settings.metrics_min_events,
        )
    if outbound is None:
        outbound = InMemoryOutboundQueue(
            maxsize=settings.outbound_queue_size,
            timeout=settings.outbound_timeout_seconds,
        )
    alerts = AlertDispatcher(outbound=outbound)
    metrics = MetricsRecorder(window=window, alerts=alerts)
    broker = InspectionUpdateBroker()
    if vectorstore is None:
        vectorstore = get_vectorstore_instance()
    if embedding_model is None:
        embedding_model = get_embedding_model_instance()
    if vision_model is None:
        vision_model = get_vision_model_instance()
    if storage is None:
        storage = LocalFileStorage()

    embeddings = EmbeddingService(
        model=embedding_model,
        metrics=metrics,
        alerts=alerts,
        retry_policy=retry_policy,
    )
    assessor = VisionAssessmentClient(
        model=vision_model,
        metrics=metrics,
        alerts=alerts,
        retry_policy=retry_policy,
    )
    inspection_repository = InspectionRepository(session_maker)

    inspections = InspectionService(
        repository=inspection_repository,
        assessor=assessor,
        embeddings=embeddings,
        vectorstore=vectorstore,
        metrics=metrics,
        outbound=outbound,
        broker=broker,
        sync_timeout_seconds=sync_timeout_seconds,
    )
    search = SimilaritySearchEngine(
        embeddings=embeddings,
        vectorstore=vectorstore,
        kb_repository=KnowledgeBaseRepository(session_maker),
        inspection_repository=inspection_repository,
        metrics=metrics,
    )
    return AppContainer(
        window=window,
        alerts=alerts,
        metrics=metrics,
        outbound=outbound,
        broker=broker,
        vectorstore=vectorstore,
        embeddings=embeddings,
        assessor=assessor,
        inspections=inspections,
        search=search,
        storage=storage,
    )


def get_container(request: Request) -> AppContainer:
    return request.app.state.container


def get_inspection_service(container: AppContainer = Depends(get_container)) -> InspectionService:
    return container.inspections


def get_search_engine(container: AppContainer = Depends(get_container)) -> SimilaritySearchEngine:
    return container.search


def get_metrics(container: AppContainer = Depends(get_container)) -> MetricsRecorder:
    return container.metrics
