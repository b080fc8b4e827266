from types import SimpleNamespace

import pytest

from inspection_engine.core.dependencies import (
    build_container,
    get_container,
    get_inspection_service,
    get_metrics,
    get_search_engine,
)
from inspection_engine.llm.mock import MockEmbeddingModel, MockVisionModel
from inspection_engine.queue.mock import RecordingOutboundQueue
from inspection_engine.services.storage import LocalFileStorage
from inspection_engine.vectorstore.mock import MockVectorStore


def _build_request(container) -> SimpleNamespace:
    return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(container=container)))


@pytest.mark.asyncio
async def test_build_container_uses_injected_collaborators(session_maker, tmp_path, fast_retry) -> None:
    vision = MockVisionModel()
    embedding = MockEmbeddingModel(dimension=8)
    vectorstore = MockVectorStore(8)
    outbound = RecordingOutboundQueue()
    storage = LocalFileStorage(upload_dir=str(tmp_path), public_base_url="http://test")

    container = build_container(
        session_maker=session_maker,
        vision_model=vision,
        embedding_model=embedding,
        vectorstore=vectorstore,
        outbound=outbound,
        storage=storage,
        retry_policy=fast_retry,
        sync_timeout_seconds=2.5,
    )

    assert container.vectorstore is vectorstore
    assert container.outbound is outbound
    assert container.storage is storage
    assert container.assessor.model is vision
    assert container.assessor.retry_policy is fast_retry
    assert container.inspections.vectorstore is vectorstore
    assert container.inspections.outbound is outbound
    assert container.inspections.broker is container.broker
    assert container.inspections.sync_timeout_seconds == 2.5
    assert container.search.vectorstore is vectorstore
    assert container.metrics.window is container.window
    assert container.metrics.alerts is container.alerts


@pytest.mark.asyncio
async def test_dependencies_resolve_from_app_state(container) -> None:
    request = _build_request(container)

    resolved = get_container(request)

    assert resolved is container
    assert get_inspection_service(resolved) is container.inspections
    assert get_search_engine(resolved) is container.search
    assert get_metrics(resolved) is container.metrics
