"""
Shared fixtures

Each test gets its own SQLite file (aiosqlite) with every table created, plus
a fully wired container backed by mock models, the in-memory vector store and
a recording outbound queue. No network, no Postgres.
"""

from pathlib import Path
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import inspection_engine.models  # noqa: F401  registers every table on Base.metadata
from inspection_engine.core.db import build_session_maker
from inspection_engine.core.dependencies import AppContainer, build_container
from inspection_engine.core.retry import RetryPolicy
from inspection_engine.llm.mock import MockEmbeddingModel, MockVisionModel
from inspection_engine.models.base import Base
from inspection_engine.queue.mock import RecordingOutboundQueue
from inspection_engine.services.storage import LocalFileStorage
from inspection_engine.vectorstore.mock import MockVectorStore

EMBEDDING_DIMENSION = 1024
VALID_VIN = "1HGBH41JXMN109186"


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay_seconds=0.0, backoff_factor=2.0)


@pytest.fixture
async def session_maker(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'inspections.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def vision_model() -> MockVisionModel:
    return MockVisionModel()


@pytest.fixture
def embedding_model() -> MockEmbeddingModel:
    return MockEmbeddingModel(dimension=EMBEDDING_DIMENSION)


@pytest.fixture
def vectorstore() -> MockVectorStore:
    return MockVectorStore(dimension=EMBEDDING_DIMENSION)


@pytest.fixture
def outbound() -> RecordingOutboundQueue:
    return RecordingOutboundQueue()


@pytest.fixture
async def container(
    session_maker,
    vision_model,
    embedding_model,
    vectorstore,
    outbound,
    fast_retry,
    tmp_path: Path,
) -> AsyncGenerator[AppContainer, None]:
    built = build_container(
        session_maker=session_maker,
        vision_model=vision_model,
        embedding_model=embedding_model,
        vectorstore=vectorstore,
        outbound=outbound,
        storage=LocalFileStorage(upload_dir=str(tmp_path / "uploads"), public_base_url="http://test"),
        retry_policy=fast_retry,
        sync_timeout_seconds=5.0,
    )
    yield built
    await built.inspections.shutdown(timeout=1.0)
