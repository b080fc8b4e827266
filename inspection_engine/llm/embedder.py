"""
Embedding Service

Single entry point for text embeddings. A batch either yields exactly one
1024-dim vector per input, in input order, or fails as a whole: callers never
see (or persist) a partial batch.

Backends:
- OllamaEmbeddingModel (``/api/embed``)
- SentenceTransformerEmbeddingModel (local model, threadpool + semaphore)
- MockEmbeddingModel
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Optional, Sequence

from sentence_transformers import SentenceTransformer

from inspection_engine.core.config import settings
from inspection_engine.core.exceptions import (
    EmbeddingDimensionError,
    ModelCallError,
    UpstreamAIError,
)
from inspection_engine.core.logging import get_logger, log_model_call
from inspection_engine.core.retry import RetryPolicy, retry_async
from inspection_engine.llm.protocol import EmbeddingModelProtocol
from inspection_engine.monitoring.alerts import AlertDispatcher
from inspection_engine.monitoring.metrics import MetricsRecorder

logger = get_logger(__name__)


class SentenceTransformerEmbeddingModel:
    """
    Local sentence-transformers backend.

    - encode() runs in the default threadpool so the event loop never blocks
    - a semaphore caps concurrent encodes
    - warmup() loads the model at startup; first use loads lazily otherwise
    """

    def __init__(
        self,
        *,
        model_name: str | None = None,
        device: str | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.model_name = model_name or settings.local_embedding_model_name
        self.device = device or settings.embedding_device
        self.max_concurrency = max_concurrency or settings.embedding_max_concurrency
        self.model: Optional[SentenceTransformer] = None
        self._load_lock = asyncio.Lock()
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def warmup(self) -> None:
        if self.model is not None:
            return
        async with self._load_lock:
            if self.model is not None:
                return
            t0 = time.perf_counter()
            logger.info("embedding_model_loading", model_name=self.model_name, device=self.device)
            loop = asyncio.get_running_loop()
            self.model = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: SentenceTransformer(self.model_name, device=self.device),
                ),
                timeout=300,  # model download
            )
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
            logger.info(
                "embedding_model_loaded",
                model_name=self.model_name,
                elapsed_seconds=f"{time.perf_counter() - t0:.2f}",
            )

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if self.model is None:
            logger.warning("embedding_model_lazy_initialization")
            try:
                await self.warmup()
            except Exception as exc:  # noqa: BLE001
                raise ModelCallError(f"Failed to load embedding model {self.model_name}: {exc}") from exc

        loop = asyncio.get_running_loop()
        model = self.model
        batch = list(texts)
        assert self._semaphore is not None
        async with self._semaphore:
            try:
                array = await loop.run_in_executor(
                    None,
                    lambda: model.encode(batch, normalize_embeddings=True),
                )
            except Exception as exc:  # noqa: BLE001
                raise ModelCallError(f"Local embedding failed: {exc}") from exc
        return array.tolist()


class EmbeddingService:
    """Batch embeddings with dimension checks, retries and latency monitoring."""

    def __init__(
        self,
        *,
        model: EmbeddingModelProtocol,
        metrics: MetricsRecorder,
        alerts: AlertDispatcher,
        dimension: int | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.model = model
        self.metrics = metrics
        self.alerts = alerts
        self.dimension = dimension or settings.vectorstore_dimension
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    async def warmup(self) -> None:
        warmup = getattr(self.model, "warmup", None)
        if warmup is not None:
            await warmup()

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed ``texts`` in order.

        Raises:
            UpstreamAIError: after retries are exhausted; no vectors are returned
        """
        batch = list(texts)
        if not batch:
            return []

        try:
            return await retry_async(
                lambda attempt: self._embed_once(batch, attempt),
                policy=self.retry_policy,
                retry_on=(UpstreamAIError,),
                name="embedding",
            )
        except UpstreamAIError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise UpstreamAIError(f"Embedding failed: {exc}") from exc

    async def embed_one(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def _embed_once(self, batch: list[str], attempt: int) -> list[list[float]]:
        start = time.perf_counter()
        error: str | None = None
        try:
            vectors = await self.model.embed(batch)
            self._check_batch(batch, vectors)
            return [[float(v) for v in vector] for vector in vectors]
        except UpstreamAIError as exc:
            error = str(exc)
            raise
        except Exception as exc:  # noqa: BLE001
            error = str(exc)
            raise ModelCallError(f"Embedding backend error: {exc}") from exc
        finally:
            latency_ms = (time.perf_counter() - start) * 1000
            log_model_call(
                operation="embedding",
                model=self.model.model_name,
                latency_ms=latency_ms,
                attempt=attempt,
                error=error,
            )
            self.metrics.track_metric(
                "ai.embedding_latency", latency_ms, model=self.model.model_name, batch_size=len(batch)
            )
            self.alerts.check_embedding_latency(latency_ms, model=self.model.model_name)
            if error is None:
                self.metrics.track_metric("ai.embedding_success", 1, model=self.model.model_name)
            else:
                self.metrics.track_metric(
                    "ai.embedding_error", 1, model=self.model.model_name, error=True
                )

    def _check_batch(self, batch: list[str], vectors: list[list[float]]) -> None:
        if not isinstance(vectors, list) or len(vectors) != len(batch):
            raise EmbeddingDimensionError(
                "Embedding count does not match input count",
                details={"expected": len(batch), "received": len(vectors) if isinstance(vectors, list) else None},
            )
        for index, vector in enumerate(vectors):
            if len(vector) != self.dimension:
                raise EmbeddingDimensionError(
                    f"Embedding {index} has dimension {len(vector)}, expected {self.dimension}",
                    details={"index": index, "dimension": len(vector)},
                )
            if not all(math.isfinite(v) for v in vector):
                raise EmbeddingDimensionError(
                    f"Embedding {index} contains non-finite values",
                    details={"index": index},
                )
