"""
Mock model clients
Deterministic vision and embedding backends for development and testing
"""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from typing import Any, Sequence

from inspection_engine.core.config import settings
from inspection_engine.core.exceptions import ModelCallError
from inspection_engine.core.logging import get_logger

logger = get_logger(__name__)

_TOKEN = re.compile(r"[a-z0-9]+")


def default_assessment(image_count: int) -> dict[str, Any]:
    """Canned single-dent answer."""
    damages = [
        {
            "type": "dent",
            "location": "front bumper",
            "severity": "medium",
            "description": "Noticeable dent on the front bumper",
            "estimatedCost": 300,
            "confidence": 0.85,
            "imageIndex": 0,
            "boundingBox": {"x": 0.2, "y": 0.4, "width": 0.25, "height": 0.2},
        }
    ]
    if image_count > 1:
        damages.append(
            {
                "type": "scratch",
                "location": "driver door",
                "severity": "low",
                "description": "Light surface scratch on the driver door",
                "estimatedCost": 150,
                "confidence": 0.8,
                "imageIndex": 1,
            }
        )
    return {
        "damages": damages,
        "overallCondition": "good",
        "recommendations": ["Schedule body shop repair"],
        "totalEstimatedCost": sum(d["estimatedCost"] for d in damages),
    }


class MockVisionModel:
    """
    Scriptable vision backend

    ``responses`` are consumed in order (an Exception instance is raised
    instead of returned); once exhausted the canned answer is used.
    """

    def __init__(
        self,
        *,
        responses: Sequence[dict[str, Any] | Exception] | None = None,
        latency_seconds: float = 0.0,
        model_name: str = "mock-vision",
    ) -> None:
        self.model_name = model_name
        self._responses = list(responses or [])
        self.latency_seconds = latency_seconds
        self.calls: list[dict[str, Any]] = []
        logger.info("mock_vision_initialized", model=model_name)

    async def generate_assessment(
        self,
        *,
        prompt: str,
        image_urls: Sequence[str],
    ) -> dict[str, Any]:
        self.calls.append({"prompt": prompt, "image_urls": list(image_urls)})
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)
        if self._responses:
            nxt = self._responses.pop(0)
            if isinstance(nxt, Exception):
                raise nxt
            return nxt
        return default_assessment(len(image_urls))

    async def health_check(self) -> bool:
        return True


class MockEmbeddingModel:
    """
    Hashed bag-of-words embeddings

    Texts sharing words get positive cosine similarity, so ranking behaves
    sensibly without a real model.
    """

    def __init__(
        self,
        *,
        dimension: int | None = None,
        model_name: str = "mock-embedding",
        fail_with: Exception | None = None,
    ) -> None:
        self.model_name = model_name
        self.dimension = dimension or settings.vectorstore_dimension
        self.fail_with = fail_with
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return [self.embed_text(text) for text in texts]

    def embed_text(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        tokens = _TOKEN.findall(text.lower()) or [text]
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[index] += sign
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            raise ModelCallError("cannot embed empty text")
        return [v / norm for v in vector]
