"""
Ollama model clients

Vision: ``POST /api/generate`` with base64 images and ``format: json``.
Embeddings: ``POST /api/embed`` with a list input (one round trip per batch).
"""

from __future__ import annotations

import base64
import json
import re
from typing import Any, Sequence

import httpx

from inspection_engine.core.config import settings
from inspection_engine.core.exceptions import ModelCallError
from inspection_engine.core.logging import get_logger

logger = get_logger(__name__)

_CODE_BLOCK = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_DATA_URI = re.compile(r"^data:[^;]+;base64,(.*)$", re.DOTALL)


def extract_json_content(content: str) -> str:
    """Strip a Markdown code fence around a JSON answer."""

    stripped = content.strip()
    match = _CODE_BLOCK.match(stripped)
    if match:
        return match.group(1).strip()
    return stripped


class OllamaBase:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.ollama_timeout,
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise ModelCallError(f"Ollama request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise ModelCallError(
                f"Ollama returned {resp.status_code}",
                details={"status_code": resp.status_code, "body": resp.text[:500]},
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise ModelCallError("Ollama returned a non-JSON body") from exc

    async def health_check(self) -> bool:
        try:
            resp = await self._client.get("/api/tags")
        except httpx.HTTPError as exc:
            logger.warning("ollama_health_check_failed", base_url=self.base_url, error=str(exc))
            return False
        return resp.status_code == 200

    async def aclose(self) -> None:
        await self._client.aclose()


class OllamaVisionModel(OllamaBase):
    """Ollama vision backend (llama3.2-vision by default)."""

    def __init__(self, *, model: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.model_name = model or settings.ollama_vision_model
        logger.info("ollama_vision_initialized", base_url=self.base_url, model=self.model_name)

    async def generate_assessment(
        self,
        *,
        prompt: str,
        image_urls: Sequence[str],
    ) -> dict[str, Any]:
        images = [await self._load_image(url) for url in image_urls]
        payload = {
            "model": self.model_name,
            "prompt": prompt,
            "images": images,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": settings.vision_temperature,
                "top_p": settings.vision_top_p,
            },
        }
        data = await self._post("/api/generate", payload)
        content = data.get("response") or ""
        try:
            parsed = json.loads(extract_json_content(content))
        except json.JSONDecodeError as exc:
            raise ModelCallError(
                "Vision model answer is not valid JSON",
                details={"response": content[:500]},
            ) from exc
        if not isinstance(parsed, dict):
            raise ModelCallError("Vision model answer is not a JSON object")
        return parsed

    async def _load_image(self, url: str) -> str:
        """Return the image as base64 (data URIs are passed through)."""
        match = _DATA_URI.match(url)
        if match:
            return match.group(1)
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise ModelCallError(f"Failed to fetch image {url}: {exc}") from exc
        if resp.status_code >= 400:
            raise ModelCallError(
                f"Failed to fetch image {url}",
                details={"status_code": resp.status_code},
            )
        return base64.b64encode(resp.content).decode("ascii")


class OllamaEmbeddingModel(OllamaBase):
    """Ollama embedding backend (mxbai-embed-large, 1024 dims)."""

    def __init__(self, *, model: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.model_name = model or settings.ollama_embedding_model
        logger.info("ollama_embedding_initialized", base_url=self.base_url, model=self.model_name)

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        data = await self._post("/api/embed", {"model": self.model_name, "input": list(texts)})
        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list):
            raise ModelCallError("Ollama embed response has no 'embeddings' list")
        return embeddings
