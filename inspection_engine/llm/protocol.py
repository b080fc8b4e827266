"""
Model Client Protocols (Interfaces)
Vision and embedding backends are swappable behind these contracts
"""

from typing import Any, Protocol, Sequence, runtime_checkable


@runtime_checkable
class VisionModelProtocol(Protocol):
    """
    Protocol for vision model backends

    A backend returns the model's raw JSON object. Schema validation, retries
    and monitoring are the caller's job (VisionAssessmentClient).
    """

    model_name: str

    async def generate_assessment(
        self,
        *,
        prompt: str,
        image_urls: Sequence[str],
    ) -> dict[str, Any]:
        """
        Run one assessment call

        Raises:
            ModelCallError: transport failure, HTTP error or non-JSON body
        """
        ...

    async def health_check(self) -> bool:
        ...


@runtime_checkable
class EmbeddingModelProtocol(Protocol):
    """
    Protocol for embedding backends

    Output order matches input order. Dimension checks happen in
    EmbeddingService, not here.
    """

    model_name: str

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Raises:
            ModelCallError: If the backend call fails
        """
        ...
