"""Shared request path for hosts that speak the OpenAI ``/embeddings`` API.

One call is one request: :class:`~meddocs.services.embedding_service.EmbeddingOrchestrator`
slices and paces batches before they reach a provider.  Hosts may return
``data`` items out of order, so vectors are placed by their ``index``.
"""

from __future__ import annotations

from typing import Any

import openai
import structlog

from meddocs.interfaces.embedding_provider import IEmbeddingProvider
from meddocs.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)


class OpenAICompatibleEmbeddingProvider(IEmbeddingProvider):
    """Base for embedding providers backed by an ``openai.AsyncOpenAI`` client.

    Subclasses build the client and supply the model, its dimension and a
    label used in provider names and error messages.
    """

    def __init__(self, client: Any, model: str, dimension: int, label: str) -> None:
        self._client = client
        self._model = model
        self._dimension = dimension
        self._label = label

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = await self._client.embeddings.create(input=texts, model=self._model)
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._label} request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        vectors = _in_input_order(response.data)
        if len(vectors) != len(texts):
            raise EmbeddingError(
                message=f"{self._label} returned {len(vectors)} vectors for {len(texts)} texts",
                provider_name=self.get_provider_name(),
            )
        logger.debug(
            "embedding_request",
            provider=self._label,
            model=self._model,
            texts=len(texts),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return self._dimension

    def is_remote(self) -> bool:
        return True


def _in_input_order(items: list[Any]) -> list[list[float]]:
    return [list(item.embedding) for item in sorted(items, key=lambda item: item.index)]
