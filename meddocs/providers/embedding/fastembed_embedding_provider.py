"""Local ONNX-based embedding provider using fastembed.

Runs on ONNX Runtime with no PyTorch dependency and a small RAM footprint.
Default model: ``sentence-transformers/all-MiniLM-L6-v2`` (384 dimensions),
so a store built with this provider stays compatible with the
sentence-transformers provider.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from meddocs.interfaces.embedding_provider import IEmbeddingProvider
from meddocs.utils.concurrency import SharedInitializer
from meddocs.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

_MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "nomic-ai/nomic-embed-text-v1.5": 768,
}

_DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
_BATCH_LIMIT = 64


def _encode(model: Any, batch: list[str]) -> list[list[float]]:
    # fastembed yields numpy arrays lazily; materialize inside the worker thread.
    return [v.tolist() for v in model.embed(batch)]


class FastEmbedEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by fastembed (ONNX Runtime)."""

    def __init__(self, model_name: str | None = None) -> None:
        self._model_name = model_name or _DEFAULT_MODEL
        self._dimension = _MODEL_DIMENSIONS.get(self._model_name, 384)
        self._loader: SharedInitializer[Any] = SharedInitializer(
            self._create_model, name=self.get_provider_name()
        )

    def _create_model(self) -> Any:
        try:
            from fastembed import TextEmbedding

            logger.info("loading_fastembed_model", model=self._model_name)
            model = TextEmbedding(model_name=self._model_name)
            logger.info(
                "fastembed_model_loaded",
                model=self._model_name,
                dimension=self._dimension,
            )
            return model
        except Exception as exc:
            raise EmbeddingError(
                message=f"Failed to load fastembed model '{self._model_name}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        model = await self._loader.get()

        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _BATCH_LIMIT):
                batch = texts[start : start + _BATCH_LIMIT]
                all_embeddings.extend(await asyncio.to_thread(_encode, model, batch))
            return all_embeddings
        except Exception as exc:
            raise EmbeddingError(
                message=f"Fastembed embedding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"fastembed_{self._model_name.split('/')[-1]}"

    def is_available(self) -> bool:
        """Return ``True`` if fastembed is installed."""
        try:
            import fastembed  # noqa: F401

            return True
        except ImportError:
            return False
