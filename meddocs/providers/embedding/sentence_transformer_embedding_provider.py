"""Local sentence-transformers embedding provider adapter.

Wraps the ``sentence-transformers`` library to implement
:class:`IEmbeddingProvider` with a HuggingFace model running in-process.
No API key required.

Default model: ``sentence-transformers/all-MiniLM-L6-v2`` (384 dimensions).
The model is loaded once per provider instance through a
:class:`~meddocs.utils.concurrency.SharedInitializer`, so concurrent
cold-start requests await a single load.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from meddocs.interfaces.embedding_provider import IEmbeddingProvider
from meddocs.utils.concurrency import SharedInitializer
from meddocs.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# Known model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-MiniLM-L12-v2": 384,
    "sentence-transformers/all-mpnet-base-v2": 768,
    "pritamdeka/S-PubMedBert-MS-MARCO": 768,
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
}

_DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
_BATCH_LIMIT = 64  # Conservative batch size for CPU inference


class SentenceTransformerEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a local sentence-transformers model."""

    def __init__(self, model_name: str | None = None) -> None:
        self._model_name = model_name or _DEFAULT_MODEL
        self._dimension = _MODEL_DIMENSIONS.get(self._model_name, 384)
        self._loader: SharedInitializer[Any] = SharedInitializer(
            self._create_model, name=self.get_provider_name()
        )

    def _create_model(self) -> Any:
        """Load the model (runs in a worker thread)."""
        try:
            from sentence_transformers import SentenceTransformer

            logger.info(
                "loading_sentence_transformer",
                model=self._model_name,
                msg="Loading model (first use may download weights)...",
            )
            model = SentenceTransformer(self._model_name)
            logger.info(
                "sentence_transformer_loaded",
                model=self._model_name,
                dimension=self._dimension,
            )
            return model
        except Exception as exc:
            raise EmbeddingError(
                message=f"Failed to load sentence-transformers model '{self._model_name}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors, split into CPU-friendly batches."""
        if not texts:
            return []

        model = await self._loader.get()

        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _BATCH_LIMIT):
                batch = texts[start : start + _BATCH_LIMIT]
                vectors = await asyncio.to_thread(
                    model.encode,
                    batch,
                    normalize_embeddings=True,
                    show_progress_bar=False,
                )
                all_embeddings.extend(vectors.tolist())
            return all_embeddings
        except Exception as exc:
            raise EmbeddingError(
                message=f"Sentence-transformers embedding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"sentence_transformer_{self._model_name.split('/')[-1]}"

    def is_available(self) -> bool:
        """Return ``True`` if sentence-transformers is installed."""
        try:
            import sentence_transformers  # noqa: F401
            return True
        except ImportError:
            return False
