"""Embedding provider for OpenAI and OpenAI-compatible hosts.

``OPENAI_BASE_URL`` points the client at a compatible host (TogetherAI,
Fireworks); ``OPENAI_EMBEDDING_MODEL`` picks the model there.  Models not
listed in ``_MODEL_DIMENSIONS`` are assumed to produce 768-dim vectors.
"""

from __future__ import annotations

import openai

from meddocs.config.settings import Settings
from meddocs.providers.embedding.openai_compatible import OpenAICompatibleEmbeddingProvider

_DEFAULT_MODEL = "text-embedding-3-small"
_FALLBACK_DIMENSION = 768

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
    "togethercomputer/m2-bert-80M-8k-retrieval": 768,
}


class OpenAIEmbeddingProvider(OpenAICompatibleEmbeddingProvider):
    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        model = settings.openai_embedding_model or settings.embedding_model or _DEFAULT_MODEL
        client = openai.AsyncOpenAI(
            api_key=self._api_key, base_url=settings.openai_base_url or None
        )
        super().__init__(
            client,
            model=model,
            dimension=_MODEL_DIMENSIONS.get(model, _FALLBACK_DIMENSION),
            label="openai-compatible_embedding" if settings.openai_base_url else "openai_embedding",
        )

    def get_provider_name(self) -> str:
        # "BAAI/bge-base-en-v1.5" -> "..._bge-base-en-v1.5"
        return f"{self._label}_{self._model.rsplit('/', 1)[-1]}"

    def is_available(self) -> bool:
        return bool(self._api_key)
