"""``nomic-embed-text`` served by a local Ollama.

Ollama exposes an OpenAI-compatible ``/v1`` endpoint, so requests share
:class:`OpenAICompatibleEmbeddingProvider`.  Availability is a quick
``GET /api/tags`` against the server.
"""

from __future__ import annotations

import httpx
import openai

from meddocs.config.settings import Settings
from meddocs.providers.embedding.openai_compatible import OpenAICompatibleEmbeddingProvider

_HEALTH_TIMEOUT = 3.0


class NomicEmbeddingProvider(OpenAICompatibleEmbeddingProvider):
    """768-dim vectors from Ollama's ``nomic-embed-text``."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        # the client insists on a key; Ollama never checks it
        client = openai.AsyncOpenAI(base_url=f"{self._base_url}/v1", api_key="ollama")
        super().__init__(client, model="nomic-embed-text", dimension=768, label="nomic_embedding")

    def get_provider_name(self) -> str:
        return self._label

    def is_available(self) -> bool:
        if not self._base_url:
            return False
        try:
            return httpx.get(f"{self._base_url}/api/tags", timeout=_HEALTH_TIMEOUT).status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
