"""Abstract base class for text-embedding providers.

Implementations wrap a local model (sentence-transformers, fastembed) or a
remote API (OpenAI-compatible, Ollama).  The embedding orchestrator only
talks to this contract, so providers are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   SentenceTransformerEmbeddingProvider -- all-MiniLM-L6-v2 (local, 384 dims)
#   FastEmbedEmbeddingProvider           -- ONNX, no PyTorch (local)
#   OpenAIEmbeddingProvider              -- OpenAI-compatible API (remote)
#   NomicEmbeddingProvider               -- nomic-embed-text via Ollama (remote, 768 dims)
# Located in: meddocs/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            Preprocessed text strings.  Pacing between batches is the
            orchestrator's job; providers may still split internally when
            their backend has a per-call limit.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*, each of length
            :meth:`get_dimension`.

        Raises
        ------
        meddocs.utils.errors.EmbeddingError
            If the model or API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the produced vectors.

        Must stay constant for the lifetime of the provider so retrieval
        can detect vectors produced by a different model.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"sentence_transformer_all-MiniLM-L6-v2"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is installed/configured."""

    def is_remote(self) -> bool:
        """Return ``True`` when embeddings are computed by a remote service."""
        return False
