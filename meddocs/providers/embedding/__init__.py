"""Embedding provider implementations.

Four implementations of IEmbeddingProvider, in the order ``auto`` tries them:
    1. OpenAIEmbeddingProvider    -- remote, needs OPENAI_API_KEY.
    2. FastEmbedEmbeddingProvider -- local ONNX, no PyTorch (384 dims).
    3. SentenceTransformerEmbeddingProvider -- local PyTorch (384 dims).
    4. NomicEmbeddingProvider     -- nomic-embed-text via Ollama (768 dims).

FastEmbed and SentenceTransformer providers import their heavy libraries
lazily, so they are safe to import even when those extras are absent.
OpenAI and Nomic share :class:`OpenAICompatibleEmbeddingProvider`, which
sends one request per call.
"""

from meddocs.providers.embedding.fastembed_embedding_provider import FastEmbedEmbeddingProvider
from meddocs.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from meddocs.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from meddocs.providers.embedding.sentence_transformer_embedding_provider import (
    SentenceTransformerEmbeddingProvider,
)

__all__ = [
    "FastEmbedEmbeddingProvider",
    "NomicEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
]
