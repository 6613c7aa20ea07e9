"""Embedding orchestration: preprocessing, pacing, validation, similarity.

:class:`EmbeddingOrchestrator` sits between the pipeline and an injected
:class:`IEmbeddingProvider`.  It owns everything that must hold regardless
of which provider is configured:

- every text is cleaned and truncated before it reaches the model;
- batches are split and paced with a short delay between slices;
- returned vectors must have the dimension the provider declares;
- provider failures surface as :class:`EmbeddingError`.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from meddocs.config.tuning import PipelineTuning
from meddocs.interfaces.embedding_provider import IEmbeddingProvider
from meddocs.models.document import MedicalEntity
from meddocs.models.ingestion import ModelInfo
from meddocs.utils.concurrency import paced_batches
from meddocs.utils.errors import (
    DimensionMismatchError,
    EmbeddingError,
    MedDocsError,
    ValidationError,
)
from meddocs.utils.logging import get_logger
from meddocs.utils.text_normalizer import preprocess_for_embedding


class EmbeddingOrchestrator:
    """Provider-agnostic embedding front end."""

    def __init__(
        self,
        provider: IEmbeddingProvider,
        tuning: PipelineTuning | None = None,
    ) -> None:
        self._provider = provider
        self._tuning = tuning or PipelineTuning()
        self._logger = get_logger(__name__)

    @property
    def provider(self) -> IEmbeddingProvider:
        return self._provider

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    def preprocess(self, text: str) -> str:
        return preprocess_for_embedding(text, self._tuning.max_embed_chars)

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises
        ------
        ValidationError
            If the text is empty after preprocessing.
        EmbeddingError
            If the provider fails or returns a vector of the wrong size.
        """
        cleaned = self.preprocess(text)
        if not cleaned:
            raise ValidationError("Cannot embed empty text")
        vectors = await self._call_provider([cleaned])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed many texts in paced batches, preserving input order."""
        cleaned = [self.preprocess(t) for t in texts]
        empty = [i for i, t in enumerate(cleaned) if not t]
        if empty:
            raise ValidationError(f"Cannot embed empty text at positions {empty}")
        return await paced_batches(
            cleaned,
            self._tuning.embed_batch_size,
            self._tuning.embed_batch_delay,
            self._call_provider,
        )

    async def embed_query(self, query: str, context: str | None = None) -> list[float]:
        text = f"Context: {context}\n\nQuery: {query}" if context else query
        return await self.embed(text)

    async def embed_document(
        self,
        title: str,
        content: str,
        entities: Iterable[MedicalEntity] = (),
    ) -> list[float]:
        return await self.embed(self.render_document(title, content, entities))

    @staticmethod
    def render_document(title: str, content: str, entities: Iterable[MedicalEntity] = ()) -> str:
        """Render the text embedded for a whole document."""
        text = f"Title: {title}\n\nContent: {content}"
        entity_text = ", ".join(f"{e.label}: {e.text}" for e in entities)
        if entity_text:
            text += f"\n\nMedical Entities: {entity_text}"
        return text

    # ------------------------------------------------------------------
    # Similarity
    # ------------------------------------------------------------------

    @staticmethod
    def similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
        """Cosine similarity of two vectors.

        Raises
        ------
        DimensionMismatchError
            If the vectors differ in length.
        EmbeddingError
            If either vector has zero norm.
        """
        if len(v1) != len(v2):
            raise DimensionMismatchError(
                f"Embeddings must have the same dimensions ({len(v1)} != {len(v2)})"
            )
        a = np.asarray(v1, dtype=np.float64)
        b = np.asarray(v2, dtype=np.float64)
        norm = float(np.linalg.norm(a) * np.linalg.norm(b))
        if norm == 0.0:
            raise EmbeddingError("Cannot compute similarity of a zero vector")
        return float(np.dot(a, b) / norm)

    def find_similar(
        self,
        query_vector: Sequence[float],
        candidates: Iterable[tuple[str, Sequence[float]]],
        threshold: float | None = None,
    ) -> list[tuple[str, float]]:
        """Rank ``(id, vector)`` candidates by similarity to *query_vector*.

        Candidates of a different dimension are skipped and logged.
        Returns ``(id, similarity)`` pairs at or above *threshold*, best first.
        """
        floor = self._tuning.default_threshold if threshold is None else threshold
        scored: list[tuple[str, float]] = []
        for candidate_id, vector in candidates:
            if len(vector) != len(query_vector):
                self._logger.warning(
                    "similarity_candidate_skipped",
                    candidate_id=candidate_id,
                    dimension=len(vector),
                    expected=len(query_vector),
                )
                continue
            score = self.similarity(query_vector, vector)
            if score >= floor:
                scored.append((candidate_id, score))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name=self._provider.get_provider_name(),
            dimension=self._provider.get_dimension(),
            is_remote=self._provider.is_remote(),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_provider(self, texts: list[str]) -> list[list[float]]:
        name = self._provider.get_provider_name()
        try:
            vectors = await self._provider.embed(texts)
        except MedDocsError:
            raise
        except Exception as exc:
            self._logger.error("embedding_failed", provider=name, error=str(exc))
            raise EmbeddingError(f"Embedding generation failed: {exc}", provider_name=name) from exc

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} vectors for {len(texts)} texts",
                provider_name=name,
            )
        expected = self._provider.get_dimension()
        for vector in vectors:
            if len(vector) != expected:
                raise DimensionMismatchError(
                    f"Provider declared {expected} dimensions but returned {len(vector)}",
                    provider_name=name,
                )
        return [list(v) for v in vectors]
