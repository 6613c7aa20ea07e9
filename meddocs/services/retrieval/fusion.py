"""Query-time retrieval: mode selection, ladders and entity attachment."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from meddocs.config.tuning import PipelineTuning
from meddocs.models.document import MedicalEntity
from meddocs.models.search import (
    ChunkFilter,
    ChunkSearchResult,
    SearchFilter,
    SearchMode,
    SearchOutcome,
    SearchRequest,
    SearchResult,
)
from meddocs.services.retrieval.strategies import (
    FusionStrategy,
    LexicalStrategy,
    RetrievalStrategy,
    SubstringStrategy,
    VectorStrategy,
    run_ladder,
)
from meddocs.utils.errors import ValidationError

if TYPE_CHECKING:
    from meddocs.interfaces.document_store import IDocumentStore
    from meddocs.services.embedding_service import EmbeddingOrchestrator

logger = structlog.get_logger(logger_name=__name__)


class RetrievalFusion:
    """Answers document queries through a per-mode fallback ladder.

    Parameters
    ----------
    store:
        Document store providing the retrieval primitives.
    embeddings:
        Embeds queries for the vector tiers.
    tuning:
        Fusion weights, sub-search sizes, thresholds and defaults.
    """

    def __init__(
        self,
        store: IDocumentStore,
        embeddings: EmbeddingOrchestrator,
        tuning: PipelineTuning | None = None,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._tuning = tuning or PipelineTuning()
        self._ladders = self._build_ladders()

    def with_weights(
        self, vector_weight: float | None = None, text_weight: float | None = None
    ) -> RetrievalFusion:
        """Return a copy whose hybrid fusion uses the given weights."""
        update = {
            name: value
            for name, value in (("vector_weight", vector_weight), ("text_weight", text_weight))
            if value is not None
        }
        if not update:
            return self
        return RetrievalFusion(self._store, self._embeddings, self._tuning.model_copy(update=update))

    def _build_ladders(self) -> dict[SearchMode, list[RetrievalStrategy]]:
        t = self._tuning
        vector = VectorStrategy(self._store, self._embeddings, t)
        lexical = LexicalStrategy(self._store)
        # fallback tier: the caller threshold targets vector or fused scores
        lexical_fallback = LexicalStrategy(self._store, threshold=0.0)
        substring = SubstringStrategy(self._store, t)
        fusion = FusionStrategy(
            vector_ladder=[VectorStrategy(self._store, self._embeddings, t)],
            lexical_ladder=[LexicalStrategy(self._store), SubstringStrategy(self._store, t)],
            tuning=t,
        )
        relaxed = VectorStrategy(
            self._store,
            self._embeddings,
            t,
            threshold=t.degraded_vector_threshold,
            name="vector_relaxed",
        )
        return {
            SearchMode.VECTOR: [vector, lexical_fallback, substring],
            SearchMode.LEXICAL: [lexical, substring],
            SearchMode.HYBRID: [fusion, relaxed, lexical_fallback, substring],
        }

    def default_threshold(self, mode: SearchMode) -> float:
        """Threshold used for *mode* when the caller gives none.

        Hybrid thresholds apply to fused scores, which sit on a different
        scale from raw vector similarity.
        """
        t = self._tuning
        return {
            SearchMode.VECTOR: t.default_threshold,
            SearchMode.LEXICAL: t.lexical_threshold,
            SearchMode.HYBRID: t.hybrid_threshold,
        }[SearchMode(mode)]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
        filter: SearchFilter | None = None,
        mode: SearchMode = SearchMode.HYBRID,
        context: str | None = None,
    ) -> SearchOutcome:
        """Run the ladder for *mode* and return its first successful outcome.

        Raises
        ------
        ValidationError
            If the query is empty after preprocessing.
        SearchUnavailableError
            If every tier of the ladder failed.
        """
        if not self._embeddings.preprocess(query):
            raise ValidationError("Query must not be empty")

        request = SearchRequest(
            query=query,
            limit=limit or self._tuning.default_limit,
            threshold=self.default_threshold(mode) if threshold is None else threshold,
            filter=filter or SearchFilter(),
            context=context,
        )
        outcome = await run_ladder(self._ladders[SearchMode(mode)], request)

        results = [
            r.model_copy(update={"relevant_entities": self._relevant_entities(query, r)})
            for r in outcome.results
        ]
        logger.info(
            "search_complete",
            mode=SearchMode(mode).value,
            strategy=outcome.strategy,
            results=len(results),
            degraded=bool(outcome.notices),
        )
        return SearchOutcome(
            results=results,
            strategy=outcome.strategy,
            mode=SearchMode(mode),
            notices=outcome.notices,
            sub_strategies=outcome.sub_strategies,
        )

    def _relevant_entities(self, query: str, result: SearchResult) -> list[MedicalEntity]:
        """Entities mentioned in the query first, then by confidence."""
        lowered = query.lower()
        ranked = sorted(
            result.document.medical_entities,
            key=lambda e: (e.text.lower() not in lowered, -e.confidence),
        )
        return ranked[: self._tuning.max_entities]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def search_chunks(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
        filter: ChunkFilter | None = None,
    ) -> list[ChunkSearchResult]:
        """Vector search over stored chunks; failures propagate."""
        if not self._embeddings.preprocess(query):
            raise ValidationError("Query must not be empty")
        vector = await self._embeddings.embed(query)
        floor = self._tuning.default_threshold if threshold is None else threshold
        hits = await self._store.chunk_vector_search(
            vector, limit or self._tuning.default_limit, filter or ChunkFilter()
        )
        results = [h for h in hits if h.score >= floor]
        logger.info("chunk_search_complete", results=len(results), threshold=floor)
        return results
