"""Retrieval strategies and the fallback ladder that drives them.

Every strategy turns a :class:`SearchRequest` into a
:class:`StrategyOutcome`.  Strategies never raise: an exception inside
``_search`` is converted into ``StrategyOutcome.failed`` with the error as
the reason.  :func:`run_ladder` walks an ordered list of strategies and
returns the first successful outcome, recording a :class:`SearchDegraded`
notice for every tier it had to skip.

Ladders used by :class:`~meddocs.services.retrieval.fusion.RetrievalFusion`::

    vector   ->  vector, lexical, substring
    lexical  ->  lexical, substring
    hybrid   ->  fusion(vector | lexical+substring), vector@0.5, lexical, substring
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from meddocs.config.tuning import PipelineTuning
from meddocs.models.search import (
    SearchDegraded,
    SearchRequest,
    SearchResult,
    StrategyOutcome,
)
from meddocs.utils.errors import DimensionMismatchError, SearchUnavailableError

if TYPE_CHECKING:
    from meddocs.interfaces.document_store import IDocumentStore
    from meddocs.services.embedding_service import EmbeddingOrchestrator

logger = structlog.get_logger(logger_name=__name__)


class RetrievalStrategy(ABC):
    """One tier of a retrieval ladder."""

    name: str = "strategy"

    async def run(self, request: SearchRequest) -> StrategyOutcome:
        try:
            return await self._search(request)
        except Exception as exc:
            return StrategyOutcome.failed(self.name, f"{type(exc).__name__}: {exc}")

    @abstractmethod
    async def _search(self, request: SearchRequest) -> StrategyOutcome:
        """Run the search; may raise."""


def _narrow(results: list[SearchResult], request: SearchRequest, threshold: float) -> list[SearchResult]:
    kept = [r for r in results if request.filter.matches(r.document) and r.score >= threshold]
    return kept[: request.limit]


# ---------------------------------------------------------------------------
# Single-source strategies
# ---------------------------------------------------------------------------


class VectorStrategy(RetrievalStrategy):
    """Dense nearest-neighbour search over whole-document embeddings.

    Parameters
    ----------
    store:
        Document store providing ``vector_search``.
    embeddings:
        Embeds the query (with optional context).
    tuning:
        Over-fetch factor and candidate counts.
    threshold:
        Overrides the request threshold when set.  Used for the relaxed
        vector-only tier of the hybrid ladder.
    name:
        Name reported in outcomes and notices.
    """

    def __init__(
        self,
        store: IDocumentStore,
        embeddings: EmbeddingOrchestrator,
        tuning: PipelineTuning,
        threshold: float | None = None,
        name: str = "vector",
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._tuning = tuning
        self._threshold = threshold
        self.name = name

    async def _search(self, request: SearchRequest) -> StrategyOutcome:
        vector = await self._embeddings.embed_query(request.query, request.context)

        stored = await self._store.get_embedding_dimension()
        if stored is not None and stored != len(vector):
            raise DimensionMismatchError(
                f"Query embedding has {len(vector)} dimensions but stored documents have {stored}"
            )

        num_candidates = max(
            request.limit * self._tuning.candidate_multiplier, self._tuning.min_candidates
        )
        hits = await self._store.vector_search(
            vector,
            request.limit * self._tuning.overfetch_factor,
            num_candidates,
            request.filter,
        )
        floor = request.threshold if self._threshold is None else self._threshold
        return StrategyOutcome.succeeded(self.name, _narrow(hits, request, floor))


class LexicalStrategy(RetrievalStrategy):
    """Keyword relevance over title and content."""

    def __init__(self, store: IDocumentStore, threshold: float | None = None, name: str = "lexical") -> None:
        self._store = store
        self._threshold = threshold
        self.name = name

    async def _search(self, request: SearchRequest) -> StrategyOutcome:
        hits = await self._store.text_search(request.query, request.limit, request.filter)
        floor = request.threshold if self._threshold is None else self._threshold
        return StrategyOutcome.succeeded(self.name, _narrow(hits, request, floor))


class SubstringStrategy(RetrievalStrategy):
    """Last-resort containment scan with a constant score.

    The caller's threshold is not applied; every hit scores
    ``tuning.substring_score``.
    """

    name = "substring"

    def __init__(self, store: IDocumentStore, tuning: PipelineTuning) -> None:
        self._store = store
        self._tuning = tuning

    async def _search(self, request: SearchRequest) -> StrategyOutcome:
        hits = await self._store.substring_search(
            request.query, request.limit, request.filter, self._tuning.substring_score
        )
        return StrategyOutcome.succeeded(self.name, _narrow(hits, request, 0.0))


# ---------------------------------------------------------------------------
# Ladder driver
# ---------------------------------------------------------------------------


async def run_ladder(strategies: Sequence[RetrievalStrategy], request: SearchRequest) -> StrategyOutcome:
    """Return the first successful outcome of *strategies*, in order.

    The returned outcome carries a notice for each tier that failed before
    it, ahead of any notices the winning strategy produced itself.

    Raises
    ------
    SearchUnavailableError
        If every strategy failed.
    """
    notices: list[SearchDegraded] = []
    reasons: list[str] = []

    for position, strategy in enumerate(strategies):
        outcome = await strategy.run(request)
        if outcome.is_ok:
            if not notices:
                return outcome
            return outcome.model_copy(update={"notices": notices + outcome.notices})

        fallback = strategies[position + 1].name if position + 1 < len(strategies) else None
        reason = outcome.reason or "unknown failure"
        reasons.append(f"{strategy.name}: {reason}")
        notices.append(
            SearchDegraded(failed_strategy=strategy.name, reason=reason, fallback_strategy=fallback)
        )
        logger.warning(
            "search_degraded",
            failed_strategy=strategy.name,
            reason=reason,
            fallback_strategy=fallback,
        )

    logger.error("search_unavailable", reasons=reasons)
    raise SearchUnavailableError("All retrieval strategies failed", reasons=reasons)


# ---------------------------------------------------------------------------
# Hybrid fusion
# ---------------------------------------------------------------------------


class FusionStrategy(RetrievalStrategy):
    """Weighted additive merge of a vector ladder and a lexical ladder.

    Vector hits seed the merged table at ``score * vector_weight``; lexical
    hits add ``score * text_weight`` to an existing entry or are inserted.
    The merged list is stably sorted, so equal scores keep insertion order
    with vector-seeded entries first.  Document ids are unique by
    construction.

    A sub-ladder that is exhausted only adds a notice, and the surviving
    sub-ladder's hits are then taken at full weight.  The strategy fails
    when both are exhausted.
    """

    name = "hybrid"

    def __init__(
        self,
        vector_ladder: Sequence[RetrievalStrategy],
        lexical_ladder: Sequence[RetrievalStrategy],
        tuning: PipelineTuning,
    ) -> None:
        self._vector_ladder = vector_ladder
        self._lexical_ladder = lexical_ladder
        self._tuning = tuning

    async def _search(self, request: SearchRequest) -> StrategyOutcome:
        t = self._tuning
        vector_request = request.model_copy(
            update={
                "limit": math.ceil(request.limit * t.hybrid_vector_fraction),
                "threshold": t.hybrid_vector_threshold,
            }
        )
        lexical_request = request.model_copy(
            update={"limit": math.ceil(request.limit * t.hybrid_text_fraction), "threshold": 0.0}
        )

        notices: list[SearchDegraded] = []
        parts: list[tuple[StrategyOutcome, float]] = []
        for ladder, sub_request, weight in (
            (self._vector_ladder, vector_request, t.vector_weight),
            (self._lexical_ladder, lexical_request, t.text_weight),
        ):
            try:
                outcome = await run_ladder(ladder, sub_request)
            except SearchUnavailableError as exc:
                notices.append(
                    SearchDegraded(
                        failed_strategy=ladder[0].name if ladder else "empty",
                        reason="; ".join(exc.reasons) or exc.message,
                        fallback_strategy=None,
                    )
                )
                continue
            notices.extend(outcome.notices)
            parts.append((outcome, weight))

        if not parts:
            return StrategyOutcome.failed(self.name, "both hybrid sub-searches failed")
        if len(parts) == 1:
            # one side exhausted: the survivor keeps its own score scale
            parts = [(parts[0][0], 1.0)]

        merged: dict[str, SearchResult] = {}
        for outcome, weight in parts:
            for hit in outcome.results:
                key = hit.document.id or f"anon-{id(hit.document)}"
                existing = merged.get(key)
                if existing is None:
                    merged[key] = hit.model_copy(update={"score": hit.score * weight})
                else:
                    merged[key] = existing.model_copy(
                        update={"score": existing.score + hit.score * weight}
                    )

        ranked = sorted(merged.values(), key=lambda r: r.score, reverse=True)
        results = [r for r in ranked if r.score >= request.threshold][: request.limit]
        return StrategyOutcome.succeeded(
            self.name,
            results,
            notices=notices,
            sub_strategies=[outcome.strategy for outcome, _ in parts],
        )
