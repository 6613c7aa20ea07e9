"""Caller-facing shaping of search results, listings and ingestion output.

Every public method returns a plain, JSON-serialisable ``dict`` (no
Pydantic models or datetime objects remain) with camelCase keys, the shape
tool callers receive.  Stored records are only read, never modified.
"""

from __future__ import annotations

import math
import re
from typing import Any

from meddocs.config.tuning import PipelineTuning
from meddocs.interfaces.ner_provider import count_by_label
from meddocs.models.document import MedicalDocument, MedicalEntity
from meddocs.models.ingestion import ChunkIngestionResult, IngestionResult
from meddocs.models.search import ChunkSearchResult, SearchDegraded, SearchOutcome, SearchResult
from meddocs.utils.logging import get_logger

_SENTENCE_END = re.compile(r"[.!?]+")
_INSIGHT_SENTENCES = 2


def _preview(text: str, limit: int) -> str:
    """Return the first *limit* characters, with ``...`` when truncated."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class ResultFormatter:
    """Trims and shapes retrieval and ingestion results for callers."""

    def __init__(self, tuning: PipelineTuning | None = None) -> None:
        self._tuning = tuning or PipelineTuning()
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def format_search_result(self, result: SearchResult) -> dict[str, Any]:
        document = result.document
        return {
            "id": document.id,
            "title": document.title,
            "content": _preview(document.content, self._tuning.search_preview_chars),
            "score": result.score,
            "metadata": document.metadata.model_dump(mode="json", by_alias=True),
            "relevantEntities": [
                self.format_entity(e)
                for e in result.relevant_entities[: self._tuning.max_entities]
            ],
        }

    def format_search_outcome(self, outcome: SearchOutcome) -> dict[str, Any]:
        """Format results together with how they were produced.

        Parameters
        ----------
        outcome:
            The final outcome of a retrieval ladder.

        Returns
        -------
        dict[str, Any]
            ``resultsCount``, ``results``, ``strategy``, ``mode``,
            ``degraded`` and the degradation ``notices``.
        """
        formatted = {
            "resultsCount": len(outcome.results),
            "results": [self.format_search_result(r) for r in outcome.results],
            "strategy": outcome.strategy,
            "mode": outcome.mode.value,
            "degraded": outcome.degraded,
            "notices": [self.format_notice(n) for n in outcome.notices],
        }
        if outcome.sub_strategies:
            formatted["subStrategies"] = list(outcome.sub_strategies)
        self._logger.debug(
            "search_outcome_formatted",
            strategy=outcome.strategy,
            results=len(outcome.results),
        )
        return formatted

    @staticmethod
    def format_notice(notice: SearchDegraded) -> dict[str, Any]:
        return {
            "failedStrategy": notice.failed_strategy,
            "reason": notice.reason,
            "fallbackStrategy": notice.fallback_strategy,
        }

    def format_chunk_result(self, result: ChunkSearchResult) -> dict[str, Any]:
        chunk = result.chunk
        return {
            "id": chunk.id,
            "text": chunk.text,
            "score": result.score,
            "chunkIndex": chunk.chunk_index,
            "totalChunks": chunk.total_chunks,
            "wordCount": chunk.word_count,
            "metadata": chunk.metadata.model_dump(mode="json", by_alias=True),
            "medicalEntities": [
                self.format_entity(e) for e in chunk.entities[: self._tuning.max_entities]
            ],
        }

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def format_listing_row(self, document: MedicalDocument) -> dict[str, Any]:
        return {
            "id": document.id,
            "title": document.title,
            "content": _preview(document.content, self._tuning.listing_preview_chars),
            "metadata": document.metadata.model_dump(mode="json", by_alias=True),
            "entityCount": len(document.medical_entities),
            "hasEmbedding": bool(document.embedding),
        }

    @staticmethod
    def pagination(limit: int, offset: int, total: int) -> dict[str, Any]:
        """Pagination block for a listing page.

        ``currentPage`` is 1-based; ``totalPages`` is 0 for an empty listing.
        """
        return {
            "limit": limit,
            "offset": offset,
            "total": total,
            "hasMore": offset + limit < total,
            "currentPage": offset // limit + 1,
            "totalPages": math.ceil(total / limit),
        }

    def format_document(self, document: MedicalDocument) -> dict[str, Any]:
        """Full document without its embedding vector."""
        return {
            "id": document.id,
            "title": document.title,
            "content": document.content,
            "metadata": document.metadata.model_dump(mode="json", by_alias=True),
            "medicalEntities": [self.format_entity(e) for e in document.medical_entities],
            "embeddingDimension": len(document.embedding),
        }

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def format_ingestion(self, result: IngestionResult) -> dict[str, Any]:
        processing: dict[str, Any] = {
            "textLength": result.text_length,
            "entitiesFound": result.entity_count,
            "embeddingDimensions": result.embedding_dimension,
        }
        if result.extraction is not None:
            processing.update(
                method=result.extraction.method,
                confidence=result.extraction.confidence,
                pageCount=result.extraction.page_count,
            )
        return {
            "documentId": result.document_id,
            "processingResults": processing,
            "medicalEntities": [self.format_entity(e) for e in result.entities],
        }

    def format_chunk_ingestion(self, result: ChunkIngestionResult) -> dict[str, Any]:
        return {
            "documentId": result.document_id,
            "totalChunks": result.total_chunks,
            "successfulChunks": result.successful_chunks,
            "failedChunks": len(result.failed_chunk_indexes),
            "failedChunkIndexes": list(result.failed_chunk_indexes),
            "chunkIds": list(result.chunk_ids),
            "chunkSize": result.chunk_size,
            "overlap": result.overlap,
            "model": result.model,
            "dimensions": result.dimension,
            "replacedChunks": result.replaced_chunks,
            "entitiesFound": result.entity_count,
            "entitiesByType": count_by_label(result.entities),
            "medicalEntities": [
                self.format_entity(e)
                for e in result.entities[: self._tuning.ingest_entity_preview]
            ],
        }

    @staticmethod
    def format_entity(entity: MedicalEntity, context_chars: int | None = None) -> dict[str, Any]:
        formatted = entity.model_dump(mode="json", by_alias=True, exclude_none=True)
        if context_chars is not None and entity.context:
            formatted["context"] = _preview(entity.context, context_chars)
        return formatted

    @staticmethod
    def insight_excerpt(content: str, query: str) -> str:
        """The first sentences of *content* that mention any word of *query*.

        Returns ``""`` when no sentence mentions one.
        """
        terms = query.lower().split()
        hits = [
            sentence.strip()
            for sentence in _SENTENCE_END.split(content)
            if sentence.strip() and any(t in sentence.lower() for t in terms)
        ]
        if not hits:
            return ""
        return ". ".join(hits[:_INSIGHT_SENTENCES]) + "."
