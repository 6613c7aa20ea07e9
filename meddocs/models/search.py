"""Retrieval request, filter and result models.

Filters are closed: each model enumerates the supported dimensions and
rejects unknown keys (``extra="forbid"``), so a misspelled ``patientID``
fails at the boundary instead of silently matching everything.

Retrieval strategies report :class:`StrategyOutcome` values rather than
raising; the fusion driver walks an ordered list of strategies and stops
at the first successful outcome, recording a :class:`SearchDegraded`
notice for every tier it skipped.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from meddocs.models.document import (
    DocumentChunk,
    DocumentType,
    MedicalDocument,
    MedicalEntity,
    ensure_utc,
)

_CLOSED = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)


class SearchMode(str, Enum):
    VECTOR = "vector"
    LEXICAL = "lexical"
    HYBRID = "hybrid"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class DateRange(BaseModel):
    """Inclusive upload-time window; either bound may be omitted."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _ordered(self) -> DateRange:
        if self.start and self.end and self.start > self.end:
            raise ValueError("dateRange.start must not be after dateRange.end")
        return self

    def contains(self, moment: datetime) -> bool:
        moment = ensure_utc(moment)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


class SearchFilter(BaseModel):
    """Narrowing applied to document search results.

    ``tags`` matches when the document carries at least one of the tags.
    """

    model_config = _CLOSED

    patient_id: str | None = None
    document_type: DocumentType | None = None
    tags: list[str] | None = None
    date_range: DateRange | None = None

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in type(self).model_fields)

    def matches(self, document: MedicalDocument) -> bool:
        meta = document.metadata
        if self.patient_id is not None and meta.patient_id != self.patient_id:
            return False
        if self.document_type is not None and meta.document_type != self.document_type:
            return False
        if self.tags and not set(self.tags) & set(meta.tags):
            return False
        if self.date_range is not None and not self.date_range.contains(meta.uploaded_at):
            return False
        return True


class ListFilter(SearchFilter):
    """Listing filter: search dimensions plus the ``processed`` flag."""

    processed: bool | None = None

    def matches(self, document: MedicalDocument) -> bool:
        if self.processed is not None and document.metadata.processed != self.processed:
            return False
        return super().matches(document)


class ChunkFilter(BaseModel):
    """Narrowing applied to chunk semantic search."""

    model_config = _CLOSED

    patient_id: str | None = None
    document_type: DocumentType | None = None
    document_id: str | None = None
    source: str | None = None

    def matches(self, chunk: DocumentChunk) -> bool:
        meta = chunk.metadata
        for name in ("patient_id", "document_type", "document_id", "source"):
            wanted = getattr(self, name)
            if wanted is not None and getattr(meta, name) != wanted:
                return False
        return True


# ---------------------------------------------------------------------------
# Requests and results
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """One retrieval request as seen by every strategy in a ladder."""

    model_config = ConfigDict(frozen=True)

    query: str
    limit: int = Field(default=10, ge=1)
    threshold: float = Field(default=0.7, ge=0.0)
    filter: SearchFilter = Field(default_factory=SearchFilter)
    context: str | None = None


class SearchResult(BaseModel):
    """A document hit with its relevance score."""

    model_config = ConfigDict(frozen=True)

    document: MedicalDocument
    score: float
    relevant_entities: list[MedicalEntity] = Field(default_factory=list)


class ChunkSearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk
    score: float


class SearchDegraded(BaseModel):
    """Non-fatal notice that a lower-fidelity strategy produced the results."""

    model_config = ConfigDict(frozen=True)

    failed_strategy: str
    reason: str
    fallback_strategy: str | None = None


class StrategyOutcome(BaseModel):
    """Tagged result of running one retrieval strategy.

    Build with :meth:`succeeded` or :meth:`failed`; never both results
    and a reason.
    """

    model_config = ConfigDict(frozen=True)

    strategy: str
    is_ok: bool
    results: list[SearchResult] = Field(default_factory=list)
    reason: str | None = None
    notices: list[SearchDegraded] = Field(default_factory=list)
    sub_strategies: list[str] = Field(default_factory=list)

    @classmethod
    def succeeded(
        cls,
        strategy: str,
        results: list[SearchResult],
        notices: list[SearchDegraded] | None = None,
        sub_strategies: list[str] | None = None,
    ) -> StrategyOutcome:
        return cls(
            strategy=strategy,
            is_ok=True,
            results=results,
            notices=notices or [],
            sub_strategies=sub_strategies or [],
        )

    @classmethod
    def failed(cls, strategy: str, reason: str) -> StrategyOutcome:
        return cls(strategy=strategy, is_ok=False, reason=reason)


class SearchOutcome(BaseModel):
    """Final answer of a retrieval ladder, including how it was produced."""

    model_config = ConfigDict(frozen=True)

    results: list[SearchResult]
    strategy: str
    mode: SearchMode
    notices: list[SearchDegraded] = Field(default_factory=list)
    sub_strategies: list[str] = Field(
        default_factory=list, description="Strategies that fed a fused result, in order."
    )

    @property
    def degraded(self) -> bool:
        return bool(self.notices)
