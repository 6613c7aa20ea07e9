"""Stored record models: documents, chunks and free-standing embeddings.

All models are Pydantic v2 and frozen; updates produce new instances via
``model_copy(update=...)``.  Field names are snake_case in Python and
camelCase on the wire (``patientId``, ``documentType``, ``uploadedAt``),
matching the tool-call payloads callers send.

Lifecycle:
    1. Ingestion builds a :class:`MedicalDocument` with ``processed=True``
       once text, entities and embedding all exist.
    2. Re-embedding or entity refresh patch-merges fields on the stored record.
    3. Chunked ingestion creates :class:`DocumentChunk` records which are
       never updated, only bulk-replaced per ``document_id``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so all comparisons are tz-aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DocumentType(str, Enum):
    """Closed set of medical document kinds."""

    CLINICAL_NOTE = "clinical_note"
    LAB_REPORT = "lab_report"
    PRESCRIPTION = "prescription"
    DISCHARGE_SUMMARY = "discharge_summary"
    OTHER = "other"


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class MedicalEntity(_WireModel):
    """A span of text tagged by the NER collaborator."""

    text: str
    # Labels come from the NER collaborator and are passed through unchecked.
    label: str
    confidence: float = Field(ge=0.0, le=1.0)
    start: int = Field(ge=0)
    end: int = Field(ge=0)
    context: str | None = None


class DocumentMetadata(_WireModel):
    """Metadata stored alongside a document and used for filtering."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    uploaded_at: datetime = Field(default_factory=utc_now)
    patient_id: str | None = None
    document_type: DocumentType | None = None
    tags: list[str] = Field(default_factory=list)
    processed: bool = False
    file_type: str | None = None
    size: int | None = Field(default=None, ge=0, description="Source file size in bytes.")
    embedding_model: str | None = None
    embedding_dimension: int | None = None

    @field_validator("uploaded_at")
    @classmethod
    def _uploaded_at_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        # Tags are a set; keep first-seen order for stable output.
        return list(dict.fromkeys(t.strip() for t in value if t and t.strip()))


class MedicalDocument(_WireModel):
    """A fully processed document: text, entities and whole-document embedding."""

    id: str | None = Field(default=None, description="Assigned by the document store.")
    title: str
    content: str
    embedding: list[float] = Field(default_factory=list)
    medical_entities: list[MedicalEntity] = Field(default_factory=list)
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)


class ChunkMetadata(_WireModel):
    """Subset of the parent document's metadata plus embedding provenance."""

    document_id: str | None = None
    title: str | None = None
    patient_id: str | None = None
    document_type: DocumentType | None = None
    source: str | None = None
    embedding_model: str
    dimension: int
    created_at: datetime = Field(default_factory=utc_now)


class DocumentChunk(_WireModel):
    """A word-window slice of a document, embedded independently."""

    id: str | None = None
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    text: str
    embedding: list[float]
    word_count: int = Field(ge=0)
    metadata: ChunkMetadata
    # tagged over the whole source text; offsets are source offsets
    entities: list[MedicalEntity] = Field(default_factory=list)


class EmbeddingMetadata(_WireModel):
    source: str | None = None
    patient_id: str | None = None
    document_type: DocumentType | None = None
    tags: list[str] = Field(default_factory=list)
    embedding_model: str
    dimension: int
    created_at: datetime = Field(default_factory=utc_now)


class EmbeddingRecord(_WireModel):
    """A free-standing text and its embedding (not tied to a document)."""

    id: str | None = None
    text: str
    embedding: list[float]
    metadata: EmbeddingMetadata
