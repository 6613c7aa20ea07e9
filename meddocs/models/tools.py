"""Argument models for the caller-facing document tools.

Tool callers send camelCase JSON (``patientId``, ``chunkSize``).  Each
model is closed, so unknown keys are rejected instead of ignored.  The HTTP
API reuses the same models as request bodies.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from meddocs.models.document import DocumentType
from meddocs.models.search import ChunkFilter, DateRange, ListFilter, SearchFilter, SearchMode

_ARGS = ConfigDict(frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True)


class UploadMetadata(BaseModel):
    model_config = _ARGS

    patient_id: str | None = None
    document_type: DocumentType | None = None
    tags: list[str] = Field(default_factory=list)


class UploadDocumentArgs(BaseModel):
    """Either ``content``, ``file_path`` or ``file_buffer`` (base64) must be given."""

    model_config = _ARGS

    title: str = Field(min_length=1)
    content: str | None = None
    file_path: str | None = None
    file_buffer: str | None = Field(default=None, repr=False)
    file_type: str | None = None
    metadata: UploadMetadata = Field(default_factory=UploadMetadata)

    @model_validator(mode="after")
    def _has_source(self) -> UploadDocumentArgs:
        if not (self.content or self.file_path or self.file_buffer):
            raise ValueError("Provide content, filePath or fileBuffer")
        return self


class SearchDocumentsArgs(BaseModel):
    model_config = _ARGS

    query: str
    limit: int = Field(default=10, ge=1, le=50)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    mode: SearchMode = SearchMode.HYBRID
    context: str | None = None
    filter: SearchFilter = Field(default_factory=SearchFilter)


class ListDocumentsArgs(BaseModel):
    model_config = _ARGS

    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    filter: ListFilter = Field(default_factory=ListFilter)


class EmbeddingArgsMetadata(BaseModel):
    model_config = _ARGS

    source: str | None = None
    patient_id: str | None = None
    document_type: DocumentType | None = None
    tags: list[str] = Field(default_factory=list)


class GenerateEmbeddingArgs(BaseModel):
    model_config = _ARGS

    text: str
    metadata: EmbeddingArgsMetadata = Field(default_factory=EmbeddingArgsMetadata)


class ChunkArgsMetadata(BaseModel):
    model_config = _ARGS

    document_id: str | None = None
    title: str | None = None
    patient_id: str | None = None
    document_type: DocumentType | None = None
    source: str | None = None


class ChunkAndEmbedArgs(BaseModel):
    model_config = _ARGS

    text: str
    chunk_size: int = Field(default=500, ge=1, le=1000)
    overlap: int = Field(default=100, ge=0)
    metadata: ChunkArgsMetadata = Field(default_factory=ChunkArgsMetadata)


class SemanticSearchArgs(BaseModel):
    model_config = _ARGS

    query: str
    top_k: int = Field(default=5, ge=1, le=20)
    threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    filter: ChunkFilter = Field(default_factory=ChunkFilter)


class HybridSearchArgs(BaseModel):
    model_config = _ARGS

    query: str
    top_k: int = Field(default=10, ge=1, le=50)
    vector_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    text_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    filter: SearchFilter = Field(default_factory=SearchFilter)


class ExtractEntitiesArgs(BaseModel):
    model_config = _ARGS

    text: str = Field(min_length=1)
    document_id: str | None = None
    entity_types: list[str] | None = None


class FindSimilarCasesArgs(BaseModel):
    model_config = _ARGS

    document_id: str | None = None
    patient_id: str | None = None
    symptoms: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)
    limit: int = Field(default=10, ge=1, le=50)


class AnalysisType(str, Enum):
    TIMELINE = "timeline"
    SUMMARY = "summary"
    TRENDS = "trends"


class AnalyzePatientHistoryArgs(BaseModel):
    model_config = _ARGS

    patient_id: str = Field(min_length=1)
    analysis_type: AnalysisType = AnalysisType.SUMMARY
    date_range: DateRange | None = None


class InsightContext(BaseModel):
    """Patient context folded into the insight query."""

    model_config = _ARGS

    patient_age: int | None = Field(default=None, ge=0)
    gender: str | None = None
    conditions: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)


class MedicalInsightsArgs(BaseModel):
    model_config = _ARGS

    query: str = Field(min_length=1)
    context: InsightContext | None = None
    limit: int = Field(default=5, ge=1, le=20)
