"""Ingestion results, embedding model info and store statistics."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from meddocs.models.document import MedicalEntity
from meddocs.models.extraction import ExtractionResult


class ModelInfo(BaseModel):
    """Identity of the embedding model behind an orchestrator."""

    model_config = ConfigDict(frozen=True)

    name: str
    dimension: int
    is_remote: bool


class IngestionResult(BaseModel):
    """Outcome of ingesting one whole document."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    title: str
    text_length: int
    entity_count: int
    embedding_dimension: int
    extraction: ExtractionResult | None = None
    entities: list[MedicalEntity] = Field(
        default_factory=list, description="First few entities, for display."
    )


class ChunkIngestionResult(BaseModel):
    """Outcome of chunked ingestion: best-effort, one record per chunk."""

    model_config = ConfigDict(frozen=True)

    document_id: str | None = None
    total_chunks: int
    successful_chunks: int
    failed_chunk_indexes: list[int] = Field(default_factory=list)
    chunk_ids: list[str] = Field(default_factory=list)
    chunk_size: int
    overlap: int
    model: str
    dimension: int
    entity_count: int = 0
    entities: list[MedicalEntity] = Field(default_factory=list)
    replaced_chunks: int = 0


class StoreStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_count: int
    chunk_count: int
    embedding_count: int
    dimension: int | None = None
