"""meddocs domain models -- re-exports all public model classes.

Submodules by concern:
    - document.py   -- stored records (documents, chunks, embedding records)
    - extraction.py -- file references, extracted text, NER output
    - search.py     -- filters, requests, strategy outcomes, results
    - ingestion.py  -- ingestion results, model info, store statistics
"""

from __future__ import annotations

from meddocs.models.document import (
    ChunkMetadata,
    DocumentChunk,
    DocumentMetadata,
    DocumentType,
    EmbeddingMetadata,
    EmbeddingRecord,
    MedicalDocument,
    MedicalEntity,
)
from meddocs.models.extraction import ExtractionResult, FileReference, NERResult
from meddocs.models.ingestion import (
    ChunkIngestionResult,
    IngestionResult,
    ModelInfo,
    StoreStats,
)
from meddocs.models.search import (
    ChunkFilter,
    ChunkSearchResult,
    DateRange,
    ListFilter,
    SearchDegraded,
    SearchFilter,
    SearchMode,
    SearchOutcome,
    SearchRequest,
    SearchResult,
    StrategyOutcome,
)

__all__ = [
    "ChunkFilter",
    "ChunkIngestionResult",
    "ChunkMetadata",
    "ChunkSearchResult",
    "DateRange",
    "DocumentChunk",
    "DocumentMetadata",
    "DocumentType",
    "EmbeddingMetadata",
    "EmbeddingRecord",
    "ExtractionResult",
    "FileReference",
    "IngestionResult",
    "ListFilter",
    "MedicalDocument",
    "MedicalEntity",
    "ModelInfo",
    "NERResult",
    "SearchDegraded",
    "SearchFilter",
    "SearchMode",
    "SearchOutcome",
    "SearchRequest",
    "SearchResult",
    "StoreStats",
    "StrategyOutcome",
]
