"""Shared pytest fixtures for the meddocs test suite."""

from __future__ import annotations

import hashlib
import math
import re
import uuid
from collections.abc import Collection
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from meddocs.config.tuning import PipelineTuning
from meddocs.interfaces.document_store import IDocumentStore
from meddocs.interfaces.embedding_provider import IEmbeddingProvider
from meddocs.interfaces.extractor_provider import IExtractorProvider
from meddocs.models.document import (
    DocumentChunk,
    DocumentMetadata,
    EmbeddingRecord,
    MedicalDocument,
    MedicalEntity,
)
from meddocs.models.ingestion import StoreStats
from meddocs.models.search import (
    ChunkFilter,
    ChunkSearchResult,
    ListFilter,
    SearchFilter,
    SearchResult,
)
from meddocs.providers.ner.pattern_ner_provider import PatternNERProvider
from meddocs.services.document_tools import DocumentTools
from meddocs.services.embedding_service import EmbeddingOrchestrator
from meddocs.services.extraction_service import ExtractionService
from meddocs.services.ingestion import IngestionPipeline
from meddocs.services.retrieval import RetrievalFusion
from meddocs.utils.errors import NotFoundError, StorageError
from meddocs.utils.text_normalizer import contains_substring, lexical_score, query_terms

# ---------------------------------------------------------------------------
# Embedding
# ---------------------------------------------------------------------------

_EMBEDDING_DIM = 128
_WORD = re.compile(r"\w+")


def _bucket(token: str, dim: int) -> int:
    return int.from_bytes(hashlib.sha256(token.encode("utf-8")).digest()[:4], "little") % dim


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Deterministic bag-of-words vector: each lower-cased word adds 1 to a hashed bucket.

    Texts sharing words get a positive cosine similarity; the same text
    always maps to the same unit vector.
    """
    values = [0.0] * dim
    for token in _WORD.findall(text.lower()):
        values[_bucket(token, dim)] += 1.0
    if not any(values):
        values[_bucket(text, dim)] = 1.0
    magnitude = math.sqrt(sum(v * v for v in values))
    return [v / magnitude for v in values]


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    ``fail_on`` makes :meth:`embed` raise for any text containing the marker.
    """

    def __init__(self, dim: int = _EMBEDDING_DIM, fail_on: str | None = None) -> None:
        self._dim = dim
        self._fail_on = fail_on
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self._fail_on and any(self._fail_on in t for t in texts):
            raise RuntimeError("model crashed")
        return [_hash_to_vector(t, self._dim) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return self._dim

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------


class InMemoryDocumentStore(IDocumentStore):
    """Dict-backed document store.

    Set ``failing = True`` to make every operation raise
    :class:`StorageError`, simulating an unreachable backend.
    """

    def __init__(self) -> None:
        self.documents: dict[str, MedicalDocument] = {}
        self.chunks: dict[str, DocumentChunk] = {}
        self.records: dict[str, EmbeddingRecord] = {}
        self.failing = False

    def _check(self) -> None:
        if self.failing:
            raise StorageError("store is down", provider_name="memory")

    async def insert_document(self, document: MedicalDocument) -> str:
        self._check()
        document_id = document.id or str(uuid.uuid4())
        self.documents[document_id] = document.model_copy(update={"id": document_id})
        return document_id

    async def update_document(self, document_id: str, patch: dict[str, Any]) -> MedicalDocument:
        self._check()
        current = self.documents.get(document_id)
        if current is None:
            raise NotFoundError(f"Document {document_id} not found")
        update = {k: v for k, v in patch.items() if k != "metadata"}
        if "metadata" in patch:
            update["metadata"] = DocumentMetadata.model_validate(
                {**current.metadata.model_dump(), **patch["metadata"]}
            )
        updated = MedicalDocument.model_validate(current.model_copy(update=update).model_dump())
        self.documents[document_id] = updated
        return updated

    async def get_document(self, document_id: str) -> MedicalDocument | None:
        self._check()
        return self.documents.get(document_id)

    async def delete_document(self, document_id: str) -> bool:
        self._check()
        return self.documents.pop(document_id, None) is not None

    async def find_documents(
        self, filter: ListFilter, limit: int, offset: int = 0
    ) -> list[MedicalDocument]:
        self._check()
        matching = [d for d in self.documents.values() if filter.matches(d)]
        matching.sort(key=lambda d: d.metadata.uploaded_at, reverse=True)
        return matching[offset : offset + limit]

    async def count_documents(self, filter: ListFilter) -> int:
        self._check()
        return sum(1 for d in self.documents.values() if filter.matches(d))

    async def vector_search(
        self, vector: list[float], limit: int, num_candidates: int, filter: SearchFilter
    ) -> list[SearchResult]:
        self._check()
        results = [
            SearchResult(document=d, score=max(0.0, min(1.0, _cosine(vector, d.embedding))))
            for d in self.documents.values()
            if len(d.embedding) == len(vector) and filter.matches(d)
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    async def text_search(self, query: str, limit: int, filter: SearchFilter) -> list[SearchResult]:
        self._check()
        terms = query_terms(query)
        results = []
        for d in self.documents.values():
            score = lexical_score(terms, d.title, d.content)
            if score > 0 and filter.matches(d):
                results.append(SearchResult(document=d, score=score))
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    async def substring_search(
        self, query: str, limit: int, filter: SearchFilter, score: float
    ) -> list[SearchResult]:
        self._check()
        return [
            SearchResult(document=d, score=score)
            for d in self.documents.values()
            if filter.matches(d) and contains_substring(query, d.title, d.content)
        ][:limit]

    async def get_embedding_dimension(self) -> int | None:
        self._check()
        for d in self.documents.values():
            return len(d.embedding)
        return None

    async def insert_chunk(self, chunk: DocumentChunk) -> str:
        self._check()
        chunk_id = chunk.id or str(uuid.uuid4())
        self.chunks[chunk_id] = chunk.model_copy(update={"id": chunk_id})
        return chunk_id

    async def delete_chunks(self, document_id: str, keep: Collection[str] = ()) -> int:
        self._check()
        doomed = [
            k for k, c in self.chunks.items() if c.metadata.document_id == document_id and k not in keep
        ]
        for key in doomed:
            del self.chunks[key]
        return len(doomed)

    async def chunk_vector_search(
        self, vector: list[float], limit: int, filter: ChunkFilter
    ) -> list[ChunkSearchResult]:
        self._check()
        results = [
            ChunkSearchResult(chunk=c, score=max(0.0, min(1.0, _cosine(vector, c.embedding))))
            for c in self.chunks.values()
            if len(c.embedding) == len(vector) and filter.matches(c)
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    async def insert_embedding_record(self, record: EmbeddingRecord) -> str:
        self._check()
        record_id = record.id or str(uuid.uuid4())
        self.records[record_id] = record.model_copy(update={"id": record_id})
        return record_id

    async def get_stats(self) -> StoreStats:
        self._check()
        return StoreStats(
            document_count=len(self.documents),
            chunk_count=len(self.chunks),
            embedding_count=len(self.records),
            dimension=await self.get_embedding_dimension(),
        )

    def get_provider_name(self) -> str:
        return "memory"

    def is_available(self) -> bool:
        return not self.failing


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_document(
    doc_id: str,
    title: str = "Clinical note",
    content: str = "Patient reports chest pain.",
    embedding: list[float] | None = None,
    entities: list[MedicalEntity] | None = None,
    **metadata: Any,
) -> MedicalDocument:
    """Build a stored-looking document with an id and optional metadata fields."""
    return MedicalDocument(
        id=doc_id,
        title=title,
        content=content,
        embedding=embedding if embedding is not None else _hash_to_vector(content),
        medical_entities=entities or [],
        metadata=DocumentMetadata(processed=True, **metadata),
    )


def make_entity(text: str, label: str, confidence: float = 0.9, start: int = 0) -> MedicalEntity:
    return MedicalEntity(
        text=text, label=label, confidence=confidence, start=start, end=start + len(text)
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tuning() -> PipelineTuning:
    """Default tuning without the pause between embedding batches."""
    return PipelineTuning(embed_batch_delay=0.0)


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def embeddings(embedding_provider: MockEmbeddingProvider, tuning: PipelineTuning) -> EmbeddingOrchestrator:
    return EmbeddingOrchestrator(embedding_provider, tuning)


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def mock_store() -> IDocumentStore:
    """MagicMock document store; every retrieval primitive returns nothing by default."""
    mock = MagicMock(spec=IDocumentStore)
    mock.get_provider_name.return_value = "mock-store"
    mock.is_available.return_value = True
    mock.get_embedding_dimension = AsyncMock(return_value=None)
    mock.vector_search = AsyncMock(return_value=[])
    mock.text_search = AsyncMock(return_value=[])
    mock.substring_search = AsyncMock(return_value=[])
    mock.chunk_vector_search = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def mock_extractor() -> IExtractorProvider:
    """Mock extractor that handles PDFs and returns a short clinical text."""
    from meddocs.models.extraction import ExtractionResult

    mock = MagicMock(spec=IExtractorProvider)
    mock.get_provider_name.return_value = "mock-pdf"
    mock.is_available.return_value = True
    mock.supports.side_effect = lambda file_type: file_type == "pdf"
    mock.extract = AsyncMock(
        return_value=ExtractionResult(
            text="Discharge summary: hypertension managed with lisinopril 10 mg.",
            confidence=1.0,
            page_count=1,
            method="pdf_text",
        )
    )
    return mock


@pytest.fixture
def ingestion(
    embeddings: EmbeddingOrchestrator,
    memory_store: InMemoryDocumentStore,
    mock_extractor: IExtractorProvider,
    tuning: PipelineTuning,
) -> IngestionPipeline:
    return IngestionPipeline(
        extraction=ExtractionService([mock_extractor]),
        ner=PatternNERProvider(),
        embeddings=embeddings,
        store=memory_store,
        tuning=tuning,
    )


@pytest.fixture
def retrieval(
    memory_store: InMemoryDocumentStore, embeddings: EmbeddingOrchestrator, tuning: PipelineTuning
) -> RetrievalFusion:
    return RetrievalFusion(memory_store, embeddings, tuning)


@pytest.fixture
def tools(
    ingestion: IngestionPipeline,
    retrieval: RetrievalFusion,
    memory_store: InMemoryDocumentStore,
    tuning: PipelineTuning,
) -> DocumentTools:
    return DocumentTools(ingestion, retrieval, memory_store, tuning=tuning)


@pytest.fixture
def sample_note() -> str:
    return (
        "Patient is a 64 year old with hypertension and type 2 diabetes. "
        "Presented with chest pain radiating to the left arm. "
        "Started aspirin 81 mg daily and metformin 500 mg twice daily. "
        "Seen by Dr. Patel on 2024-03-12."
    )
