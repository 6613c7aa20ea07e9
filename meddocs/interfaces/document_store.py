"""Abstract base class for the persistent document store.

The store owns persistence, metadata filtering and raw vector/keyword
hits.  It does not fuse or rank across strategies; that belongs to
:class:`~meddocs.services.retrieval.fusion.RetrievalFusion`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection
from typing import Any

from meddocs.models.document import DocumentChunk, EmbeddingRecord, MedicalDocument
from meddocs.models.ingestion import StoreStats
from meddocs.models.search import (
    ChunkFilter,
    ChunkSearchResult,
    ListFilter,
    SearchFilter,
    SearchResult,
)


# Concrete implementation: ChromaDocumentStore (meddocs/providers/document_store/)
class IDocumentStore(ABC):
    """Contract for document, chunk and embedding-record persistence.

    All methods raise :class:`~meddocs.utils.errors.StorageError` when the
    backend fails.
    """

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_document(self, document: MedicalDocument) -> str:
        """Persist *document* and return its newly assigned id."""

    @abstractmethod
    async def update_document(self, document_id: str, patch: dict[str, Any]) -> MedicalDocument:
        """Patch-merge fields onto a stored document and return the result.

        ``patch`` may carry ``title``, ``content``, ``embedding``,
        ``medical_entities`` and ``metadata`` (a dict merged into the
        existing metadata).

        Raises
        ------
        meddocs.utils.errors.NotFoundError
            If *document_id* does not exist.
        """

    @abstractmethod
    async def get_document(self, document_id: str) -> MedicalDocument | None:
        """Return the document or ``None``."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document; return ``False`` if it did not exist."""

    @abstractmethod
    async def find_documents(
        self, filter: ListFilter, limit: int, offset: int = 0
    ) -> list[MedicalDocument]:
        """Return one page of matching documents, newest upload first."""

    @abstractmethod
    async def count_documents(self, filter: ListFilter) -> int:
        """Return the number of documents matching *filter*."""

    # ------------------------------------------------------------------
    # Retrieval primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def vector_search(
        self,
        vector: list[float],
        limit: int,
        num_candidates: int,
        filter: SearchFilter,
    ) -> list[SearchResult]:
        """Nearest neighbours by cosine similarity, best first.

        *num_candidates* bounds how many neighbours are examined before
        filtering; at most *limit* results are returned.  Stored vectors
        whose dimension differs from *vector* are skipped, never scored.
        """

    @abstractmethod
    async def text_search(self, query: str, limit: int, filter: SearchFilter) -> list[SearchResult]:
        """Keyword relevance over title and content, best first."""

    @abstractmethod
    async def substring_search(
        self, query: str, limit: int, filter: SearchFilter, score: float
    ) -> list[SearchResult]:
        """Case-insensitive containment over title and content.

        Every hit carries the same fixed *score*.
        """

    @abstractmethod
    async def get_embedding_dimension(self) -> int | None:
        """Dimension of stored document vectors, or ``None`` when empty."""

    # ------------------------------------------------------------------
    # Chunks and free-standing embeddings
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_chunk(self, chunk: DocumentChunk) -> str:
        """Persist one chunk and return its id."""

    @abstractmethod
    async def delete_chunks(self, document_id: str, keep: Collection[str] = ()) -> int:
        """Delete the chunks of *document_id* whose ids are not in *keep*.

        Returns how many were removed.
        """

    @abstractmethod
    async def chunk_vector_search(
        self, vector: list[float], limit: int, filter: ChunkFilter
    ) -> list[ChunkSearchResult]:
        """Nearest chunks by cosine similarity, best first."""

    @abstractmethod
    async def insert_embedding_record(self, record: EmbeddingRecord) -> str:
        """Persist a free-standing embedding and return its id."""

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        """Return record counts and the stored vector dimension."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return an identifier such as ``"chromadb"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the backend is reachable."""
