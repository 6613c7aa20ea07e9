"""ChromaDB document store adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IDocumentStore`.
Three cosine-space collections share one client:

    ``{prefix}_documents``   whole-document embeddings plus metadata
    ``{prefix}_document_chunks``  per-chunk embeddings
    ``{prefix}_embeddings``  free-standing text embeddings

ChromaDB metadata values must be str, int, float or bool, so list fields
are stored comma-joined, entities as a JSON string, and ``None`` values
are omitted.  Scalar filters (patient, type, processed, upload window)
are pushed into ``where`` clauses; tag overlap is checked in Python.
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from collections.abc import Collection, Iterator
from datetime import datetime
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.  The bundled
# PostHog client clashes with newer posthog releases, so it is switched
# off via the env var, the SDK flag and the client Settings.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from meddocs.interfaces.document_store import IDocumentStore
from meddocs.models.document import (
    ChunkMetadata,
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
from meddocs.utils.errors import MedDocsError, NotFoundError, StorageError
from meddocs.utils.text_normalizer import contains_substring, lexical_score, query_terms

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SIZE = 5000
_INCLUDE_ALL = ["documents", "metadatas", "embeddings"]


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Embedding function that is never called.

    Every record arrives with a pre-computed vector; passing this keeps
    ChromaDB from downloading its default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "meddocs stores pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


class ChromaDocumentStore(IDocumentStore):
    """Document store backed by ChromaDB with local persistence."""

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_prefix: str = "meddocs",
    ) -> None:
        self._persist_directory = persist_directory
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._documents = self._open_collection(f"{collection_prefix}_documents")
        self._chunks = self._open_collection(f"{collection_prefix}_document_chunks")
        self._records = self._open_collection(f"{collection_prefix}_embeddings")
        logger.info(
            "chromadb_store_opened",
            path=persist_directory,
            documents=self._documents.count(),
            chunks=self._chunks.count(),
        )

    def _open_collection(self, name: str) -> Any:
        # Collections persisted with a different embedding function reject
        # the noop one; reopen them with whatever was stored.
        try:
            return self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            return self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # IDocumentStore implementation
    # ------------------------------------------------------------------
    # The chromadb client is synchronous; every call runs in a worker thread.

    async def insert_document(self, document: MedicalDocument) -> str:
        return await asyncio.to_thread(self._insert_document, document)

    async def update_document(self, document_id: str, patch: dict[str, Any]) -> MedicalDocument:
        return await asyncio.to_thread(self._update_document, document_id, patch)

    async def get_document(self, document_id: str) -> MedicalDocument | None:
        return await asyncio.to_thread(self._get_document, document_id)

    async def delete_document(self, document_id: str) -> bool:
        return await asyncio.to_thread(self._delete_document, document_id)

    async def find_documents(
        self, filter: ListFilter, limit: int, offset: int = 0
    ) -> list[MedicalDocument]:
        return await asyncio.to_thread(self._find_documents, filter, limit, offset)

    async def count_documents(self, filter: ListFilter) -> int:
        return await asyncio.to_thread(self._count_documents, filter)

    async def vector_search(
        self,
        vector: list[float],
        limit: int,
        num_candidates: int,
        filter: SearchFilter,
    ) -> list[SearchResult]:
        return await asyncio.to_thread(self._vector_search, vector, limit, num_candidates, filter)

    async def text_search(self, query: str, limit: int, filter: SearchFilter) -> list[SearchResult]:
        return await asyncio.to_thread(self._text_search, query, limit, filter)

    async def substring_search(
        self, query: str, limit: int, filter: SearchFilter, score: float
    ) -> list[SearchResult]:
        return await asyncio.to_thread(self._substring_search, query, limit, filter, score)

    async def get_embedding_dimension(self) -> int | None:
        return await asyncio.to_thread(self._get_embedding_dimension)

    async def insert_chunk(self, chunk: DocumentChunk) -> str:
        return await asyncio.to_thread(self._insert_chunk, chunk)

    async def delete_chunks(self, document_id: str, keep: Collection[str] = ()) -> int:
        return await asyncio.to_thread(self._delete_chunks, document_id, frozenset(keep))

    async def chunk_vector_search(
        self, vector: list[float], limit: int, filter: ChunkFilter
    ) -> list[ChunkSearchResult]:
        return await asyncio.to_thread(self._chunk_vector_search, vector, limit, filter)

    async def insert_embedding_record(self, record: EmbeddingRecord) -> str:
        return await asyncio.to_thread(self._insert_embedding_record, record)

    async def get_stats(self) -> StoreStats:
        return await asyncio.to_thread(self._get_stats)

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the documents collection is accessible."""
        try:
            self._documents.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Documents (synchronous)
    # ------------------------------------------------------------------

    def _insert_document(self, document: MedicalDocument) -> str:
        if not document.embedding:
            raise StorageError(
                message="Documents must carry an embedding before they are stored",
                provider_name=self.get_provider_name(),
            )
        document_id = document.id or str(uuid.uuid4())
        try:
            self._documents.add(
                ids=[document_id],
                documents=[document.content],
                embeddings=[document.embedding],
                metadatas=[self._document_to_metadata(document)],
            )
        except Exception as exc:
            raise self._wrap("insert_document", exc) from exc
        logger.info(
            "document_inserted",
            document_id=document_id,
            dimension=len(document.embedding),
            entities=len(document.medical_entities),
        )
        return document_id

    def _update_document(self, document_id: str, patch: dict[str, Any]) -> MedicalDocument:
        current = self._get_document(document_id)
        if current is None:
            raise NotFoundError(
                message=f"Document {document_id} not found",
                provider_name=self.get_provider_name(),
            )

        update = {k: v for k, v in patch.items() if k != "metadata"}
        if "metadata" in patch:
            merged_meta = {**current.metadata.model_dump(), **patch["metadata"]}
            update["metadata"] = DocumentMetadata.model_validate(merged_meta)
        if "medical_entities" in update:
            update["medical_entities"] = [
                e if isinstance(e, MedicalEntity) else MedicalEntity.model_validate(e)
                for e in update["medical_entities"]
            ]
        updated = current.model_copy(update=update)
        updated = MedicalDocument.model_validate(updated.model_dump())

        try:
            self._documents.update(
                ids=[document_id],
                documents=[updated.content],
                embeddings=[updated.embedding],
                metadatas=[self._document_to_metadata(updated)],
            )
        except Exception as exc:
            raise self._wrap("update_document", exc) from exc
        logger.info("document_updated", document_id=document_id, fields=sorted(patch))
        return updated

    def _get_document(self, document_id: str) -> MedicalDocument | None:
        try:
            result = self._documents.get(ids=[document_id], include=_INCLUDE_ALL)
        except Exception as exc:
            raise self._wrap("get_document", exc) from exc
        for doc in self._rows_to_documents(result):
            return doc
        return None

    def _delete_document(self, document_id: str) -> bool:
        try:
            existing = self._documents.get(ids=[document_id], include=[])
            if not existing["ids"]:
                return False
            self._documents.delete(ids=[document_id])
        except Exception as exc:
            raise self._wrap("delete_document", exc) from exc
        logger.info("document_deleted", document_id=document_id)
        return True

    def _find_documents(
        self, filter: ListFilter, limit: int, offset: int = 0
    ) -> list[MedicalDocument]:
        matching = [
            doc
            for doc in self._scan_documents(self._where_for(filter))
            if filter.matches(doc)
        ]
        matching.sort(key=lambda d: d.metadata.uploaded_at, reverse=True)
        return matching[offset : offset + limit]

    def _count_documents(self, filter: ListFilter) -> int:
        if filter.is_empty():
            try:
                return self._documents.count()
            except Exception as exc:
                raise self._wrap("count_documents", exc) from exc
        return sum(1 for doc in self._scan_documents(self._where_for(filter)) if filter.matches(doc))

    # ------------------------------------------------------------------
    # Retrieval primitives (synchronous)
    # ------------------------------------------------------------------

    def _vector_search(
        self,
        vector: list[float],
        limit: int,
        num_candidates: int,
        filter: SearchFilter,
    ) -> list[SearchResult]:
        try:
            total = self._documents.count()
            if total == 0 or not self._dimension_matches(self._documents, vector):
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": min(num_candidates, total),
                "include": _INCLUDE_ALL + ["distances"],
            }
            where = self._where_for(filter)
            if where:
                kwargs["where"] = where
            raw = self._documents.query(**kwargs)
        except Exception as exc:
            raise self._wrap("vector_search", exc) from exc

        results: list[SearchResult] = []
        if not raw["ids"] or not raw["ids"][0]:
            return results

        flat = {
            "ids": raw["ids"][0],
            "documents": raw["documents"][0],
            "metadatas": raw["metadatas"][0],
            "embeddings": raw["embeddings"][0] if raw.get("embeddings") is not None else None,
        }
        distances = raw["distances"][0]
        for doc, distance in zip(self._rows_to_documents(flat), distances, strict=True):
            if not filter.matches(doc):
                continue
            similarity = max(0.0, min(1.0, 1.0 - float(distance)))
            results.append(SearchResult(document=doc, score=similarity))

        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug(
            "chromadb_vector_search",
            candidates=len(distances),
            results=len(results[:limit]),
            top_score=results[0].score if results else 0.0,
        )
        return results[:limit]

    def _text_search(self, query: str, limit: int, filter: SearchFilter) -> list[SearchResult]:
        terms = query_terms(query)
        if not terms:
            return []
        results = []
        for doc in self._scan_documents(self._where_for(filter)):
            if not filter.matches(doc):
                continue
            score = lexical_score(terms, doc.title, doc.content)
            if score > 0:
                results.append(SearchResult(document=doc, score=score))
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    def _substring_search(
        self, query: str, limit: int, filter: SearchFilter, score: float
    ) -> list[SearchResult]:
        results = []
        for doc in self._scan_documents(self._where_for(filter)):
            if filter.matches(doc) and contains_substring(query, doc.title, doc.content):
                results.append(SearchResult(document=doc, score=score))
                if len(results) >= limit:
                    break
        return results

    def _get_embedding_dimension(self) -> int | None:
        try:
            return self._stored_dimension(self._documents)
        except Exception as exc:
            raise self._wrap("get_embedding_dimension", exc) from exc

    # ------------------------------------------------------------------
    # Chunks and free-standing embeddings (synchronous)
    # ------------------------------------------------------------------

    def _insert_chunk(self, chunk: DocumentChunk) -> str:
        chunk_id = chunk.id or str(uuid.uuid4())
        meta = chunk.metadata
        metadata = _drop_none(
            {
                "document_id": meta.document_id,
                "title": meta.title,
                "patient_id": meta.patient_id,
                "document_type": meta.document_type.value if meta.document_type else None,
                "source": meta.source,
                "embedding_model": meta.embedding_model,
                "dimension": meta.dimension,
                "created_at": meta.created_at.isoformat(),
                "chunk_index": chunk.chunk_index,
                "total_chunks": chunk.total_chunks,
                "word_count": chunk.word_count,
                "entities": json.dumps([e.model_dump(mode="json") for e in chunk.entities]),
            }
        )
        try:
            self._chunks.add(
                ids=[chunk_id],
                documents=[chunk.text],
                embeddings=[chunk.embedding],
                metadatas=[metadata],
            )
        except Exception as exc:
            raise self._wrap("insert_chunk", exc) from exc
        return chunk_id

    def _delete_chunks(self, document_id: str, keep: frozenset[str]) -> int:
        try:
            existing = self._chunks.get(where={"document_id": document_id}, include=[])
            doomed = [chunk_id for chunk_id in existing["ids"] if chunk_id not in keep]
            count = len(doomed)
            if doomed:
                self._chunks.delete(ids=doomed)
        except Exception as exc:
            raise self._wrap("delete_chunks", exc) from exc
        logger.info("chunks_deleted", document_id=document_id, count=count)
        return count

    def _chunk_vector_search(
        self, vector: list[float], limit: int, filter: ChunkFilter
    ) -> list[ChunkSearchResult]:
        try:
            total = self._chunks.count()
            if total == 0 or not self._dimension_matches(self._chunks, vector):
                return []
            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": min(limit, total),
                "include": _INCLUDE_ALL + ["distances"],
            }
            clauses = [
                {name: value.value if hasattr(value, "value") else value}
                for name, value in filter.model_dump(exclude_none=True).items()
            ]
            where = _combine(clauses)
            if where:
                kwargs["where"] = where
            raw = self._chunks.query(**kwargs)
        except Exception as exc:
            raise self._wrap("chunk_vector_search", exc) from exc

        if not raw["ids"] or not raw["ids"][0]:
            return []
        embeddings = raw["embeddings"][0] if raw.get("embeddings") is not None else None
        results = []
        for i, chunk_id in enumerate(raw["ids"][0]):
            chunk = self._metadata_to_chunk(
                chunk_id,
                raw["documents"][0][i],
                raw["metadatas"][0][i],
                embeddings[i] if embeddings is not None else [],
            )
            if not filter.matches(chunk):
                continue
            similarity = max(0.0, min(1.0, 1.0 - float(raw["distances"][0][i])))
            results.append(ChunkSearchResult(chunk=chunk, score=similarity))
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    def _insert_embedding_record(self, record: EmbeddingRecord) -> str:
        record_id = record.id or str(uuid.uuid4())
        meta = record.metadata
        metadata = _drop_none(
            {
                "source": meta.source,
                "patient_id": meta.patient_id,
                "document_type": meta.document_type.value if meta.document_type else None,
                "tags": ",".join(meta.tags),
                "embedding_model": meta.embedding_model,
                "dimension": meta.dimension,
                "created_at": meta.created_at.isoformat(),
            }
        )
        try:
            self._records.add(
                ids=[record_id],
                documents=[record.text],
                embeddings=[record.embedding],
                metadatas=[metadata],
            )
        except Exception as exc:
            raise self._wrap("insert_embedding_record", exc) from exc
        return record_id

    def _get_stats(self) -> StoreStats:
        try:
            return StoreStats(
                document_count=self._documents.count(),
                chunk_count=self._chunks.count(),
                embedding_count=self._records.count(),
                dimension=self._stored_dimension(self._documents),
            )
        except Exception as exc:
            raise self._wrap("get_stats", exc) from exc

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _wrap(self, operation: str, exc: Exception) -> MedDocsError:
        if isinstance(exc, MedDocsError):
            return exc
        logger.error("chromadb_operation_failed", operation=operation, error=str(exc))
        return StorageError(
            message=f"ChromaDB {operation} failed: {exc}",
            provider_name=self.get_provider_name(),
        )

    def _dimension_matches(self, collection: Any, vector: list[float]) -> bool:
        stored = self._stored_dimension(collection)
        if stored is not None and stored != len(vector):
            logger.warning(
                "vector_dimension_skipped",
                collection=collection.name,
                stored_dimension=stored,
                query_dimension=len(vector),
            )
            return False
        return True

    @staticmethod
    def _stored_dimension(collection: Any) -> int | None:
        if collection.count() == 0:
            return None
        sample = collection.peek(limit=1)
        embeddings = sample.get("embeddings") if sample else None
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def _scan_documents(self, where: dict[str, Any] | None) -> Iterator[MedicalDocument]:
        """Yield every stored document matching *where*, one page at a time."""
        kwargs: dict[str, Any] = {"include": _INCLUDE_ALL}
        if where:
            kwargs["where"] = where
        offset = 0
        while True:
            try:
                page = self._documents.get(**kwargs, limit=_PAGE_SIZE, offset=offset)
            except Exception as exc:
                raise self._wrap("scan", exc) from exc
            yield from self._rows_to_documents(page)
            if len(page["ids"]) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE

    @staticmethod
    def _where_for(filter: SearchFilter) -> dict[str, Any] | None:
        """Translate the scalar filter dimensions to a ChromaDB ``where`` clause."""
        clauses: list[dict[str, Any]] = []
        if filter.patient_id is not None:
            clauses.append({"patient_id": filter.patient_id})
        if filter.document_type is not None:
            clauses.append({"document_type": filter.document_type.value})
        if filter.date_range is not None:
            if filter.date_range.start is not None:
                clauses.append({"uploaded_at_ts": {"$gte": filter.date_range.start.timestamp()}})
            if filter.date_range.end is not None:
                clauses.append({"uploaded_at_ts": {"$lte": filter.date_range.end.timestamp()}})
        processed = getattr(filter, "processed", None)
        if processed is not None:
            clauses.append({"processed": processed})
        return _combine(clauses)

    @staticmethod
    def _document_to_metadata(document: MedicalDocument) -> dict[str, str | int | float | bool]:
        meta = document.metadata
        return _drop_none(
            {
                "title": document.title,
                "patient_id": meta.patient_id,
                "document_type": meta.document_type.value if meta.document_type else None,
                "tags": ",".join(meta.tags),
                "uploaded_at": meta.uploaded_at.isoformat(),
                "uploaded_at_ts": meta.uploaded_at.timestamp(),
                "processed": meta.processed,
                "file_type": meta.file_type,
                "size": meta.size,
                "embedding_model": meta.embedding_model,
                "embedding_dimension": meta.embedding_dimension,
                "entities": json.dumps(
                    [e.model_dump(mode="json") for e in document.medical_entities]
                ),
            }
        )

    @classmethod
    def _rows_to_documents(cls, rows: dict[str, Any]) -> Iterator[MedicalDocument]:
        ids = rows["ids"] or []
        documents = rows.get("documents") or [""] * len(ids)
        metadatas = rows.get("metadatas") or [{}] * len(ids)
        embeddings = rows.get("embeddings")
        for i, doc_id in enumerate(ids):
            vector = embeddings[i] if embeddings is not None and len(embeddings) > i else []
            yield cls._metadata_to_document(doc_id, documents[i] or "", metadatas[i] or {}, vector)

    @staticmethod
    def _metadata_to_document(
        doc_id: str, content: str, meta: dict[str, Any], vector: Any
    ) -> MedicalDocument:
        entities = [MedicalEntity.model_validate(e) for e in json.loads(meta.get("entities") or "[]")]
        return MedicalDocument(
            id=doc_id,
            title=meta.get("title", ""),
            content=content,
            embedding=[float(x) for x in vector],
            medical_entities=entities,
            metadata=DocumentMetadata(
                uploaded_at=datetime.fromisoformat(meta["uploaded_at"]),
                patient_id=meta.get("patient_id"),
                document_type=meta.get("document_type"),
                tags=_split_tags(meta.get("tags", "")),
                processed=bool(meta.get("processed", False)),
                file_type=meta.get("file_type"),
                size=meta.get("size"),
                embedding_model=meta.get("embedding_model"),
                embedding_dimension=meta.get("embedding_dimension"),
            ),
        )

    @staticmethod
    def _metadata_to_chunk(
        chunk_id: str, text: str, meta: dict[str, Any], vector: Any
    ) -> DocumentChunk:
        return DocumentChunk(
            id=chunk_id,
            chunk_index=int(meta.get("chunk_index", 0)),
            total_chunks=int(meta.get("total_chunks", 1)),
            text=text or "",
            embedding=[float(x) for x in vector],
            word_count=int(meta.get("word_count", 0)),
            metadata=ChunkMetadata(
                document_id=meta.get("document_id"),
                title=meta.get("title"),
                patient_id=meta.get("patient_id"),
                document_type=meta.get("document_type"),
                source=meta.get("source"),
                embedding_model=meta.get("embedding_model", ""),
                dimension=int(meta.get("dimension", len(vector))),
                created_at=datetime.fromisoformat(meta["created_at"]),
            ),
            entities=[
                MedicalEntity.model_validate(e) for e in json.loads(meta.get("entities") or "[]")
            ],
        )


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _combine(clauses: list[dict[str, Any]]) -> dict[str, Any] | None:
    # ChromaDB rejects ``$and`` with fewer than two operands.
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _split_tags(value: str | Any) -> list[str]:
    """Split a comma-separated tag string back into a list."""
    if not value or not isinstance(value, str):
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]
