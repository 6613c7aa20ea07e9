"""Orchestrator for medical document ingestion.

Two flows share the same collaborators:

**Whole-document ingestion** (:meth:`IngestionPipeline.ingest`):
    resolve text -> tag entities -> embed title + content + entities -> store

**Chunked ingestion** (:meth:`IngestionPipeline.ingest_chunked`):
    resolve text -> split into word windows -> embed + store each window

Whole-document ingestion is all-or-nothing: any stage failing fails the
call and nothing is stored.  Chunked ingestion is best-effort: a window
that fails to embed or store is logged and counted, and the remaining
windows still go through.

All dependencies are injected via the constructor, so extractors, the
tagger, the embedding provider and the store can be swapped without
changing this class.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from meddocs.config.tuning import PipelineTuning
from meddocs.models.document import (
    ChunkMetadata,
    DocumentChunk,
    DocumentMetadata,
    EmbeddingMetadata,
    EmbeddingRecord,
    MedicalDocument,
    MedicalEntity,
    utc_now,
)
from meddocs.models.extraction import ExtractionResult, FileReference, NERResult
from meddocs.models.ingestion import ChunkIngestionResult, IngestionResult, ModelInfo
from meddocs.services.ingestion.chunker import TextChunker
from meddocs.utils.errors import ExtractionError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from meddocs.interfaces.document_store import IDocumentStore
    from meddocs.interfaces.ner_provider import INERProvider
    from meddocs.services.embedding_service import EmbeddingOrchestrator
    from meddocs.services.extraction_service import ExtractionService

logger = structlog.get_logger(logger_name=__name__)


class IngestionPipeline:
    """Coordinates extraction, tagging, embedding and persistence.

    Parameters
    ----------
    extraction:
        Turns file references into text.
    ner:
        Tags medical entities in the extracted text.
    embeddings:
        Cleans, embeds and validates texts.
    store:
        Persists documents, chunks and embedding records.
    chunker:
        Splits text into overlapping word windows.
    tuning:
        Chunk sizes, minimum lengths and preview sizes.
    """

    def __init__(
        self,
        extraction: ExtractionService,
        ner: INERProvider,
        embeddings: EmbeddingOrchestrator,
        store: IDocumentStore,
        chunker: TextChunker | None = None,
        tuning: PipelineTuning | None = None,
    ) -> None:
        self._extraction = extraction
        self._ner = ner
        self._embeddings = embeddings
        self._store = store
        self._tuning = tuning or PipelineTuning()
        self._chunker = chunker or TextChunker(
            self._tuning.chunk_size, self._tuning.chunk_overlap, self._tuning.min_chunk_chars
        )

    # ------------------------------------------------------------------
    # Whole-document ingestion
    # ------------------------------------------------------------------

    async def ingest(
        self,
        title: str,
        content: str | None = None,
        file_ref: FileReference | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IngestionResult:
        """Extract, tag, embed and store one document.

        Parameters
        ----------
        title:
            Document title.
        content:
            Raw text.  Ignored when *file_ref* is given.
        file_ref:
            File to extract text from.
        metadata:
            ``patient_id``, ``document_type`` and ``tags``; any other
            :class:`DocumentMetadata` field is also accepted.

        Returns
        -------
        IngestionResult
            The new document id, text length, entity count, embedding
            dimension, extraction info and the first entities found.

        Raises
        ------
        ExtractionError
            If no text could be resolved.
        EmbeddingError
            If the embedding call fails.
        """
        text, extraction = await self._resolve_text(content, file_ref)

        ner_result = await self._ner.extract_entities(text)
        logger.info(
            "entities_tagged",
            title=title,
            entities=len(ner_result.entities),
            confidence=round(ner_result.confidence, 4),
        )

        vector = await self._embeddings.embed_document(title, text, ner_result.entities)
        info = self._embeddings.model_info()

        meta_fields: dict[str, Any] = dict(metadata or {})
        if file_ref is not None:
            meta_fields.setdefault("file_type", file_ref.resolved_type or None)
            if file_ref.data is not None:
                meta_fields.setdefault("size", len(file_ref.data))
        meta_fields.update(
            processed=True,
            uploaded_at=utc_now(),
            embedding_model=info.name,
            embedding_dimension=len(vector),
        )

        document = MedicalDocument(
            title=title,
            content=text,
            embedding=vector,
            medical_entities=ner_result.entities,
            metadata=DocumentMetadata.model_validate(meta_fields),
        )
        document_id = await self._store.insert_document(document)

        logger.info(
            "document_ingested",
            document_id=document_id,
            text_length=len(text),
            entities=len(ner_result.entities),
            dimension=len(vector),
        )
        return IngestionResult(
            document_id=document_id,
            title=title,
            text_length=len(text),
            entity_count=len(ner_result.entities),
            embedding_dimension=len(vector),
            extraction=extraction,
            entities=ner_result.entities[: self._tuning.ingest_entity_preview],
        )

    # ------------------------------------------------------------------
    # Chunked ingestion
    # ------------------------------------------------------------------

    async def ingest_chunked(
        self,
        text: str | None = None,
        file_ref: FileReference | None = None,
        chunk_size: int | None = None,
        overlap: int | None = None,
        document_id: str | None = None,
        title: str | None = None,
        patient_id: str | None = None,
        document_type: str | None = None,
        source: str | None = None,
    ) -> ChunkIngestionResult:
        """Split a text into windows and embed and store each one.

        Entities are tagged once over the whole text; each chunk keeps the
        entities whose span lies inside its window.

        When *document_id* is given, the chunks previously stored for that
        document are deleted after the new windows are stored, so re-running
        replaces rather than appends.  If no window could be stored, the
        previous chunks are kept.

        Raises
        ------
        ValidationError
            If the source text is shorter than the configured minimum.
        ConfigurationError
            If ``overlap >= chunk_size``.
        """
        size = self._tuning.chunk_size if chunk_size is None else chunk_size
        shared = self._tuning.chunk_overlap if overlap is None else overlap
        TextChunker.validate(size, shared)

        source_text, _ = await self._resolve_text(text, file_ref)
        if len(source_text) < self._tuning.min_chunk_source_chars:
            raise ValidationError(
                f"Text must be at least {self._tuning.min_chunk_source_chars} characters "
                f"for chunking (got {len(source_text)})"
            )

        info = self._embeddings.model_info()
        base_meta = ChunkMetadata(
            document_id=document_id,
            title=title,
            patient_id=patient_id,
            document_type=document_type,
            source=source,
            embedding_model=info.name,
            dimension=info.dimension,
        )

        ner_result = await self._ner.extract_entities(source_text)

        windows = list(self._chunker.windows(source_text, size, shared))
        logger.info(
            "chunking_complete",
            document_id=document_id,
            total_chunks=len(windows),
            chunk_size=size,
            overlap=shared,
        )

        chunk_ids: list[str] = []
        failed: list[int] = []
        for index, window in enumerate(windows):
            try:
                vector = await self._embeddings.embed(window.text)
                chunk = DocumentChunk(
                    chunk_index=index,
                    total_chunks=len(windows),
                    text=window.text,
                    embedding=vector,
                    word_count=self._chunker.count_words(window.text),
                    metadata=base_meta.model_copy(
                        update={"dimension": len(vector), "created_at": utc_now()}
                    ),
                    entities=[
                        e for e in ner_result.entities
                        if e.start >= window.start and e.end <= window.end
                    ],
                )
                chunk_ids.append(await self._store.insert_chunk(chunk))
            except Exception as exc:
                failed.append(index)
                logger.warning(
                    "chunk_embedding_failed",
                    document_id=document_id,
                    chunk_index=index,
                    error=str(exc),
                )

        # previous chunks are removed only once at least one new chunk is stored
        replaced = 0
        if document_id and chunk_ids:
            replaced = await self._store.delete_chunks(document_id, keep=chunk_ids)

        logger.info(
            "chunked_ingestion_complete",
            document_id=document_id,
            successful=len(chunk_ids),
            failed=len(failed),
            replaced=replaced,
        )
        return ChunkIngestionResult(
            document_id=document_id,
            total_chunks=len(windows),
            successful_chunks=len(chunk_ids),
            failed_chunk_indexes=failed,
            chunk_ids=chunk_ids,
            chunk_size=size,
            overlap=shared,
            model=info.name,
            dimension=info.dimension,
            entity_count=len(ner_result.entities),
            entities=ner_result.entities,
            replaced_chunks=replaced,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reembed_document(self, document_id: str) -> MedicalDocument:
        """Recompute a stored document's embedding and patch it in place."""
        document = await self._require(document_id)
        vector = await self._embeddings.embed_document(
            document.title, document.content, document.medical_entities
        )
        info = self._embeddings.model_info()
        return await self._store.update_document(
            document_id,
            {
                "embedding": vector,
                "metadata": {"embedding_model": info.name, "embedding_dimension": len(vector)},
            },
        )

    async def refresh_entities(
        self, document_id: str, entities: list[MedicalEntity] | None = None
    ) -> MedicalDocument:
        """Replace a stored document's entities.

        With *entities* omitted, NER is re-run over the stored content.
        """
        if entities is None:
            document = await self._require(document_id)
            entities = (await self._ner.extract_entities(document.content)).entities
        return await self._store.update_document(document_id, {"medical_entities": entities})

    async def tag_entities(self, text: str) -> NERResult:
        return await self._ner.extract_entities(text)

    def model_info(self) -> ModelInfo:
        return self._embeddings.model_info()

    async def store_embedding(
        self, text: str, metadata: dict[str, Any] | None = None
    ) -> tuple[str, list[float]]:
        """Embed *text* and persist it as a free-standing record.

        Returns the record id and the vector.
        """
        if len(text.strip()) < self._tuning.min_text_chars:
            raise ValidationError(
                f"Text must be at least {self._tuning.min_text_chars} characters long"
            )
        vector = await self._embeddings.embed(text)
        info = self._embeddings.model_info()
        record = EmbeddingRecord(
            text=text,
            embedding=vector,
            metadata=EmbeddingMetadata.model_validate(
                {**(metadata or {}), "embedding_model": info.name, "dimension": len(vector)}
            ),
        )
        record_id = await self._store.insert_embedding_record(record)
        logger.info("embedding_stored", record_id=record_id, dimension=len(vector))
        return record_id, vector

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and every chunk stored under its id."""
        deleted = await self._store.delete_document(document_id)
        chunks = await self._store.delete_chunks(document_id)
        logger.info("document_removed", document_id=document_id, found=deleted, chunks=chunks)
        return deleted

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _resolve_text(
        self, content: str | None, file_ref: FileReference | None
    ) -> tuple[str, ExtractionResult | None]:
        extraction: ExtractionResult | None = None
        if file_ref is not None:
            extraction = await self._extraction.extract(file_ref)
            text = extraction.text
        else:
            text = content or ""
        text = text.strip()
        if not text:
            raise ExtractionError("No text content could be extracted from the document")
        return text, extraction

    async def _require(self, document_id: str) -> MedicalDocument:
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document
