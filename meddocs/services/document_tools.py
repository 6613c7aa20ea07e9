"""Caller-facing document operations with a uniform success envelope.

Every operation returns ``{"success": True, ...}`` on success and
``{"success": False, "error": <str>, "errorType": <str>, "message": <str>}``
on failure; no exception crosses this boundary.  :meth:`DocumentTools.call_tool`
dispatches by tool name and validates the raw argument dict against the
closed models in :mod:`meddocs.models.tools`.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from meddocs.config.tuning import PipelineTuning
from meddocs.interfaces.ner_provider import count_by_label, filter_by_label
from meddocs.models.document import MedicalDocument, MedicalEntity
from meddocs.models.extraction import FileReference
from meddocs.models.search import ListFilter, SearchMode
from meddocs.models.tools import (
    AnalyzePatientHistoryArgs,
    ChunkAndEmbedArgs,
    ExtractEntitiesArgs,
    FindSimilarCasesArgs,
    GenerateEmbeddingArgs,
    HybridSearchArgs,
    InsightContext,
    ListDocumentsArgs,
    MedicalInsightsArgs,
    SearchDocumentsArgs,
    SemanticSearchArgs,
    UploadDocumentArgs,
)
from meddocs.services.output_formatter import ResultFormatter
from meddocs.services.patient_history import PatientHistoryAnalyzer
from meddocs.utils.errors import NotFoundError, ValidationError
from meddocs.utils.logging import get_logger

if TYPE_CHECKING:
    from meddocs.interfaces.document_store import IDocumentStore
    from meddocs.services.ingestion.ingestion_service import IngestionPipeline
    from meddocs.services.retrieval.fusion import RetrievalFusion

_SUMMARY_CHARS = 300
_ENTITY_CONTEXT_CHARS = 100
_SEARCH_TERMS_SHOWN = 10
_INSIGHT_ENTITIES = 5


def _tool(failure_message: str) -> Callable:
    """Wrap a tool coroutine in the success/failure envelope."""

    def decorator(func: Callable[..., Awaitable[dict[str, Any]]]) -> Callable:
        @functools.wraps(func)
        async def wrapper(self: DocumentTools, *args: Any, **kwargs: Any) -> dict[str, Any]:
            try:
                payload = await func(self, *args, **kwargs)
            except Exception as exc:
                self._logger.warning("tool_failed", tool=func.__name__, error=str(exc))
                failure: dict[str, Any] = {
                    "success": False,
                    "error": str(exc) or type(exc).__name__,
                    "errorType": type(exc).__name__,
                    "message": failure_message,
                }
                query = getattr(args[0], "query", None) if args else None
                if query is not None:
                    failure["query"] = query
                return failure
            return {"success": True, **payload}

        return wrapper

    return decorator


class DocumentTools:
    """The operation surface shared by the HTTP API, the CLI and tool callers.

    Parameters
    ----------
    ingestion:
        Ingestion pipeline (documents, chunks, embedding records, NER).
    retrieval:
        Document and chunk retrieval.
    store:
        Document store, used directly for listing and lookup.
    formatter:
        Shapes results for callers.
    tuning:
        Defaults such as the similar-cases threshold.
    history:
        Per-patient history analysis; built over *store* when omitted.
    """

    def __init__(
        self,
        ingestion: IngestionPipeline,
        retrieval: RetrievalFusion,
        store: IDocumentStore,
        formatter: ResultFormatter | None = None,
        tuning: PipelineTuning | None = None,
        history: PatientHistoryAnalyzer | None = None,
    ) -> None:
        self._ingestion = ingestion
        self._retrieval = retrieval
        self._store = store
        self._tuning = tuning or PipelineTuning()
        self._formatter = formatter or ResultFormatter(self._tuning)
        self._history = history or PatientHistoryAnalyzer(store)
        self._logger = get_logger(__name__)
        self._registry: dict[str, tuple[Callable[[Any], Awaitable[dict[str, Any]]], type[BaseModel]]] = {
            "uploadDocument": (self.upload_document, UploadDocumentArgs),
            "searchDocuments": (self.search_documents, SearchDocumentsArgs),
            "listDocuments": (self.list_documents, ListDocumentsArgs),
            "generateEmbedding": (self.generate_embedding, GenerateEmbeddingArgs),
            "chunkAndEmbedDocument": (self.chunk_and_embed_document, ChunkAndEmbedArgs),
            "semanticSearch": (self.semantic_search, SemanticSearchArgs),
            "hybridSearch": (self.hybrid_search, HybridSearchArgs),
            "extractMedicalEntities": (self.extract_medical_entities, ExtractEntitiesArgs),
            "findSimilarCases": (self.find_similar_cases, FindSimilarCasesArgs),
            "analyzePatientHistory": (self.analyze_patient_history, AnalyzePatientHistoryArgs),
            "getMedicalInsights": (self.get_medical_insights, MedicalInsightsArgs),
        }

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def list_tools(self) -> list[str]:
        return list(self._registry)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Validate *arguments* for tool *name* and run it.

        Unknown tool names and invalid arguments are reported in the
        failure envelope.
        """
        entry = self._registry.get(name)
        if entry is None:
            return {
                "success": False,
                "error": f"Unknown tool: {name}",
                "errorType": "NotFoundError",
                "message": "Tool not found",
            }
        handler, args_model = entry
        try:
            args = args_model.model_validate(arguments or {})
        except PydanticValidationError as exc:
            self._logger.info("tool_arguments_rejected", tool=name, errors=exc.error_count())
            return {
                "success": False,
                "error": str(exc),
                "errorType": "ValidationError",
                "message": f"Invalid arguments for {name}",
            }
        self._logger.info("tool_called", tool=name)
        return await handler(args)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @_tool("Failed to upload and process document")
    async def upload_document(self, args: UploadDocumentArgs) -> dict[str, Any]:
        file_ref: FileReference | None = None
        if args.file_buffer:
            file_ref = FileReference.from_base64(args.file_buffer, args.file_type)
        elif args.file_path:
            file_ref = FileReference(path=args.file_path, file_type=args.file_type)

        result = await self._ingestion.ingest(
            title=args.title,
            content=args.content,
            file_ref=file_ref,
            metadata=args.metadata.model_dump(exclude_none=True),
        )
        return {
            "message": f'Medical document "{args.title}" processed and uploaded successfully',
            **self._formatter.format_ingestion(result),
        }

    @_tool("Failed to search documents")
    async def search_documents(self, args: SearchDocumentsArgs) -> dict[str, Any]:
        threshold = (
            self._retrieval.default_threshold(args.mode) if args.threshold is None else args.threshold
        )
        outcome = await self._retrieval.search(
            args.query,
            limit=args.limit,
            threshold=threshold,
            filter=args.filter,
            mode=args.mode,
            context=args.context,
        )
        return {
            "query": args.query,
            **self._formatter.format_search_outcome(outcome),
            "searchParameters": {
                "limit": args.limit,
                "threshold": threshold,
                "mode": args.mode.value,
                "filter": _filter_dump(args.filter),
            },
        }

    @_tool("Failed to list documents")
    async def list_documents(self, args: ListDocumentsArgs) -> dict[str, Any]:
        documents, total = await asyncio.gather(
            self._store.find_documents(args.filter, args.limit, args.offset),
            self._store.count_documents(args.filter),
        )
        return {
            "documents": [self._formatter.format_listing_row(d) for d in documents],
            "pagination": self._formatter.pagination(args.limit, args.offset, total),
            "filter": _filter_dump(args.filter),
        }

    @_tool("Failed to get document")
    async def get_document(self, document_id: str) -> dict[str, Any]:
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return {"document": self._formatter.format_document(document)}

    @_tool("Failed to delete document")
    async def delete_document(self, document_id: str) -> dict[str, Any]:
        if not await self._ingestion.delete_document(document_id):
            raise NotFoundError(f"Document {document_id} not found")
        return {"documentId": document_id, "deleted": True}

    # ------------------------------------------------------------------
    # Embeddings and chunks
    # ------------------------------------------------------------------

    @_tool("Failed to generate and store embedding")
    async def generate_embedding(self, args: GenerateEmbeddingArgs) -> dict[str, Any]:
        record_id, vector = await self._ingestion.store_embedding(
            args.text, args.metadata.model_dump(exclude_none=True)
        )
        return {
            "id": record_id,
            "dimensions": len(vector),
            "model": self._ingestion.model_info().name,
            "textLength": len(args.text),
        }

    @_tool("Failed to chunk and embed document")
    async def chunk_and_embed_document(self, args: ChunkAndEmbedArgs) -> dict[str, Any]:
        meta = args.metadata
        result = await self._ingestion.ingest_chunked(
            text=args.text,
            chunk_size=args.chunk_size,
            overlap=args.overlap,
            document_id=meta.document_id,
            title=meta.title,
            patient_id=meta.patient_id,
            document_type=meta.document_type.value if meta.document_type else None,
            source=meta.source,
        )
        return self._formatter.format_chunk_ingestion(result)

    @_tool("Failed to perform semantic search")
    async def semantic_search(self, args: SemanticSearchArgs) -> dict[str, Any]:
        results = await self._retrieval.search_chunks(
            args.query, limit=args.top_k, threshold=args.threshold, filter=args.filter
        )
        return {
            "query": args.query,
            "resultsFound": len(results),
            "searchParameters": {
                "topK": args.top_k,
                "threshold": args.threshold,
                "filter": _filter_dump(args.filter),
            },
            "results": [self._formatter.format_chunk_result(r) for r in results],
        }

    @_tool("Failed to perform hybrid search")
    async def hybrid_search(self, args: HybridSearchArgs) -> dict[str, Any]:
        retrieval = self._retrieval.with_weights(args.vector_weight, args.text_weight)
        outcome = await retrieval.search(
            args.query,
            limit=args.top_k,
            threshold=args.threshold,
            filter=args.filter,
            mode=SearchMode.HYBRID,
        )
        return {
            "query": args.query,
            "searchType": "hybrid",
            **self._formatter.format_search_outcome(outcome),
            "searchParameters": {
                "topK": args.top_k,
                "vectorWeight": (
                    self._tuning.vector_weight if args.vector_weight is None else args.vector_weight
                ),
                "textWeight": (
                    self._tuning.text_weight if args.text_weight is None else args.text_weight
                ),
                "threshold": args.threshold,
                "filter": _filter_dump(args.filter),
            },
        }

    # ------------------------------------------------------------------
    # Medical analysis
    # ------------------------------------------------------------------

    @_tool("Failed to extract medical entities")
    async def extract_medical_entities(self, args: ExtractEntitiesArgs) -> dict[str, Any]:
        ner_result = await self._ingestion.tag_entities(args.text)
        entities = ner_result.entities
        if args.entity_types:
            entities = filter_by_label(entities, args.entity_types)

        if args.document_id:
            await self._ingestion.refresh_entities(args.document_id, entities)

        return {
            "entitiesFound": len(entities),
            "confidence": ner_result.confidence,
            "entitiesByType": count_by_label(entities),
            "entities": [
                self._formatter.format_entity(e, context_chars=_ENTITY_CONTEXT_CHARS)
                for e in entities
            ],
            "documentUpdated": bool(args.document_id),
        }

    @_tool("Failed to find similar cases")
    async def find_similar_cases(self, args: FindSimilarCasesArgs) -> dict[str, Any]:
        """Find documents resembling a reference document or a set of terms.

        The reference is *document_id* when given, otherwise the most
        recent document of *patient_id*.  Its entity texts are combined
        with the explicit symptoms, conditions and medications into one
        query.  The reference document and patient are excluded from the
        results.
        """
        reference = await self._reference_document(args)
        terms = [e.text for e in reference.medical_entities] if reference else []
        terms += [*args.symptoms, *args.conditions, *args.medications]
        if not terms:
            raise ValidationError("No search criteria provided")

        outcome = await self._retrieval.search(
            " ".join(terms),
            limit=args.limit * self._tuning.overfetch_factor,
            threshold=self._tuning.similar_cases_threshold,
            mode=SearchMode.VECTOR,
        )
        reference_entities = reference.medical_entities if reference else []
        cases = [
            {
                "id": hit.document.id,
                "title": hit.document.title,
                "patientId": hit.document.metadata.patient_id,
                "documentType": (
                    hit.document.metadata.document_type.value
                    if hit.document.metadata.document_type
                    else None
                ),
                "similarity": hit.score,
                "commonEntities": _common_entities(reference_entities, hit.document.medical_entities),
                "summary": hit.document.content[:_SUMMARY_CHARS] + "...",
            }
            for hit in outcome.results
            if not _excluded(hit.document, args)
        ][: args.limit]

        return {
            "searchCriteria": {
                "patientId": args.patient_id,
                "documentId": args.document_id,
                "searchTerms": terms[:_SEARCH_TERMS_SHOWN],
            },
            "similarCasesFound": len(cases),
            "cases": cases,
            "strategy": outcome.strategy,
            "degraded": outcome.degraded,
        }

    @_tool("Failed to analyze patient history")
    async def analyze_patient_history(self, args: AnalyzePatientHistoryArgs) -> dict[str, Any]:
        return await self._history.analyze(args.patient_id, args.analysis_type, args.date_range)

    @_tool("Failed to get medical insights")
    async def get_medical_insights(self, args: MedicalInsightsArgs) -> dict[str, Any]:
        """Vector search for *query*, steered by the optional patient context.

        Each hit is reduced to the sentences mentioning the query terms and
        the entities that match the query or the context's conditions and
        medications.
        """
        context = args.context or InsightContext()
        outcome = await self._retrieval.search(
            args.query,
            limit=args.limit,
            threshold=self._tuning.insights_threshold,
            mode=SearchMode.VECTOR,
            context=_render_context(context) or None,
        )
        insights = [
            {
                "documentId": hit.document.id,
                "title": hit.document.title,
                "relevanceScore": hit.score,
                "documentType": (
                    hit.document.metadata.document_type.value
                    if hit.document.metadata.document_type
                    else None
                ),
                "insight": self._formatter.insight_excerpt(hit.document.content, args.query),
                "relevantEntities": [
                    self._formatter.format_entity(e)
                    for e in _insight_entities(hit.document.medical_entities, args.query, context)
                ],
                "patientContext": (
                    "Similar case" if hit.document.metadata.patient_id else "General reference"
                ),
            }
            for hit in outcome.results
        ]
        return {
            "query": args.query,
            "context": args.context.model_dump(by_alias=True, exclude_none=True) if args.context else None,
            "insightsFound": len(insights),
            "insights": insights,
            "strategy": outcome.strategy,
            "degraded": outcome.degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _reference_document(self, args: FindSimilarCasesArgs) -> MedicalDocument | None:
        if args.document_id:
            return await self._store.get_document(args.document_id)
        if args.patient_id:
            latest = await self._store.find_documents(ListFilter(patient_id=args.patient_id), 1)
            return latest[0] if latest else None
        return None


def _filter_dump(filter: BaseModel) -> dict[str, Any]:
    return filter.model_dump(mode="json", by_alias=True, exclude_none=True)


def _excluded(document: MedicalDocument, args: FindSimilarCasesArgs) -> bool:
    if args.document_id and document.id == args.document_id:
        return True
    return bool(args.patient_id) and document.metadata.patient_id == args.patient_id


def _render_context(context: InsightContext) -> str:
    parts = []
    if context.patient_age is not None:
        parts.append(f"Age: {context.patient_age}")
    if context.gender:
        parts.append(f"Gender: {context.gender}")
    if context.conditions:
        parts.append(f"Conditions: {', '.join(context.conditions)}")
    if context.medications:
        parts.append(f"Medications: {', '.join(context.medications)}")
    return "; ".join(parts)


def _insight_entities(
    entities: list[MedicalEntity], query: str, context: InsightContext
) -> list[MedicalEntity]:
    """Entities named in *query* or naming one of the context's conditions or medications."""
    query = query.lower()
    watched = [t.lower() for t in (*context.conditions, *context.medications)]
    relevant = [
        e
        for e in entities
        if e.text.lower() in query or any(term in e.text.lower() for term in watched)
    ]
    return relevant[:_INSIGHT_ENTITIES]


def _common_entities(
    reference: list[MedicalEntity], candidate: list[MedicalEntity]
) -> list[dict[str, Any]]:
    """Entities present in both lists, matched on lower-cased text and label.

    ``frequency`` counts the matching pairs.
    """
    shared: dict[tuple[str, str], int] = {}
    for ref in reference:
        for other in candidate:
            if ref.label == other.label and ref.text.lower() == other.text.lower():
                key = (ref.text.lower(), ref.label)
                shared[key] = shared.get(key, 0) + 1
    return [
        {"text": text, "label": label, "frequency": frequency}
        for (text, label), frequency in shared.items()
    ]
