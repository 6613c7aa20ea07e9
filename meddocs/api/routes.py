"""FastAPI routes for meddocs.

Every route delegates to :class:`~meddocs.services.document_tools.DocumentTools`
and returns its envelope.  A failed envelope is returned with a status code
derived from its ``errorType`` (404 for unknown documents, 422 for invalid
input, 503 when every retrieval tier failed, 400 otherwise).  Services are
resolved from ``app.state`` (populated by ``_build_all`` in ``main.py``)
through ``Depends`` using the ``Annotated`` pattern.

Route map::

    POST   /api/v1/documents            upload and ingest a document
    GET    /api/v1/documents            list documents with pagination
    GET    /api/v1/documents/{id}       fetch one document
    DELETE /api/v1/documents/{id}       delete a document and its chunks
    POST   /api/v1/search               search with a chosen mode
    POST   /api/v1/search/hybrid        hybrid search with optional weights
    POST   /api/v1/embeddings           embed and store a free-standing text
    POST   /api/v1/chunks               chunk, embed and store a text
    POST   /api/v1/chunks/search        semantic search over chunks
    POST   /api/v1/entities             tag medical entities
    POST   /api/v1/similar-cases        find documents similar to a case
    POST   /api/v1/patients/{id}/history  analyze one patient's documents
    POST   /api/v1/insights             medical insights for a question
    GET    /api/v1/tools                list tool names
    POST   /api/v1/tools/{name}         call a tool by name
    GET    /api/v1/stats                store statistics
    GET    /api/v1/health               health check + provider status
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from meddocs import __version__
from meddocs.api.middleware import status_for_name
from meddocs.api.schemas import (
    HealthResponse,
    PatientHistoryRequest,
    ToolCallRequest,
    ToolListResponse,
)
from meddocs.interfaces.document_store import IDocumentStore
from meddocs.models.document import DocumentType
from meddocs.models.ingestion import StoreStats
from meddocs.models.search import ListFilter
from meddocs.models.tools import (
    AnalyzePatientHistoryArgs,
    ChunkAndEmbedArgs,
    ExtractEntitiesArgs,
    FindSimilarCasesArgs,
    GenerateEmbeddingArgs,
    HybridSearchArgs,
    ListDocumentsArgs,
    MedicalInsightsArgs,
    SearchDocumentsArgs,
    SemanticSearchArgs,
    UploadDocumentArgs,
)
from meddocs.services.document_tools import DocumentTools
from meddocs.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


def _get_tools(request: Request) -> DocumentTools:
    return request.app.state.tools


def _get_store(request: Request) -> IDocumentStore:
    return request.app.state.store


ToolsDep = Annotated[DocumentTools, Depends(_get_tools)]
StoreDep = Annotated[IDocumentStore, Depends(_get_store)]


def _reply(envelope: dict[str, Any], success_status: int = 200) -> JSONResponse:
    if envelope.get("success"):
        return JSONResponse(status_code=success_status, content=envelope)
    return JSONResponse(status_code=status_for_name(envelope.get("errorType")), content=envelope)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post("/documents", summary="Upload and ingest a medical document")
async def upload_document(body: UploadDocumentArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.upload_document(body), success_status=201)


@router.get("/documents", summary="List documents")
async def list_documents(
    tools: ToolsDep,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    patient_id: str | None = Query(default=None, alias="patientId"),
    document_type: DocumentType | None = Query(default=None, alias="documentType"),
    tags: list[str] | None = Query(default=None),
    processed: bool | None = Query(default=None),
) -> JSONResponse:
    args = ListDocumentsArgs(
        limit=limit,
        offset=offset,
        filter=ListFilter(
            patient_id=patient_id, document_type=document_type, tags=tags, processed=processed
        ),
    )
    return _reply(await tools.list_documents(args))


@router.get("/documents/{document_id}", summary="Fetch one document")
async def get_document(document_id: str, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.get_document(document_id))


@router.delete("/documents/{document_id}", summary="Delete a document and its chunks")
async def delete_document(document_id: str, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.delete_document(document_id))


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@router.post("/search", summary="Search documents")
async def search_documents(body: SearchDocumentsArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.search_documents(body))


@router.post("/search/hybrid", summary="Hybrid search with optional fusion weights")
async def hybrid_search(body: HybridSearchArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.hybrid_search(body))


@router.post("/chunks/search", summary="Semantic search over chunks")
async def semantic_search(body: SemanticSearchArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.semantic_search(body))


# ---------------------------------------------------------------------------
# Embeddings, chunks and entities
# ---------------------------------------------------------------------------


@router.post("/embeddings", summary="Embed and store a text")
async def generate_embedding(body: GenerateEmbeddingArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.generate_embedding(body), success_status=201)


@router.post("/chunks", summary="Chunk, embed and store a text")
async def chunk_and_embed(body: ChunkAndEmbedArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.chunk_and_embed_document(body), success_status=201)


@router.post("/entities", summary="Extract medical entities")
async def extract_entities(body: ExtractEntitiesArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.extract_medical_entities(body))


@router.post("/similar-cases", summary="Find similar cases")
async def find_similar_cases(body: FindSimilarCasesArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.find_similar_cases(body))


@router.post("/patients/{patient_id}/history", summary="Analyze a patient's document history")
async def analyze_patient_history(
    patient_id: str, body: PatientHistoryRequest, tools: ToolsDep
) -> JSONResponse:
    args = AnalyzePatientHistoryArgs(
        patient_id=patient_id, analysis_type=body.analysis_type, date_range=body.date_range
    )
    return _reply(await tools.analyze_patient_history(args))


@router.post("/insights", summary="Medical insights for a question")
async def get_medical_insights(body: MedicalInsightsArgs, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.get_medical_insights(body))


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------


@router.get("/tools", response_model=ToolListResponse, summary="List tool names")
async def list_tools(tools: ToolsDep) -> ToolListResponse:
    return ToolListResponse(tools=tools.list_tools())


@router.post("/tools/{name}", summary="Call a tool by name")
async def call_tool(name: str, body: ToolCallRequest, tools: ToolsDep) -> JSONResponse:
    return _reply(await tools.call_tool(name, body.arguments))


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@router.get("/stats", response_model=StoreStats, summary="Store statistics")
async def stats(store: StoreDep) -> StoreStats:
    # StorageError propagates to ErrorHandlingMiddleware
    return await store.get_stats()


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version and provider availability."""
    providers: dict[str, Any] = dict(getattr(request.app.state, "provider_registry", {}))
    store: IDocumentStore | None = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            providers["document_count"] = (await store.get_stats()).document_count
        except Exception as exc:
            _logger.warning("health_stats_failed", error=str(exc))
            providers["document_count"] = None
    status = "healthy" if all(v for k, v in providers.items() if isinstance(v, bool)) else "degraded"
    return HealthResponse(status=status, version=__version__, providers=providers)
