"""meddocs FastAPI application entry point.

Wires together providers, services and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging at import time.  ``_build_all`` is also used by the CLI,
so both entry points run the same components.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from meddocs import __version__
from meddocs.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from meddocs.api.routes import router as api_router
from meddocs.config.loader import load_config
from meddocs.config.settings import Settings
from meddocs.config.tuning import PipelineTuning
from meddocs.interfaces.embedding_provider import IEmbeddingProvider
from meddocs.interfaces.extractor_provider import IExtractorProvider
from meddocs.providers.document_store.chromadb_document_store import ChromaDocumentStore
from meddocs.providers.embedding.fastembed_embedding_provider import FastEmbedEmbeddingProvider
from meddocs.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from meddocs.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from meddocs.providers.embedding.sentence_transformer_embedding_provider import (
    SentenceTransformerEmbeddingProvider,
)
from meddocs.providers.ner.pattern_ner_provider import PatternNERProvider
from meddocs.providers.ocr.tesseract_provider import TesseractOCRProvider
from meddocs.providers.pdf.pymupdf_provider import PyMuPDFExtractorProvider
from meddocs.services.document_tools import DocumentTools
from meddocs.services.embedding_service import EmbeddingOrchestrator
from meddocs.services.extraction_service import ExtractionService
from meddocs.services.ingestion import IngestionPipeline, TextChunker
from meddocs.services.output_formatter import ResultFormatter
from meddocs.services.patient_history import PatientHistoryAnalyzer
from meddocs.services.retrieval import RetrievalFusion
from meddocs.utils.errors import ConfigurationError
from meddocs.utils.logging import configure_logging, get_logger

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider factories
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the first available embedding provider.

    With ``EMBEDDING_PROVIDER=auto`` the order is OpenAI (key set) ->
    FastEmbed -> sentence-transformers -> Nomic/Ollama.

    Raises
    ------
    ConfigurationError
        If no configured provider is available.
    """
    model = app_settings.embedding_model or None
    factories = {
        "openai": lambda: OpenAIEmbeddingProvider(settings=app_settings),
        "fastembed": lambda: FastEmbedEmbeddingProvider(model_name=model),
        "sentence_transformer": lambda: SentenceTransformerEmbeddingProvider(model_name=model),
        "nomic": lambda: NomicEmbeddingProvider(settings=app_settings),
    }
    tried: list[str] = []
    for name in app_settings.get_available_embedding_providers():
        factory = factories.get(name)
        if factory is None:
            raise ConfigurationError(f"Unknown embedding provider: {name}")
        provider = factory()
        if provider.is_available():
            _logger.info("embedding_provider_selected", provider=provider.get_provider_name())
            return provider
        tried.append(name)
    raise ConfigurationError(f"No embedding provider available (tried: {', '.join(tried)})")


def _build_extractors(app_settings: Settings, app_config: dict[str, Any]) -> list[IExtractorProvider]:
    """Extractors ordered by ``extraction.provider_priority``."""
    available: dict[str, IExtractorProvider] = {
        "pymupdf": PyMuPDFExtractorProvider(),
        "tesseract": TesseractOCRProvider(lang=app_settings.tesseract_lang),
    }
    priority = app_config.get("extraction", {}).get("provider_priority") or list(available)
    return [available[name] for name in priority if name in available]


def _build_all(app_settings: Settings, app_config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    app_config = app_config if app_config is not None else config
    tuning = PipelineTuning.from_config(app_config)

    embedding_provider = _build_embedding_provider(app_settings)
    store = ChromaDocumentStore(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_prefix=app_settings.chromadb_collection_prefix,
    )
    extractors = _build_extractors(app_settings, app_config)
    min_confidence = app_config.get("extraction", {}).get(
        "min_confidence", app_settings.ocr_min_confidence
    )
    extraction = ExtractionService(providers=extractors, min_confidence=min_confidence)
    ner = PatternNERProvider()
    embeddings = EmbeddingOrchestrator(embedding_provider, tuning)

    ingestion = IngestionPipeline(
        extraction=extraction,
        ner=ner,
        embeddings=embeddings,
        store=store,
        chunker=TextChunker(tuning.chunk_size, tuning.chunk_overlap, tuning.min_chunk_chars),
        tuning=tuning,
    )
    retrieval = RetrievalFusion(store, embeddings, tuning)
    formatter = ResultFormatter(tuning)
    tools = DocumentTools(
        ingestion,
        retrieval,
        store,
        formatter=formatter,
        tuning=tuning,
        history=PatientHistoryAnalyzer(store),
    )

    provider_registry: dict[str, Any] = {
        "embedding": embedding_provider.is_available(),
        "embedding_provider": embedding_provider.get_provider_name(),
        "document_store": store.is_available(),
        "extractors": extraction.get_available_providers(),
        "ner": ner.is_available(),
    }

    return {
        "settings": app_settings,
        "tuning": tuning,
        "store": store,
        "embeddings": embeddings,
        "ingestion": ingestion,
        "retrieval": retrieval,
        "tools": tools,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build all components on startup and attach them to ``app.state``."""
    components = _build_all(settings)
    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=__version__,
        environment=settings.app_env,
        embedding_provider=components["provider_registry"]["embedding_provider"],
        extractors=components["provider_registry"]["extractors"],
    )

    yield

    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="meddocs API",
        version=__version__,
        description=(
            "Ingest medical documents (images, PDFs, text), tag medical entities, "
            "embed them and answer hybrid vector + keyword retrieval queries."
        ),
        lifespan=_lifespan,
    )

    # last added = first executed
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "meddocs.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
