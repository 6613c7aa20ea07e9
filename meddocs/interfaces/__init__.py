"""Public interface definitions for all external collaborators.

Every collaborator of the pipeline is reached only through the abstract
base classes in this package:

    Interface            Concrete providers
    ------------------   ----------------------------------------------
    IEmbeddingProvider   sentence-transformers, fastembed, OpenAI, Ollama
    IExtractorProvider   Tesseract (images), PyMuPDF (PDFs)
    INERProvider         dictionary + suffix-pattern tagger
    IDocumentStore       ChromaDB (documents, chunks, embeddings)
"""

from meddocs.interfaces.document_store import IDocumentStore
from meddocs.interfaces.embedding_provider import IEmbeddingProvider
from meddocs.interfaces.extractor_provider import IExtractorProvider
from meddocs.interfaces.ner_provider import (
    ENTITY_LABELS,
    INERProvider,
    count_by_label,
    filter_by_label,
)

__all__ = [
    "ENTITY_LABELS",
    "IDocumentStore",
    "IEmbeddingProvider",
    "IExtractorProvider",
    "INERProvider",
    "count_by_label",
    "filter_by_label",
]
