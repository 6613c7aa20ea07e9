"""Document store implementations."""

from meddocs.providers.document_store.chromadb_document_store import ChromaDocumentStore

__all__ = ["ChromaDocumentStore"]
