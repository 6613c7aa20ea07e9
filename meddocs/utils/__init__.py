"""Utility modules for meddocs.

- **errors** -- exception hierarchy rooted at MedDocsError; each stage
  raises its own subclass so callers can handle failures granularly.
- **logging** -- structlog setup with console output in development and
  JSON in production.
- **concurrency** -- shared one-shot initialization and paced batching.
- **text_normalizer** -- embedding preprocessing, keyword relevance
  scoring (rapidfuzz) and substring matching.
"""

from meddocs.utils.concurrency import SharedInitializer, paced_batches
from meddocs.utils.errors import (
    ConfigurationError,
    DimensionMismatchError,
    EmbeddingError,
    ExtractionError,
    MedDocsError,
    NotFoundError,
    SearchUnavailableError,
    StorageError,
    ValidationError,
)
from meddocs.utils.logging import configure_logging, get_logger
from meddocs.utils.text_normalizer import (
    clean_extracted_text,
    contains_substring,
    lexical_score,
    preprocess_for_embedding,
    query_terms,
)

__all__ = [
    "ConfigurationError",
    "DimensionMismatchError",
    "EmbeddingError",
    "ExtractionError",
    "MedDocsError",
    "NotFoundError",
    "SearchUnavailableError",
    "SharedInitializer",
    "StorageError",
    "ValidationError",
    "clean_extracted_text",
    "configure_logging",
    "contains_substring",
    "get_logger",
    "lexical_score",
    "paced_batches",
    "preprocess_for_embedding",
    "query_terms",
]
