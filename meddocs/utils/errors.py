"""Custom exception hierarchy for meddocs.

All application exceptions inherit from :class:`MedDocsError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "tesseract", "chromadb", "openai_embedding") caused the
failure.

The hierarchy is organized by pipeline stage:

    MedDocsError  (base -- catch-all for any meddocs error)
    +-- ExtractionError          (no usable text from a file or content)
    +-- EmbeddingError           (model / API failure)
    |   +-- DimensionMismatchError  (vectors of different lengths compared)
    +-- ValidationError          (caller input below minimums, bad filters)
    +-- NotFoundError            (unknown document id)
    +-- ConfigurationError       (startup / invalid tuning, e.g. overlap >= size)
    +-- StorageError             (document store unreachable or failing)
    +-- SearchUnavailableError   (every retrieval tier failed to execute)

A degraded search (vector fell back to lexical, etc.) is NOT an exception;
it is reported as a :class:`~meddocs.models.search.SearchDegraded` notice.
"""


class MedDocsError(Exception):
    """Base exception for all meddocs errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which collaborator triggered the error.
    ``__str__`` prefixes the provider name in brackets, e.g.
    ``[chromadb] Collection is unavailable``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class ExtractionError(MedDocsError):
    """Raised when no usable text could be extracted (OCR, PDF, or content)."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(MedDocsError):
    """Raised when an embedding model or API call fails."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DimensionMismatchError(EmbeddingError):
    """Raised when two vectors of different dimensions are compared.

    Also raised when a provider returns a vector whose length differs from
    the dimension it declares.
    """

    def __init__(
        self,
        message: str = "Embedding dimensions do not match",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Caller input errors
# ---------------------------------------------------------------------------

class ValidationError(MedDocsError):
    """Raised when caller input is below a minimum or otherwise unusable."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(MedDocsError):
    """Raised when a document id does not exist in the store."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration / infrastructure errors
# ---------------------------------------------------------------------------

class ConfigurationError(MedDocsError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(MedDocsError):
    """Raised when a document-store operation fails."""

    def __init__(
        self,
        message: str = "Document store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SearchUnavailableError(MedDocsError):
    """Raised when every tier of a retrieval fallback ladder failed to run.

    The ``reasons`` list keeps the per-tier failure descriptions in the
    order the tiers were attempted.
    """

    def __init__(
        self,
        message: str = "Search is unavailable",
        provider_name: str | None = None,
        reasons: list[str] | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self.reasons = list(reasons or [])
