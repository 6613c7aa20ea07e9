"""Abstract base class for text extractors (OCR engines, PDF parsers).

Extractors turn a :class:`~meddocs.models.extraction.FileReference` into
plain text with an explicit confidence.  The extraction service tries the
extractors that support a file's type in priority order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from meddocs.models.extraction import ExtractionResult, FileReference


# Concrete implementations: PyMuPDFExtractorProvider, TesseractOCRProvider
# Located in: meddocs/providers/pdf/ and meddocs/providers/ocr/
class IExtractorProvider(ABC):
    """Contract for collaborators that extract text from files."""

    @abstractmethod
    async def extract(self, file_ref: FileReference, hint: str | None = None) -> ExtractionResult:
        """Extract text from *file_ref*.

        Parameters
        ----------
        file_ref:
            The file to read (path or in-memory bytes).
        hint:
            Optional free-form hint, e.g. an OCR language code.

        Returns
        -------
        ExtractionResult
            Text (possibly empty, never ``None``), confidence in ``[0, 1]``,
            page count where meaningful, and the method used.

        Raises
        ------
        meddocs.utils.errors.ExtractionError
            If the engine fails outright.
        """

    @abstractmethod
    def supports(self, file_type: str) -> bool:
        """Return ``True`` if this extractor handles files of *file_type*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return an identifier such as ``"tesseract"`` or ``"pymupdf"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if required libraries/binaries are present."""
