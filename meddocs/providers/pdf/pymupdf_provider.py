"""PDF text extractor backed by PyMuPDF.

Reads the embedded text layer page by page.  Digital PDFs have exact text,
so confidence is 1.0 whenever any text was found and 0.0 for image-only
scans (which the extraction service may then route elsewhere).
"""

from __future__ import annotations

import asyncio
from typing import Any

import fitz  # PyMuPDF

from meddocs.interfaces.extractor_provider import IExtractorProvider
from meddocs.models.extraction import ExtractionResult, FileReference
from meddocs.utils.errors import ExtractionError
from meddocs.utils.logging import get_logger
from meddocs.utils.text_normalizer import clean_extracted_text

_METADATA_KEYS = ("title", "author", "subject", "creator", "producer")


class PyMuPDFExtractorProvider(IExtractorProvider):
    """Extracts the text layer of PDF files."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    async def extract(self, file_ref: FileReference, hint: str | None = None) -> ExtractionResult:
        if not self.supports(file_ref.resolved_type):
            raise ExtractionError(
                f"Unsupported file type for PDF extraction: {file_ref.resolved_type or 'unknown'}",
                provider_name=self.get_provider_name(),
            )
        try:
            text, page_count, info = await asyncio.to_thread(self._read_pdf, file_ref)
        except Exception as exc:
            self._logger.error("pdf_extraction_failed", provider="pymupdf", error=str(exc))
            raise ExtractionError(
                f"PDF parsing failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        self._logger.info(
            "pdf_extraction_complete",
            provider="pymupdf",
            pages=page_count,
            text_length=len(text),
        )
        return ExtractionResult(
            text=text,
            confidence=1.0 if text else 0.0,
            page_count=page_count,
            method="pymupdf",
            metadata=info,
        )

    def supports(self, file_type: str) -> bool:
        return file_type.lower().lstrip(".") == "pdf"

    def get_provider_name(self) -> str:
        return "pymupdf"

    def is_available(self) -> bool:
        return True

    @staticmethod
    def _read_pdf(file_ref: FileReference) -> tuple[str, int, dict[str, Any]]:
        if file_ref.path is not None:
            doc = fitz.open(file_ref.path)
        else:
            doc = fitz.open(stream=file_ref.data, filetype="pdf")
        with doc:
            pages = [page.get_text("text") for page in doc]
            meta = doc.metadata or {}
            info: dict[str, Any] = {k: meta[k] for k in _METADATA_KEYS if meta.get(k)}
            info["encrypted"] = bool(doc.is_encrypted)
            page_count = doc.page_count
        return clean_extracted_text("\n\n".join(pages)), page_count, info
