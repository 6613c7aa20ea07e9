"""PDF extractor implementations."""

from meddocs.providers.pdf.pymupdf_provider import PyMuPDFExtractorProvider

__all__ = ["PyMuPDFExtractorProvider"]
