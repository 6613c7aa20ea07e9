"""Tesseract OCR extractor for scanned medical documents.

Wraps pytesseract over Pillow.  Word-level ``image_to_data`` output is
used so the text and its mean confidence come from a single Tesseract run;
block and paragraph changes become line breaks.
"""

from __future__ import annotations

import asyncio
import io
import time

from PIL import Image

from meddocs.interfaces.extractor_provider import IExtractorProvider
from meddocs.models.extraction import ExtractionResult, FileReference
from meddocs.utils.errors import ExtractionError
from meddocs.utils.logging import get_logger
from meddocs.utils.text_normalizer import clean_extracted_text

# pytesseract is optional: without it is_available() returns False and the
# extraction service skips this provider.
try:
    import pytesseract

    _PYTESSERACT_AVAILABLE = True
except ImportError:
    pytesseract = None  # type: ignore[assignment]
    _PYTESSERACT_AVAILABLE = False

_SUPPORTED_TYPES = frozenset({"jpg", "jpeg", "png", "bmp", "tif", "tiff", "gif", "webp"})

# Automatic page segmentation, keep runs of spaces between words.
_DEFAULT_CONFIG = "--psm 1 -c preserve_interword_spaces=1"


class TesseractOCRProvider(IExtractorProvider):
    """Image text extractor backed by Google Tesseract via pytesseract."""

    def __init__(self, lang: str = "eng") -> None:
        self._lang = lang
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # IExtractorProvider interface
    # ------------------------------------------------------------------

    async def extract(self, file_ref: FileReference, hint: str | None = None) -> ExtractionResult:
        """Run OCR on an image file.

        *hint*, when given, overrides the configured Tesseract language
        (e.g. ``"eng+deu"``).
        """
        if not self.supports(file_ref.resolved_type):
            raise ExtractionError(
                f"Unsupported image type: {file_ref.resolved_type or 'unknown'}",
                provider_name=self.get_provider_name(),
            )

        start = time.perf_counter()
        lang = hint or self._lang
        try:
            image_bytes = await asyncio.to_thread(file_ref.read_bytes)
            text, confidence = await asyncio.to_thread(self._run_tesseract, image_bytes, lang)
        except ExtractionError:
            raise
        except Exception as exc:
            self._logger.error(
                "ocr_extraction_failed",
                provider="tesseract",
                error=str(exc),
                processing_time=round(time.perf_counter() - start, 3),
            )
            raise ExtractionError(
                f"Tesseract OCR failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        elapsed = time.perf_counter() - start
        self._logger.info(
            "ocr_extraction_complete",
            provider="tesseract",
            lang=lang,
            confidence=round(confidence, 4),
            text_length=len(text),
            processing_time=round(elapsed, 3),
        )
        return ExtractionResult(
            text=text,
            confidence=confidence,
            page_count=1,
            method="tesseract",
            metadata={"lang": lang, "processing_time": round(elapsed, 3)},
        )

    def supports(self, file_type: str) -> bool:
        return file_type.lower().lstrip(".") in _SUPPORTED_TYPES

    def get_provider_name(self) -> str:
        return "tesseract"

    def is_available(self) -> bool:
        """Check that pytesseract is installed and the Tesseract binary exists."""
        if not _PYTESSERACT_AVAILABLE:
            return False
        try:
            pytesseract.get_tesseract_version()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _run_tesseract(image_bytes: bytes, lang: str) -> tuple[str, float]:
        """Return cleaned text and mean word confidence in ``[0, 1]``."""
        image = Image.open(io.BytesIO(image_bytes)).convert("RGB")
        data = pytesseract.image_to_data(
            image, lang=lang, output_type=pytesseract.Output.DICT, config=_DEFAULT_CONFIG
        )

        confidences: list[float] = []
        text_parts: list[str] = []
        prev_block = -1
        prev_par = -1

        for i in range(len(data["text"])):
            word = data["text"][i].strip()
            conf = float(data["conf"][i])
            # conf == -1 marks layout-only entries
            if not word or conf < 0:
                continue
            block_num = data["block_num"][i]
            par_num = data["par_num"][i]
            if text_parts and (block_num != prev_block or par_num != prev_par):
                text_parts.append("\n")
            prev_block = block_num
            prev_par = par_num
            confidences.append(conf)
            text_parts.append(word)

        if not text_parts:
            return "", 0.0

        raw_text = " ".join(text_parts).replace(" \n ", "\n")
        confidence = sum(confidences) / len(confidences) / 100.0
        return clean_extracted_text(raw_text), max(0.0, min(1.0, confidence))
