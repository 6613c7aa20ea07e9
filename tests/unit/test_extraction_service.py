"""Unit tests for ExtractionService and the extractor adapters."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from meddocs.interfaces.extractor_provider import IExtractorProvider
from meddocs.models.extraction import ExtractionResult, FileReference
from meddocs.providers.ocr.tesseract_provider import TesseractOCRProvider
from meddocs.providers.pdf.pymupdf_provider import PyMuPDFExtractorProvider
from meddocs.services.extraction_service import ExtractionService
from meddocs.utils.errors import ExtractionError


def _extractor(
    name: str,
    result: ExtractionResult | None = None,
    *,
    types: tuple[str, ...] = ("png",),
    available: bool = True,
    error: Exception | None = None,
) -> MagicMock:
    provider = MagicMock(spec=IExtractorProvider)
    provider.get_provider_name.return_value = name
    provider.supports.side_effect = lambda file_type: file_type in types
    provider.is_available.return_value = available
    provider.extract = AsyncMock(return_value=result, side_effect=error)
    return provider


def _result(text: str, confidence: float, method: str) -> ExtractionResult:
    return ExtractionResult(text=text, confidence=confidence, page_count=1, method=method)


PNG = FileReference(path="/scans/note.png")


class TestExtractionService:
    @pytest.mark.asyncio
    async def test_first_confident_result_wins(self) -> None:
        first = _extractor("a", _result("clear text", 0.9, "a"))
        second = _extractor("b", _result("other", 0.95, "b"))

        result = await ExtractionService([first, second]).extract(PNG)

        assert result.method == "a"
        second.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_through_low_confidence(self) -> None:
        weak = _extractor("weak", _result("blurry", 0.3, "weak"))
        strong = _extractor("strong", _result("sharp", 0.8, "strong"))

        result = await ExtractionService([weak, strong]).extract(PNG)
        assert result.method == "strong"

    @pytest.mark.asyncio
    async def test_best_sub_threshold_result_returned(self) -> None:
        low = _extractor("low", _result("x", 0.2, "low"))
        better = _extractor("better", _result("y", 0.4, "better"))

        result = await ExtractionService([low, better]).extract(PNG)
        assert result.method == "better"

    @pytest.mark.asyncio
    async def test_empty_text_is_not_accepted(self) -> None:
        blank = _extractor("blank", _result("  ", 0.99, "blank"))
        real = _extractor("real", _result("text", 0.7, "real"))

        result = await ExtractionService([blank, real]).extract(PNG)
        assert result.method == "real"

    @pytest.mark.asyncio
    async def test_unavailable_and_failing_providers_skipped(self) -> None:
        offline = _extractor("offline", available=False)
        broken = _extractor("broken", error=RuntimeError("engine crashed"))
        working = _extractor("working", _result("ok", 0.9, "working"))

        result = await ExtractionService([offline, broken, working]).extract(PNG)

        assert result.method == "working"
        offline.extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_all_failing_raises(self) -> None:
        offline = _extractor("offline", available=False)
        broken = _extractor("broken", error=RuntimeError("engine crashed"))

        with pytest.raises(ExtractionError, match="offline: unavailable; broken: engine crashed"):
            await ExtractionService([offline, broken]).extract(PNG)

    @pytest.mark.asyncio
    async def test_unsupported_type(self) -> None:
        service = ExtractionService([_extractor("ocr", types=("png",))])
        with pytest.raises(ExtractionError, match="Unsupported file type: docx"):
            await service.extract(FileReference(path="letter.docx"))

    @pytest.mark.asyncio
    async def test_custom_threshold(self) -> None:
        weak = _extractor("weak", _result("faint", 0.3, "weak"))
        strong = _extractor("strong", _result("sharp", 0.8, "strong"))

        result = await ExtractionService([weak, strong], min_confidence=0.25).extract(PNG)
        assert result.method == "weak"

    def test_available_providers(self) -> None:
        service = ExtractionService([_extractor("a"), _extractor("b", available=False)])
        assert service.get_available_providers() == ["a"]


class TestAdapters:
    def test_pymupdf_supports_pdf_only(self) -> None:
        provider = PyMuPDFExtractorProvider()
        assert provider.supports("PDF")
        assert not provider.supports("png")
        assert provider.is_available()

    def test_tesseract_supports_images(self) -> None:
        provider = TesseractOCRProvider()
        assert provider.supports("jpeg")
        assert provider.supports(".tiff")
        assert not provider.supports("pdf")

    @pytest.mark.asyncio
    async def test_pymupdf_rejects_other_types(self) -> None:
        with pytest.raises(ExtractionError):
            await PyMuPDFExtractorProvider().extract(PNG)

    @pytest.mark.asyncio
    async def test_pymupdf_reads_generated_pdf(self) -> None:
        fitz = pytest.importorskip("fitz")
        doc = fitz.open()
        page = doc.new_page()
        page.insert_text((72, 72), "Hemoglobin 13.5 g/dL")
        data = doc.tobytes()
        doc.close()

        result = await PyMuPDFExtractorProvider().extract(FileReference(data=data, file_type="pdf"))

        assert "Hemoglobin" in result.text
        assert result.confidence == 1.0
        assert result.page_count == 1
        assert result.method == "pymupdf"

    @pytest.mark.asyncio
    async def test_tesseract_parses_word_data(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            TesseractOCRProvider,
            "_run_tesseract",
            staticmethod(lambda image_bytes, lang: ("Glucose 95", 0.91)),
        )

        result = await TesseractOCRProvider(lang="eng").extract(
            FileReference(data=b"img", file_type="png"), hint="eng+deu"
        )
        assert result.text == "Glucose 95"
        assert result.confidence == 0.91
        assert result.metadata["lang"] == "eng+deu"
