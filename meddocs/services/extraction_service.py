"""Text extraction service with a per-file-type provider fallback chain.

Routes a :class:`~meddocs.models.extraction.FileReference` to the
extractors that support its type (Tesseract for images, PyMuPDF for PDFs)
and tries each in priority order until one returns a result with
acceptable confidence.

Architecture: Fallback Chain Pattern
-------------------------------------
Each extractor produces a result with a confidence score.  The chain
short-circuits as soon as an extractor meets the threshold, but keeps the
best sub-threshold result so the caller gets *something* unless every
extractor hard-fails.  Whether an empty or low-confidence text is usable
is decided by the ingestion pipeline, not here.
"""

from __future__ import annotations

from meddocs.interfaces.extractor_provider import IExtractorProvider
from meddocs.models.extraction import ExtractionResult, FileReference
from meddocs.utils.errors import ExtractionError
from meddocs.utils.logging import get_logger

_DEFAULT_CONFIDENCE_THRESHOLD = 0.6


class ExtractionService:
    """Orchestrates text extraction across multiple providers.

    Providers are tried in the order supplied at construction time,
    skipping those that do not support the file type or report themselves
    unavailable.
    """

    def __init__(
        self,
        providers: list[IExtractorProvider],
        min_confidence: float = _DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        self._providers = providers
        self._min_confidence = min_confidence
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(self, file_ref: FileReference, hint: str | None = None) -> ExtractionResult:
        """Extract text from *file_ref* using the provider fallback chain.

        Parameters
        ----------
        file_ref:
            The file to process.
        hint:
            Passed through to each extractor (e.g. an OCR language).

        Returns
        -------
        ExtractionResult
            The best extraction result obtained from any provider.

        Raises
        ------
        ExtractionError
            If no provider supports the file type, or every supporting
            provider is unavailable or raises.
        """
        file_type = file_ref.resolved_type
        candidates = [p for p in self._providers if p.supports(file_type)]
        if not candidates:
            raise ExtractionError(f"Unsupported file type: {file_type or 'unknown'}")

        best_result: ExtractionResult | None = None
        failures: list[str] = []

        for provider in candidates:
            name = provider.get_provider_name()

            if not provider.is_available():
                self._logger.warning("extractor_unavailable", provider=name)
                failures.append(f"{name}: unavailable")
                continue

            try:
                self._logger.info("extractor_attempting", provider=name, file_type=file_type)
                result = await provider.extract(file_ref, hint)

                if result.confidence >= self._min_confidence and result.text.strip():
                    self._logger.info(
                        "extractor_accepted",
                        provider=name,
                        confidence=round(result.confidence, 4),
                    )
                    return result

                if best_result is None or result.confidence > best_result.confidence:
                    best_result = result
                    self._logger.info(
                        "extractor_below_threshold",
                        provider=name,
                        confidence=round(result.confidence, 4),
                    )

            except Exception as exc:
                self._logger.warning("extractor_failed", provider=name, error=str(exc))
                failures.append(f"{name}: {exc}")

        if best_result is not None:
            self._logger.info(
                "extraction_returning_best_fallback",
                method=best_result.method,
                confidence=round(best_result.confidence, 4),
            )
            return best_result

        raise ExtractionError(f"All extractors failed for {file_type}: {'; '.join(failures)}")

    def get_available_providers(self) -> list[str]:
        """Return the names of providers that are currently available."""
        return [p.get_provider_name() for p in self._providers if p.is_available()]
