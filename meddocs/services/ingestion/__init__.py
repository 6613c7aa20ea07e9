"""Document ingestion for the meddocs store.

Pipeline stages overview:

1. **Resolve** (via ExtractionService) -- files are OCR'd (images) or
   parsed (PDFs); raw text is used as-is.

2. **Tag** (via INERProvider) -- medical entities with confidences.

3. **Chunk** (chunker.py / TextChunker) -- overlapping word windows, used
   by chunked ingestion only.

4. **Embed** (via EmbeddingOrchestrator) -- cleaned, paced and
   dimension-checked vectors.

5. **Store** (via IDocumentStore) -- documents, chunks and free-standing
   embedding records.

The IngestionPipeline class orchestrates the stages.
"""

from meddocs.services.ingestion.chunker import TextChunker
from meddocs.services.ingestion.ingestion_service import IngestionPipeline

__all__ = [
    "IngestionPipeline",
    "TextChunker",
]
