"""Integration tests for DocumentTools over the in-memory store.

Runs the real ingestion, NER, embedding and retrieval services with the
deterministic bag-of-words embedder, so every tool is exercised end to end.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from meddocs.config.tuning import PipelineTuning
from meddocs.models.document import DocumentType
from meddocs.models.tools import (
    ChunkAndEmbedArgs,
    ExtractEntitiesArgs,
    FindSimilarCasesArgs,
    GenerateEmbeddingArgs,
    HybridSearchArgs,
    ListDocumentsArgs,
    SearchDocumentsArgs,
    SemanticSearchArgs,
    UploadDocumentArgs,
)
from meddocs.services.document_tools import DocumentTools
from meddocs.services.retrieval import RetrievalFusion
from meddocs.utils.errors import StorageError
from tests.conftest import InMemoryDocumentStore, make_document, make_entity

CARDIO_NOTE = (
    "Patient presented with chest pain and shortness of breath. "
    "Troponin elevated. Started aspirin 325 mg and heparin drip."
)
RENAL_NOTE = "Creatinine 2.1 mg/dL with reduced eGFR. Possible chronic kidney disease."
DIABETES_NOTE = "Type 2 diabetes follow up. Continue metformin 1000 mg. Reports fatigue."
NAUSEA_NOTE = "Patient reports chest pain and nausea overnight."


async def _upload(tools: DocumentTools, title: str, content: str, **metadata) -> str:
    envelope = await tools.upload_document(
        UploadDocumentArgs.model_validate({"title": title, "content": content, "metadata": metadata})
    )
    assert envelope["success"], envelope
    return envelope["documentId"]


def _long_text(words: int = 60) -> str:
    return " ".join(f"term{i:02d}" for i in range(words))


class TestDocumentLifecycle:
    @pytest.mark.asyncio
    async def test_upload_text(self, tools: DocumentTools, memory_store: InMemoryDocumentStore) -> None:
        envelope = await tools.upload_document(
            UploadDocumentArgs(title="ED visit", content=CARDIO_NOTE, metadata={"patientId": "P-1"})
        )

        assert envelope["success"] is True
        assert envelope["message"] == 'Medical document "ED visit" processed and uploaded successfully'
        assert envelope["processingResults"]["textLength"] == len(CARDIO_NOTE)
        assert envelope["processingResults"]["embeddingDimensions"] == 128
        entity_texts = {e["text"] for e in envelope["medicalEntities"]}
        assert {"chest pain", "aspirin"} <= entity_texts

        stored = memory_store.documents[envelope["documentId"]]
        assert stored.metadata.processed is True
        assert stored.metadata.patient_id == "P-1"

    @pytest.mark.asyncio
    async def test_upload_pdf_reports_extraction(self, tools: DocumentTools) -> None:
        envelope = await tools.upload_document(UploadDocumentArgs(title="Discharge", file_path="/tmp/dc.pdf"))

        assert envelope["success"] is True
        assert envelope["processingResults"]["method"] == "pdf_text"
        assert envelope["processingResults"]["pageCount"] == 1

    @pytest.mark.asyncio
    async def test_upload_unsupported_file(self, tools: DocumentTools) -> None:
        envelope = await tools.upload_document(UploadDocumentArgs(title="Letter", file_path="/tmp/a.docx"))

        assert envelope["success"] is False
        assert envelope["errorType"] == "ExtractionError"
        assert envelope["message"] == "Failed to upload and process document"

    @pytest.mark.asyncio
    async def test_get_and_delete(self, tools: DocumentTools) -> None:
        doc_id = await _upload(tools, "Renal", RENAL_NOTE)

        fetched = await tools.get_document(doc_id)
        assert fetched["document"]["title"] == "Renal"
        assert "embedding" not in fetched["document"]

        deleted = await tools.delete_document(doc_id)
        assert deleted == {"success": True, "documentId": doc_id, "deleted": True}

        missing = await tools.delete_document(doc_id)
        assert missing["success"] is False
        assert missing["errorType"] == "NotFoundError"
        assert (await tools.get_document(doc_id))["errorType"] == "NotFoundError"

    @pytest.mark.asyncio
    async def test_list_with_filter_and_pagination(self, tools: DocumentTools) -> None:
        await _upload(tools, "Cardio", CARDIO_NOTE, patientId="P-1")
        await _upload(tools, "Renal", RENAL_NOTE, patientId="P-2")
        await _upload(tools, "Diabetes", DIABETES_NOTE, patientId="P-1")

        page = await tools.list_documents(ListDocumentsArgs(limit=1, offset=1))
        assert page["pagination"] == {
            "limit": 1,
            "offset": 1,
            "total": 3,
            "hasMore": True,
            "currentPage": 2,
            "totalPages": 3,
        }
        assert len(page["documents"]) == 1

        filtered = await tools.list_documents(ListDocumentsArgs.model_validate({"filter": {"patientId": "P-1"}}))
        assert {row["title"] for row in filtered["documents"]} == {"Cardio", "Diabetes"}
        assert filtered["filter"] == {"patientId": "P-1"}


class TestSearchTools:
    @pytest.mark.asyncio
    async def test_lexical_search(self, tools: DocumentTools) -> None:
        await _upload(tools, "Cardio", CARDIO_NOTE)
        await _upload(tools, "Renal", RENAL_NOTE)

        envelope = await tools.search_documents(
            SearchDocumentsArgs(query="aspirin", mode="lexical", threshold=0.5)
        )

        assert envelope["success"] is True
        assert envelope["strategy"] == "lexical"
        assert [r["title"] for r in envelope["results"]] == ["Cardio"]
        assert envelope["results"][0]["score"] == pytest.approx(0.8)
        assert envelope["searchParameters"]["mode"] == "lexical"

    @pytest.mark.asyncio
    async def test_hybrid_search_fuses(self, tools: DocumentTools) -> None:
        await _upload(tools, "Cardio", CARDIO_NOTE)
        await _upload(tools, "Renal", RENAL_NOTE)

        envelope = await tools.search_documents(SearchDocumentsArgs(query="aspirin heparin", threshold=0.2))

        assert envelope["strategy"] == "hybrid"
        assert envelope["degraded"] is False
        assert envelope["results"][0]["title"] == "Cardio"

    @pytest.mark.asyncio
    async def test_hybrid_search_tool_weights(self, tools: DocumentTools) -> None:
        await _upload(tools, "Cardio", CARDIO_NOTE)

        envelope = await tools.hybrid_search(
            HybridSearchArgs(query="aspirin", vectorWeight=0.0, textWeight=1.0, threshold=0.5)
        )

        assert envelope["searchType"] == "hybrid"
        assert envelope["searchParameters"]["vectorWeight"] == 0.0
        assert envelope["results"][0]["score"] == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_default_search_returns_matching_note(self, tools: DocumentTools) -> None:
        await _upload(tools, "Overnight", NAUSEA_NOTE)
        await _upload(tools, "Renal", RENAL_NOTE)

        envelope = await tools.call_tool("searchDocuments", {"query": "chest pain nausea"})

        assert envelope["success"] is True
        assert envelope["strategy"] == "hybrid"
        assert envelope["searchParameters"]["threshold"] == 0.3
        assert [r["title"] for r in envelope["results"]][:1] == ["Overnight"]

    @pytest.mark.asyncio
    async def test_default_hybrid_search_survives_vector_outage(
        self, tools: DocumentTools, memory_store: InMemoryDocumentStore
    ) -> None:
        await _upload(tools, "Overnight", NAUSEA_NOTE)
        memory_store.vector_search = AsyncMock(side_effect=StorageError("index offline"))

        envelope = await tools.call_tool("searchDocuments", {"query": "chest pain nausea"})

        assert envelope["success"] is True
        assert envelope["strategy"] == "hybrid"
        assert envelope["degraded"] is True
        assert [r["title"] for r in envelope["results"]] == ["Overnight"]
        assert envelope["results"][0]["score"] == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_vector_fallback_ignores_vector_threshold(
        self, tools: DocumentTools, memory_store: InMemoryDocumentStore
    ) -> None:
        await _upload(tools, "Overnight", NAUSEA_NOTE)
        memory_store.vector_search = AsyncMock(side_effect=StorageError("index offline"))

        envelope = await tools.call_tool(
            "searchDocuments", {"query": "chest pain nausea", "mode": "vector", "threshold": 0.9}
        )

        assert envelope["strategy"] == "lexical"
        assert [r["title"] for r in envelope["results"]] == ["Overnight"]

    @pytest.mark.asyncio
    async def test_store_down_reports_unavailable(
        self, tools: DocumentTools, memory_store: InMemoryDocumentStore
    ) -> None:
        memory_store.failing = True
        envelope = await tools.search_documents(SearchDocumentsArgs(query="aspirin"))

        assert envelope["success"] is False
        assert envelope["errorType"] == "SearchUnavailableError"
        assert envelope["query"] == "aspirin"

        listing = await tools.list_documents(ListDocumentsArgs())
        assert listing["errorType"] == "StorageError"

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, tools: DocumentTools) -> None:
        envelope = await tools.search_documents(SearchDocumentsArgs(query="   "))
        assert envelope["errorType"] == "ValidationError"


class TestEmbeddingTools:
    @pytest.mark.asyncio
    async def test_generate_embedding(self, tools: DocumentTools, memory_store: InMemoryDocumentStore) -> None:
        envelope = await tools.generate_embedding(
            GenerateEmbeddingArgs.model_validate({"text": "Allergic to penicillin", "metadata": {"source": "intake"}})
        )

        assert envelope["success"] is True
        assert envelope["dimensions"] == 128
        assert envelope["model"] == "mock-embedding"
        assert memory_store.records[envelope["id"]].metadata.source == "intake"

    @pytest.mark.asyncio
    async def test_generate_embedding_short_text(self, tools: DocumentTools) -> None:
        envelope = await tools.generate_embedding(GenerateEmbeddingArgs(text="ok"))
        assert envelope["errorType"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_chunk_and_semantic_search(self, tools: DocumentTools) -> None:
        envelope = await tools.chunk_and_embed_document(
            ChunkAndEmbedArgs.model_validate(
                {
                    "text": _long_text(),
                    "chunkSize": 20,
                    "overlap": 5,
                    "metadata": {"documentId": "doc-9", "source": "notes.txt"},
                }
            )
        )
        assert envelope["success"] is True
        assert envelope["totalChunks"] == 4
        assert envelope["successfulChunks"] == 4
        assert envelope["replacedChunks"] == 0

        rerun = await tools.chunk_and_embed_document(
            ChunkAndEmbedArgs(text=_long_text(), chunk_size=20, overlap=5, metadata={"documentId": "doc-9"})
        )
        assert rerun["replacedChunks"] == 4

        hits = await tools.semantic_search(
            SemanticSearchArgs.model_validate(
                {"query": "term05 term06", "threshold": 0.1, "filter": {"documentId": "doc-9"}}
            )
        )
        assert hits["success"] is True
        assert hits["results"][0]["chunkIndex"] == 0
        assert hits["searchParameters"]["filter"] == {"documentId": "doc-9"}

    @pytest.mark.asyncio
    async def test_chunk_bad_overlap(self, tools: DocumentTools) -> None:
        envelope = await tools.chunk_and_embed_document(
            ChunkAndEmbedArgs(text=_long_text(), chunk_size=20, overlap=20)
        )
        assert envelope["errorType"] == "ConfigurationError"


class TestMedicalAnalysis:
    @pytest.mark.asyncio
    async def test_extract_entities_filters_and_updates(
        self, tools: DocumentTools, memory_store: InMemoryDocumentStore, sample_note: str
    ) -> None:
        doc_id = await _upload(tools, "Renal", RENAL_NOTE)

        envelope = await tools.extract_medical_entities(
            ExtractEntitiesArgs(text=sample_note, documentId=doc_id, entityTypes=["MEDICATION"])
        )

        assert envelope["success"] is True
        assert envelope["documentUpdated"] is True
        assert set(envelope["entitiesByType"]) == {"MEDICATION"}
        assert {e["text"] for e in envelope["entities"]} >= {"aspirin", "metformin"}
        stored = memory_store.documents[doc_id]
        assert {e.text for e in stored.medical_entities} == {e["text"] for e in envelope["entities"]}

    @pytest.mark.asyncio
    async def test_extract_entities_missing_document(self, tools: DocumentTools) -> None:
        envelope = await tools.extract_medical_entities(
            ExtractEntitiesArgs(text="aspirin", documentId="nope")
        )
        assert envelope["errorType"] == "NotFoundError"

    @pytest.mark.asyncio
    async def test_find_similar_cases_excludes_reference(
        self,
        ingestion,
        embeddings,
        memory_store: InMemoryDocumentStore,
        tuning: PipelineTuning,
    ) -> None:
        low_bar = tuning.model_copy(update={"similar_cases_threshold": 0.05})
        tools = DocumentTools(
            ingestion, RetrievalFusion(memory_store, embeddings, low_bar), memory_store, tuning=low_bar
        )
        reference = await _upload(tools, "Index visit", CARDIO_NOTE, patientId="P-1")
        similar = await _upload(tools, "Other patient", "Chest pain at rest, aspirin given.", patientId="P-2")

        envelope = await tools.find_similar_cases(FindSimilarCasesArgs(documentId=reference))

        assert envelope["success"] is True
        ids = [case["id"] for case in envelope["cases"]]
        assert reference not in ids
        assert similar in ids
        match = next(case for case in envelope["cases"] if case["id"] == similar)
        assert {"text": "aspirin", "label": "MEDICATION", "frequency": 1} in match["commonEntities"]
        assert envelope["strategy"] == "vector"

    @pytest.mark.asyncio
    async def test_find_similar_cases_needs_criteria(self, tools: DocumentTools) -> None:
        envelope = await tools.find_similar_cases(FindSimilarCasesArgs())
        assert envelope["errorType"] == "ValidationError"
        assert envelope["message"] == "Failed to find similar cases"


class TestPatientTools:
    @pytest.mark.asyncio
    async def test_analyze_patient_history_timeline(
        self, tools: DocumentTools, memory_store: InMemoryDocumentStore
    ) -> None:
        for doc in (
            make_document(
                "labs",
                title="Labs",
                entities=[make_entity("kidney", "ANATOMY")],
                patient_id="P-1",
                document_type=DocumentType.LAB_REPORT,
                uploaded_at=datetime(2024, 5, 2, tzinfo=timezone.utc),
            ),
            make_document(
                "clinic",
                title="Clinic",
                entities=[make_entity("metformin", "MEDICATION")],
                patient_id="P-1",
                uploaded_at=datetime(2024, 4, 1, tzinfo=timezone.utc),
            ),
            make_document("elsewhere", title="Elsewhere", patient_id="P-2"),
        ):
            memory_store.documents[doc.id] = doc

        envelope = await tools.call_tool(
            "analyzePatientHistory",
            {
                "patientId": "P-1",
                "analysisType": "timeline",
                "dateRange": {"start": "2024-01-01T00:00:00Z"},
            },
        )

        assert envelope["success"] is True
        assert envelope["documentsAnalyzed"] == 2
        rows = envelope["analysis"]["timeline"]
        assert [r["title"] for r in rows] == ["Clinic", "Labs"]
        assert rows[0] == {
            "date": "2024-04-01",
            "documentType": None,
            "title": "Clinic",
            "keyEntities": ["metformin"],
        }
        assert rows[1]["documentType"] == "lab_report"

    @pytest.mark.asyncio
    async def test_analyze_patient_history_defaults_to_summary(self, tools: DocumentTools) -> None:
        await _upload(tools, "Clinic", DIABETES_NOTE, patientId="P-1")

        envelope = await tools.call_tool("analyzePatientHistory", {"patientId": "P-1"})

        assert envelope["analysisType"] == "summary"
        assert envelope["analysis"]["topMedications"] == [{"text": "metformin", "count": 1}]

    @pytest.mark.asyncio
    async def test_analyze_unknown_patient(self, tools: DocumentTools) -> None:
        envelope = await tools.call_tool("analyzePatientHistory", {"patientId": "P-404"})

        assert envelope["success"] is False
        assert envelope["errorType"] == "NotFoundError"
        assert envelope["error"] == "No documents found for patient P-404"
        assert envelope["message"] == "Failed to analyze patient history"

    @pytest.mark.asyncio
    async def test_analyze_rejects_unknown_analysis_type(self, tools: DocumentTools) -> None:
        envelope = await tools.call_tool(
            "analyzePatientHistory", {"patientId": "P-1", "analysisType": "forecast"}
        )
        assert envelope["errorType"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_medical_insights_with_context(
        self,
        ingestion,
        embeddings,
        embedding_provider,
        memory_store: InMemoryDocumentStore,
        tuning: PipelineTuning,
    ) -> None:
        low_bar = tuning.model_copy(update={"insights_threshold": 0.05})
        tools = DocumentTools(
            ingestion, RetrievalFusion(memory_store, embeddings, low_bar), memory_store, tuning=low_bar
        )
        doc_id = await _upload(tools, "Clinic", DIABETES_NOTE, patientId="P-1")

        envelope = await tools.call_tool(
            "getMedicalInsights",
            {"query": "metformin dose", "context": {"patientAge": 54, "conditions": ["diabetes"]}},
        )

        assert envelope["success"] is True
        assert envelope["context"] == {"patientAge": 54, "conditions": ["diabetes"], "medications": []}
        assert any(
            "Context: Age: 54; Conditions: diabetes" in text
            for batch in embedding_provider.calls
            for text in batch
        )
        insight = envelope["insights"][0]
        assert insight["documentId"] == doc_id
        assert insight["insight"] == "Continue metformin 1000 mg."
        assert insight["patientContext"] == "Similar case"
        texts = {e["text"] for e in insight["relevantEntities"]}
        assert {"metformin", "diabetes"} <= texts
        assert "fatigue" not in texts
        assert envelope["strategy"] == "vector"

    @pytest.mark.asyncio
    async def test_medical_insights_without_context(self, tools: DocumentTools) -> None:
        await _upload(tools, "Clinic", DIABETES_NOTE)

        envelope = await tools.call_tool("getMedicalInsights", {"query": "unrelated words entirely"})

        assert envelope["success"] is True
        assert envelope["context"] is None
        assert envelope["insightsFound"] == len(envelope["insights"])
        for insight in envelope["insights"]:
            assert insight["patientContext"] == "General reference"

    @pytest.mark.asyncio
    async def test_medical_insights_requires_query(self, tools: DocumentTools) -> None:
        envelope = await tools.call_tool("getMedicalInsights", {"query": ""})
        assert envelope["errorType"] == "ValidationError"


class TestCallTool:
    @pytest.mark.asyncio
    async def test_dispatch_by_name(self, tools: DocumentTools) -> None:
        envelope = await tools.call_tool("uploadDocument", {"title": "Renal", "content": RENAL_NOTE})
        assert envelope["success"] is True

        listing = await tools.call_tool("listDocuments", {})
        assert listing["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tools: DocumentTools) -> None:
        envelope = await tools.call_tool("deleteEverything", {})
        assert envelope == {
            "success": False,
            "error": "Unknown tool: deleteEverything",
            "errorType": "NotFoundError",
            "message": "Tool not found",
        }

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, tools: DocumentTools) -> None:
        envelope = await tools.call_tool("searchDocuments", {"query": "x", "limit": 500})
        assert envelope["success"] is False
        assert envelope["errorType"] == "ValidationError"
        assert envelope["message"] == "Invalid arguments for searchDocuments"

    def test_list_tools(self, tools: DocumentTools) -> None:
        assert tools.list_tools() == [
            "uploadDocument",
            "searchDocuments",
            "listDocuments",
            "generateEmbedding",
            "chunkAndEmbedDocument",
            "semanticSearch",
            "hybridSearch",
            "extractMedicalEntities",
            "findSimilarCases",
            "analyzePatientHistory",
            "getMedicalInsights",
        ]
