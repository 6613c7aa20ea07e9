"""Unit tests for PatientHistoryAnalyzer and its views."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from meddocs.models.document import DocumentType
from meddocs.models.search import DateRange
from meddocs.models.tools import AnalysisType
from meddocs.services.patient_history import PatientHistoryAnalyzer, summary, top_entities, trends
from meddocs.utils.errors import NotFoundError
from tests.conftest import InMemoryDocumentStore, make_document, make_entity


def _at(month: int, day: int) -> datetime:
    return datetime(2024, month, day, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def history_store(memory_store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    docs = [
        make_document(
            "jan",
            title="Intake",
            entities=[make_entity("Diabetes", "CONDITION"), make_entity("metformin", "MEDICATION")],
            patient_id="P-1",
            document_type=DocumentType.CLINICAL_NOTE,
            uploaded_at=_at(1, 10),
        ),
        make_document(
            "jan-lab",
            title="HbA1c",
            entities=[make_entity("diabetes", "CONDITION")],
            patient_id="P-1",
            document_type=DocumentType.LAB_REPORT,
            uploaded_at=_at(1, 20),
        ),
        make_document(
            "mar",
            title="Follow up",
            entities=[
                make_entity("hypertension", "CONDITION"),
                make_entity("lisinopril", "MEDICATION"),
                make_entity("echocardiogram", "PROCEDURE"),
            ],
            patient_id="P-1",
            uploaded_at=_at(3, 5),
        ),
        make_document("other", title="Someone else", patient_id="P-2", uploaded_at=_at(2, 1)),
    ]
    for doc in docs:
        memory_store.documents[doc.id] = doc
    return memory_store


@pytest.fixture
def analyzer(history_store: InMemoryDocumentStore) -> PatientHistoryAnalyzer:
    return PatientHistoryAnalyzer(history_store)


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_summary_is_default(self, analyzer: PatientHistoryAnalyzer) -> None:
        result = await analyzer.analyze("P-1")

        assert result["patientId"] == "P-1"
        assert result["analysisType"] == "summary"
        assert result["documentsAnalyzed"] == 3
        assert result["dateRange"] is None
        analysis = result["analysis"]
        assert analysis["documentTypes"] == {"clinical_note": 1, "lab_report": 1, "other": 1}
        assert analysis["entityStatistics"] == {"CONDITION": 3, "MEDICATION": 2, "PROCEDURE": 1}
        assert analysis["topConditions"][0] == {"text": "diabetes", "count": 2}
        assert analysis["topProcedures"] == [{"text": "echocardiogram", "count": 1}]

    @pytest.mark.asyncio
    async def test_timeline_oldest_first(self, analyzer: PatientHistoryAnalyzer) -> None:
        result = await analyzer.analyze("P-1", AnalysisType.TIMELINE)

        rows = result["analysis"]["timeline"]
        assert [r["title"] for r in rows] == ["Intake", "HbA1c", "Follow up"]
        assert rows[0]["date"] == "2024-01-10"
        assert rows[0]["keyEntities"] == ["Diabetes", "metformin"]
        assert rows[2]["documentType"] is None

    @pytest.mark.asyncio
    async def test_trends_grouped_by_month(self, analyzer: PatientHistoryAnalyzer) -> None:
        result = await analyzer.analyze("P-1", AnalysisType.TRENDS)

        rows = result["analysis"]["trends"]
        assert [r["month"] for r in rows] == ["2024-01", "2024-03"]
        assert rows[0]["documentCount"] == 2
        assert rows[0]["conditionCount"] == 2
        assert rows[0]["topConditions"] == [{"text": "diabetes", "count": 2}]
        assert rows[1]["medicationCount"] == 1

    @pytest.mark.asyncio
    async def test_date_range_narrows_documents(self, analyzer: PatientHistoryAnalyzer) -> None:
        window = DateRange(start=_at(3, 1), end=_at(3, 31))
        result = await analyzer.analyze("P-1", AnalysisType.TIMELINE, window)

        assert result["documentsAnalyzed"] == 1
        assert result["analysis"]["timeline"][0]["title"] == "Follow up"
        assert result["dateRange"]["start"].startswith("2024-03-01")

    @pytest.mark.asyncio
    async def test_empty_date_range_is_not_an_error(self, analyzer: PatientHistoryAnalyzer) -> None:
        window = DateRange(start=_at(6, 1))
        result = await analyzer.analyze("P-1", AnalysisType.TRENDS, window)

        assert result["documentsAnalyzed"] == 0
        assert result["analysis"] == {"trends": []}

    @pytest.mark.asyncio
    async def test_unknown_patient(self, analyzer: PatientHistoryAnalyzer) -> None:
        with pytest.raises(NotFoundError, match="No documents found for patient P-9"):
            await analyzer.analyze("P-9")


class TestViews:
    def test_top_entities_case_insensitive_and_capped(self) -> None:
        entities = [
            make_entity("Aspirin", "MEDICATION"),
            make_entity("heparin", "MEDICATION"),
            make_entity("aspirin", "MEDICATION"),
            make_entity("warfarin", "MEDICATION"),
        ]
        assert top_entities(entities, 2) == [
            {"text": "aspirin", "count": 2},
            {"text": "heparin", "count": 1},
        ]

    def test_summary_of_nothing(self) -> None:
        assert summary([]) == {
            "totalDocuments": 0,
            "documentTypes": {},
            "entityStatistics": {},
            "topConditions": [],
            "topMedications": [],
            "topProcedures": [],
        }

    def test_trends_without_entities(self) -> None:
        rows = trends([make_document("d1", uploaded_at=_at(2, 2))])["trends"]
        assert rows == [
            {
                "month": "2024-02",
                "documentCount": 1,
                "conditionCount": 0,
                "medicationCount": 0,
                "topConditions": [],
                "topMedications": [],
            }
        ]
