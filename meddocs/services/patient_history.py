"""Per-patient history analysis over stored documents.

Three views of the documents stored for one patient:

    timeline   documents oldest first, with their leading entities
    summary    document-type distribution, entity statistics, top conditions,
               medications and procedures
    trends     per-month document and entity counts

Entity texts are compared case-insensitively when counted.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import TYPE_CHECKING, Any

import structlog

from meddocs.interfaces.ner_provider import count_by_label, filter_by_label
from meddocs.models.document import MedicalDocument, MedicalEntity
from meddocs.models.search import DateRange, ListFilter
from meddocs.models.tools import AnalysisType
from meddocs.utils.errors import NotFoundError

if TYPE_CHECKING:
    from meddocs.interfaces.document_store import IDocumentStore

logger = structlog.get_logger(logger_name=__name__)

_TIMELINE_ENTITIES = 5
_SUMMARY_TOP = 5
_TRENDS_TOP = 3


class PatientHistoryAnalyzer:
    """Builds timeline, summary and trend views of a patient's documents.

    Stateless; safe to call :meth:`analyze` concurrently.
    """

    def __init__(self, store: IDocumentStore) -> None:
        self._store = store

    async def analyze(
        self,
        patient_id: str,
        analysis_type: AnalysisType = AnalysisType.SUMMARY,
        date_range: DateRange | None = None,
    ) -> dict[str, Any]:
        """Analyze the documents of *patient_id*, optionally within *date_range*.

        Raises
        ------
        NotFoundError
            If no document at all is stored for the patient.  A date range
            that excludes every document is not an error.
        """
        total = await self._store.count_documents(ListFilter(patient_id=patient_id))
        if total == 0:
            raise NotFoundError(f"No documents found for patient {patient_id}")

        documents = await self._store.find_documents(
            ListFilter(patient_id=patient_id, date_range=date_range), total
        )
        builders = {
            AnalysisType.TIMELINE: timeline,
            AnalysisType.SUMMARY: summary,
            AnalysisType.TRENDS: trends,
        }
        analysis_type = AnalysisType(analysis_type)
        analysis = builders[analysis_type](documents)
        logger.info(
            "patient_history_analyzed",
            patient_id=patient_id,
            analysis_type=analysis_type.value,
            documents=len(documents),
        )
        return {
            "patientId": patient_id,
            "analysisType": analysis_type.value,
            "documentsAnalyzed": len(documents),
            "dateRange": date_range.model_dump(mode="json") if date_range else None,
            "analysis": analysis,
        }


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def timeline(documents: list[MedicalDocument]) -> dict[str, Any]:
    ordered = sorted(documents, key=lambda d: d.metadata.uploaded_at)
    return {
        "timeline": [
            {
                "date": d.metadata.uploaded_at.date().isoformat(),
                "documentType": _type_name(d),
                "title": d.title,
                "keyEntities": [e.text for e in d.medical_entities[:_TIMELINE_ENTITIES]],
            }
            for d in ordered
        ]
    }


def summary(documents: list[MedicalDocument]) -> dict[str, Any]:
    entities = [e for d in documents for e in d.medical_entities]
    return {
        "totalDocuments": len(documents),
        "documentTypes": dict(Counter(_type_name(d) or "other" for d in documents)),
        "entityStatistics": count_by_label(entities),
        "topConditions": top_entities(filter_by_label(entities, ["CONDITION"]), _SUMMARY_TOP),
        "topMedications": top_entities(filter_by_label(entities, ["MEDICATION"]), _SUMMARY_TOP),
        "topProcedures": top_entities(filter_by_label(entities, ["PROCEDURE"]), _SUMMARY_TOP),
    }


def trends(documents: list[MedicalDocument]) -> dict[str, Any]:
    by_month: dict[str, list[MedicalDocument]] = defaultdict(list)
    for document in documents:
        by_month[document.metadata.uploaded_at.strftime("%Y-%m")].append(document)

    rows = []
    for month in sorted(by_month):
        entities = [e for d in by_month[month] for e in d.medical_entities]
        conditions = filter_by_label(entities, ["CONDITION"])
        medications = filter_by_label(entities, ["MEDICATION"])
        rows.append(
            {
                "month": month,
                "documentCount": len(by_month[month]),
                "conditionCount": len(conditions),
                "medicationCount": len(medications),
                "topConditions": top_entities(conditions, _TRENDS_TOP),
                "topMedications": top_entities(medications, _TRENDS_TOP),
            }
        )
    return {"trends": rows}


def top_entities(entities: list[MedicalEntity], limit: int) -> list[dict[str, Any]]:
    """Most frequent entity texts, lower-cased; ties keep first-seen order."""
    counts = Counter(e.text.lower() for e in entities)
    return [{"text": text, "count": count} for text, count in counts.most_common(limit)]


def _type_name(document: MedicalDocument) -> str | None:
    document_type = document.metadata.document_type
    return document_type.value if document_type else None
