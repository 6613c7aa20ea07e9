"""Dictionary and pattern based medical entity tagger.

Several passes over the text, each producing :class:`MedicalEntity` spans
with a fixed confidence per source:

    ======================  ==========  ==========
    Source                  Label       Confidence
    ======================  ==========  ==========
    curated term list       per term    0.9
    drug-name suffixes      MEDICATION  0.7
    disease suffixes        CONDITION   0.6
    procedure suffixes      PROCEDURE   0.6
    titled names            PERSON      0.8
    date expressions        DATE        0.9
    numbers near a unit     MEASUREMENT 0.7
    ======================  ==========  ==========

Spans with the same lower-cased text and offsets are merged, keeping the
higher confidence.  Overlapping spans with different offsets (``"chest
pain"`` and ``"pain"``) are all kept.
"""

from __future__ import annotations

import re
from meddocs.interfaces.ner_provider import INERProvider
from meddocs.models.document import MedicalEntity
from meddocs.models.extraction import NERResult
from meddocs.utils.logging import get_logger

_CONTEXT_CHARS = 50

_TERMS: dict[str, str] = {
    # Medications
    "aspirin": "MEDICATION",
    "ibuprofen": "MEDICATION",
    "acetaminophen": "MEDICATION",
    "metformin": "MEDICATION",
    "lisinopril": "MEDICATION",
    "atorvastatin": "MEDICATION",
    "amlodipine": "MEDICATION",
    "omeprazole": "MEDICATION",
    "levothyroxine": "MEDICATION",
    "albuterol": "MEDICATION",
    # Conditions
    "diabetes": "CONDITION",
    "hypertension": "CONDITION",
    "pneumonia": "CONDITION",
    "asthma": "CONDITION",
    "depression": "CONDITION",
    "anxiety": "CONDITION",
    "arthritis": "CONDITION",
    "cancer": "CONDITION",
    "heart disease": "CONDITION",
    "stroke": "CONDITION",
    # Procedures
    "surgery": "PROCEDURE",
    "biopsy": "PROCEDURE",
    "endoscopy": "PROCEDURE",
    "colonoscopy": "PROCEDURE",
    "mri": "PROCEDURE",
    "ct scan": "PROCEDURE",
    "x-ray": "PROCEDURE",
    "ultrasound": "PROCEDURE",
    "ecg": "PROCEDURE",
    "ekg": "PROCEDURE",
    # Anatomy
    "heart": "ANATOMY",
    "lung": "ANATOMY",
    "liver": "ANATOMY",
    "kidney": "ANATOMY",
    "brain": "ANATOMY",
    "stomach": "ANATOMY",
    "chest": "ANATOMY",
    "abdomen": "ANATOMY",
    "head": "ANATOMY",
    "neck": "ANATOMY",
    # Symptoms
    "pain": "SYMPTOM",
    "fever": "SYMPTOM",
    "cough": "SYMPTOM",
    "nausea": "SYMPTOM",
    "fatigue": "SYMPTOM",
    "headache": "SYMPTOM",
    "dizziness": "SYMPTOM",
    "shortness of breath": "SYMPTOM",
    "chest pain": "SYMPTOM",
    "abdominal pain": "SYMPTOM",
}


def _suffix_patterns(*suffixes: str) -> list[re.Pattern[str]]:
    return [re.compile(rf"\b\w+{s}\b", re.IGNORECASE) for s in suffixes]


_SUFFIX_RULES: list[tuple[str, float, list[re.Pattern[str]]]] = [
    # antibiotics, statins, ACE inhibitors, ARBs, beta blockers, CCBs, PPIs
    ("MEDICATION", 0.7, _suffix_patterns("cillin", "statin", "pril", "sartan", "olol", "pine", "zole")),
    ("CONDITION", 0.6, _suffix_patterns("itis", "osis", "emia", "pathy")),
    ("PROCEDURE", 0.6, _suffix_patterns("scopy", "ectomy", "plasty", "tomy")),
]

_MONTH = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
_DATE_PATTERNS = [
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"),
    re.compile(rf"\b{_MONTH}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}\s+{_MONTH}\.?,?\s+\d{{4}}\b", re.IGNORECASE),
]

_PERSON_PATTERN = re.compile(
    r"\b(?:Dr|Mr|Mrs|Ms|Prof)\.?\s+([A-Z][a-zA-Z'-]+(?:\s+[A-Z][a-zA-Z'-]+)?)"
)

_NUMBER_PATTERN = re.compile(r"(?<![\w.])\d+(?:\.\d+)?")
_UNIT_PATTERN = re.compile(
    r"(?<![a-z])(?:mg|ml|cc|units|mcg|g|kg|lbs|mmhg|bpm)(?![a-z])", re.IGNORECASE
)


class PatternNERProvider(INERProvider):
    """Medical NER from a curated dictionary plus regular expressions."""

    def __init__(self) -> None:
        self._logger = get_logger(__name__)
        self._term_patterns = [
            (re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE), label)
            for term, label in _TERMS.items()
        ]

    async def extract_entities(self, text: str) -> NERResult:
        candidates: list[MedicalEntity] = []
        candidates.extend(self._by_terms(text))
        candidates.extend(self._by_suffix(text))
        dates = self._by_dates(text)
        candidates.extend(dates)
        candidates.extend(self._by_person(text))
        candidates.extend(self._by_measurement(text, dates))

        entities = self._deduplicate(candidates)
        confidence = (
            sum(e.confidence for e in entities) / len(entities) if entities else 0.0
        )
        self._logger.debug(
            "entities_extracted",
            text_length=len(text),
            candidates=len(candidates),
            entities=len(entities),
        )
        return NERResult(entities=entities, confidence=confidence)

    def get_provider_name(self) -> str:
        return "pattern_ner"

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _by_terms(self, text: str) -> list[MedicalEntity]:
        return [
            _entity(text, m.start(), m.end(), label, 0.9)
            for pattern, label in self._term_patterns
            for m in pattern.finditer(text)
        ]

    @staticmethod
    def _by_suffix(text: str) -> list[MedicalEntity]:
        return [
            _entity(text, m.start(), m.end(), label, confidence)
            for label, confidence, patterns in _SUFFIX_RULES
            for pattern in patterns
            for m in pattern.finditer(text)
        ]

    @staticmethod
    def _by_dates(text: str) -> list[MedicalEntity]:
        return [
            _entity(text, m.start(), m.end(), "DATE", 0.9)
            for pattern in _DATE_PATTERNS
            for m in pattern.finditer(text)
        ]

    @staticmethod
    def _by_person(text: str) -> list[MedicalEntity]:
        return [
            _entity(text, m.start(1), m.end(1), "PERSON", 0.8)
            for m in _PERSON_PATTERN.finditer(text)
        ]

    @staticmethod
    def _by_measurement(text: str, dates: list[MedicalEntity]) -> list[MedicalEntity]:
        entities = []
        for m in _NUMBER_PATTERN.finditer(text):
            # digits that belong to a date are not measurements
            if any(d.start <= m.start() < d.end for d in dates):
                continue
            window = text[max(0, m.start() - _CONTEXT_CHARS) : m.end() + _CONTEXT_CHARS]
            if _UNIT_PATTERN.search(window):
                entities.append(_entity(text, m.start(), m.end(), "MEASUREMENT", 0.7))
        return entities

    @staticmethod
    def _deduplicate(entities: list[MedicalEntity]) -> list[MedicalEntity]:
        unique: dict[tuple[str, int, int], MedicalEntity] = {}
        for entity in entities:
            key = (entity.text.lower(), entity.start, entity.end)
            existing = unique.get(key)
            if existing is None or entity.confidence > existing.confidence:
                unique[key] = entity
        return sorted(unique.values(), key=lambda e: e.start)


def _entity(text: str, start: int, end: int, label: str, confidence: float) -> MedicalEntity:
    return MedicalEntity(
        text=text[start:end],
        label=label,
        confidence=confidence,
        start=start,
        end=end,
        context=text[max(0, start - _CONTEXT_CHARS) : end + _CONTEXT_CHARS],
    )
