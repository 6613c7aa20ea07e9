"""Abstract base class for medical named-entity recognition."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Iterable

from meddocs.models.document import MedicalEntity
from meddocs.models.extraction import NERResult

# Labels produced by the bundled tagger.  Other providers may emit labels
# outside this set; they are stored as-is.
ENTITY_LABELS: tuple[str, ...] = (
    "MEDICATION",
    "CONDITION",
    "PROCEDURE",
    "ANATOMY",
    "SYMPTOM",
    "PERSON",
    "DATE",
    "MEASUREMENT",
)


# Concrete implementation: PatternNERProvider (meddocs/providers/ner/)
class INERProvider(ABC):
    """Contract for collaborators that tag medical entities in text."""

    @abstractmethod
    async def extract_entities(self, text: str) -> NERResult:
        """Return entities sorted by start offset and their mean confidence."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return an identifier such as ``"pattern_ner"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the tagger can run."""


def filter_by_label(entities: list[MedicalEntity], labels: Iterable[str]) -> list[MedicalEntity]:
    """Keep entities whose label is in *labels*, preserving order."""
    wanted = set(labels)
    return [e for e in entities if e.label in wanted]


def count_by_label(entities: Iterable[MedicalEntity]) -> dict[str, int]:
    return dict(Counter(e.label for e in entities))
