"""Extraction-side models: file references, extracted text and NER output."""

from __future__ import annotations

import base64
import binascii
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from meddocs.models.document import MedicalEntity

_IMAGE_TYPES = frozenset({"jpg", "jpeg", "png", "tif", "tiff", "bmp", "gif", "webp"})


class FileReference(BaseModel):
    """A file to extract text from: a path on disk or an in-memory buffer.

    Exactly one of ``path`` and ``data`` must be set.  ``file_type`` is the
    lower-case extension without the dot (``"pdf"``, ``"png"``); when
    omitted it is inferred from ``path``.
    """

    model_config = ConfigDict(frozen=True)

    path: str | None = None
    data: bytes | None = Field(default=None, repr=False)
    file_type: str | None = None

    @model_validator(mode="after")
    def _one_source(self) -> FileReference:
        if (self.path is None) == (self.data is None):
            raise ValueError("Provide exactly one of path or data")
        return self

    @classmethod
    def from_base64(cls, encoded: str, file_type: str | None = None) -> FileReference:
        """Decode a base64 buffer (optionally a ``data:`` URL) into a reference."""
        if "," in encoded and encoded.lstrip().startswith("data:"):
            encoded = encoded.split(",", 1)[1]
        try:
            raw = base64.b64decode(encoded, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"fileBuffer is not valid base64: {exc}") from exc
        return cls(data=raw, file_type=file_type)

    @property
    def resolved_type(self) -> str:
        if self.file_type:
            return self.file_type.lower().lstrip(".")
        if self.path:
            return Path(self.path).suffix.lower().lstrip(".")
        return ""

    @property
    def is_image(self) -> bool:
        return self.resolved_type in _IMAGE_TYPES

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        return Path(self.path).read_bytes()  # type: ignore[arg-type]


class ExtractionResult(BaseModel):
    """Text pulled from a file by an extractor collaborator.

    ``text`` is never ``None``; total failure yields an empty string, which
    the ingestion pipeline then rejects.
    """

    model_config = ConfigDict(frozen=True)

    text: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    page_count: int | None = None
    method: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class NERResult(BaseModel):
    """Entities found in a text plus their mean confidence."""

    model_config = ConfigDict(frozen=True)

    entities: list[MedicalEntity] = Field(default_factory=list)
    confidence: float = 0.0
