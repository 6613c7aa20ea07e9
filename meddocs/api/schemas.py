"""Request and response schemas specific to the HTTP API.

Tool request bodies reuse the closed argument models in
:mod:`meddocs.models.tools`; this module only holds the shapes that exist
solely at the HTTP boundary.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from meddocs.models.search import DateRange
from meddocs.models.tools import AnalysisType


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ToolCallRequest(BaseModel):
    """Raw arguments for ``POST /tools/{name}``; validated by the tool itself."""

    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolListResponse(BaseModel):
    tools: list[str]


class PatientHistoryRequest(BaseModel):
    """Body of ``POST /patients/{id}/history``; the patient comes from the path."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    analysis_type: AnalysisType = AnalysisType.SUMMARY
    date_range: DateRange | None = None
