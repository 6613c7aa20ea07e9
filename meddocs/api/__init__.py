"""meddocs API layer: routes, schemas and middleware."""

from meddocs.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from meddocs.api.routes import router
from meddocs.api.schemas import ErrorResponse, HealthResponse, ToolCallRequest, ToolListResponse

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "ErrorResponse",
    "HealthResponse",
    "ToolCallRequest",
    "ToolListResponse",
]
