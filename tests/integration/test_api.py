"""Integration tests for FastAPI API endpoints using TestClient."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from meddocs import __version__
from meddocs.api.middleware import ErrorHandlingMiddleware
from meddocs.api.routes import router as api_router
from meddocs.services.document_tools import DocumentTools
from tests.conftest import InMemoryDocumentStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app(tools: DocumentTools, memory_store: InMemoryDocumentStore) -> FastAPI:
    """Bare app wired with the in-memory services, without the lifespan."""
    application = FastAPI()
    application.add_middleware(ErrorHandlingMiddleware)
    application.include_router(api_router)
    application.state.tools = tools
    application.state.store = memory_store
    application.state.provider_registry = {
        "embedding": True,
        "embedding_provider": "mock-embedding",
        "document_store": True,
        "extractors": ["mock-pdf"],
    }
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def _upload(client: TestClient, title: str, content: str, **metadata) -> str:
    response = client.post(
        "/api/v1/documents", json={"title": title, "content": content, "metadata": metadata}
    )
    assert response.status_code == 201, response.text
    return response.json()["documentId"]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class TestDocumentEndpoints:
    def test_upload_and_fetch(self, client: TestClient) -> None:
        doc_id = _upload(client, "ED visit", "Chest pain, started aspirin 325 mg.", patientId="P-1")

        response = client.get(f"/api/v1/documents/{doc_id}")
        assert response.status_code == 200
        document = response.json()["document"]
        assert document["title"] == "ED visit"
        assert document["metadata"]["patientId"] == "P-1"
        assert document["embeddingDimension"] == 128

    def test_upload_without_source_is_422(self, client: TestClient) -> None:
        response = client.post("/api/v1/documents", json={"title": "Empty"})
        assert response.status_code == 422

    def test_upload_unknown_metadata_key_is_422(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/documents",
            json={"title": "Note", "content": "Fever and cough.", "metadata": {"patientID": "P-1"}},
        )
        assert response.status_code == 422

    def test_missing_document_is_404(self, client: TestClient) -> None:
        response = client.get("/api/v1/documents/nope")
        assert response.status_code == 404
        assert response.json()["errorType"] == "NotFoundError"

    def test_delete(self, client: TestClient) -> None:
        doc_id = _upload(client, "Renal", "Creatinine 2.1 mg/dL with reduced eGFR.")
        assert client.delete(f"/api/v1/documents/{doc_id}").json()["deleted"] is True
        assert client.delete(f"/api/v1/documents/{doc_id}").status_code == 404

    def test_list_with_query_filters(self, client: TestClient) -> None:
        _upload(client, "Cardio", "Chest pain, started aspirin.", patientId="P-1")
        _upload(client, "Renal", "Creatinine 2.1 mg/dL.", patientId="P-2")

        response = client.get("/api/v1/documents", params={"patientId": "P-2", "limit": 5})
        body = response.json()
        assert response.status_code == 200
        assert [row["title"] for row in body["documents"]] == ["Renal"]
        assert body["pagination"]["total"] == 1


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class TestSearchEndpoints:
    def test_search(self, client: TestClient) -> None:
        _upload(client, "Cardio", "Chest pain, started aspirin and heparin.")

        response = client.post("/api/v1/search", json={"query": "aspirin", "mode": "lexical", "threshold": 0.5})

        assert response.status_code == 200
        body = response.json()
        assert body["resultsCount"] == 1
        assert body["results"][0]["title"] == "Cardio"

    def test_search_store_down_is_503(
        self, client: TestClient, memory_store: InMemoryDocumentStore
    ) -> None:
        memory_store.failing = True
        response = client.post("/api/v1/search", json={"query": "aspirin"})

        assert response.status_code == 503
        assert response.json()["errorType"] == "SearchUnavailableError"

    def test_search_rejects_unknown_filter_key(self, client: TestClient) -> None:
        response = client.post("/api/v1/search", json={"query": "aspirin", "filter": {"patientID": "P-1"}})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Patient analysis
# ---------------------------------------------------------------------------


class TestPatientEndpoints:
    def test_patient_history(self, client: TestClient) -> None:
        _upload(client, "Clinic", "Type 2 diabetes. Continue metformin 500 mg.", patientId="P-1")

        response = client.post("/api/v1/patients/P-1/history", json={"analysisType": "trends"})

        assert response.status_code == 200
        body = response.json()
        assert body["patientId"] == "P-1"
        assert body["analysis"]["trends"][0]["medicationCount"] == 1

    def test_unknown_patient_history_is_404(self, client: TestClient) -> None:
        response = client.post("/api/v1/patients/P-9/history", json={})
        assert response.status_code == 404

    def test_insights(self, client: TestClient) -> None:
        response = client.post("/api/v1/insights", json={"query": "metformin", "limit": 3})

        assert response.status_code == 200
        assert response.json()["insightsFound"] == 0

    def test_insights_limit_out_of_range_is_422(self, client: TestClient) -> None:
        response = client.post("/api/v1/insights", json={"query": "metformin", "limit": 50})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------


class TestToolEndpoints:
    def test_list_tools(self, client: TestClient) -> None:
        tools = client.get("/api/v1/tools").json()["tools"]
        assert "uploadDocument" in tools
        assert "findSimilarCases" in tools
        assert "analyzePatientHistory" in tools
        assert "getMedicalInsights" in tools

    def test_call_tool(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/tools/extractMedicalEntities",
            json={"arguments": {"text": "Started metformin for diabetes."}},
        )
        assert response.status_code == 200
        assert response.json()["entitiesByType"]["MEDICATION"] >= 1

    def test_unknown_tool_is_404(self, client: TestClient) -> None:
        response = client.post("/api/v1/tools/unknown", json={"arguments": {}})
        assert response.status_code == 404
        assert response.json()["error"] == "Unknown tool: unknown"

    def test_invalid_tool_arguments_are_422(self, client: TestClient) -> None:
        response = client.post("/api/v1/tools/searchDocuments", json={"arguments": {"limit": 5}})
        assert response.status_code == 422
        assert response.json()["success"] is False


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestStatusEndpoints:
    def test_stats(self, client: TestClient) -> None:
        _upload(client, "Cardio", "Chest pain, started aspirin.")
        body = client.get("/api/v1/stats").json()
        assert body["document_count"] == 1
        assert body["dimension"] == 128

    def test_stats_store_down_is_500(
        self, client: TestClient, memory_store: InMemoryDocumentStore
    ) -> None:
        memory_store.failing = True
        response = client.get("/api/v1/stats")

        assert response.status_code == 500
        assert response.json() == {"error": "StorageError", "detail": "store is down"}

    def test_health(self, client: TestClient) -> None:
        body = client.get("/api/v1/health").json()
        assert body["status"] == "healthy"
        assert body["version"] == __version__
        assert body["providers"]["document_count"] == 0

    def test_health_degraded_when_store_down(
        self, app: FastAPI, client: TestClient, memory_store: InMemoryDocumentStore
    ) -> None:
        memory_store.failing = True
        app.state.provider_registry = {**app.state.provider_registry, "document_store": memory_store.is_available()}

        body = client.get("/api/v1/health").json()
        assert body["status"] == "degraded"
        assert body["providers"]["document_count"] is None
