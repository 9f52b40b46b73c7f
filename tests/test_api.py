"""
Tests for the HTTP API.

Runs the real flow catalogue and executor behind FastAPI with the model
manager mocked out, so every request exercises:
- Request validation
- Result to HTTP status mapping
- Chat context assembly from history
"""

import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from conftest import text_response
from studyflow.api.dependencies.services import get_executor, get_flows, get_model_manager
from studyflow.api.main import create_app
from studyflow.models.providers.base import ModelTimeout
from studyflow.pipeline.executor import FlowExecutor
from studyflow.pipeline.flows import build_flows


@pytest.fixture
def client(model_manager, prompt_manager):
    """Test client for the FastAPI app."""
    app = create_app()
    flows = build_flows(prompt_manager)
    executor = FlowExecutor(model_manager)

    app.dependency_overrides[get_model_manager] = lambda: model_manager
    app.dependency_overrides[get_flows] = lambda: flows
    app.dependency_overrides[get_executor] = lambda: executor
    return TestClient(app)


class TestChatAPI:
    def test_first_turn(self, client, model_manager):
        model_manager.generate.return_value = text_response("The weather is sunny, 25°C.")

        response = client.post("/api/v1/chat/", json={"query": "What is the weather?"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["flow"] == "chat"
        assert body["data"] == {"answer": "The weather is sunny, 25°C."}

    def test_history_becomes_context(self, client, model_manager):
        model_manager.generate.return_value = text_response({"answer": "Also sunny."})

        client.post("/api/v1/chat/", json={
            "query": "And tomorrow?",
            "history": [
                {"role": "user", "content": "What is the weather?"},
                {"role": "bot", "content": "The weather is sunny, 25°C."},
            ],
        })

        text = model_manager.generate.call_args.args[1].segments[0].text
        assert "user: What is the weather?\nassistant: The weather is sunny, 25°C." in text
        assert "Question: And tomorrow?" in text
        assert "user: And tomorrow?" not in text

    def test_document_goes_to_document_qa(self, client, model_manager, pdf_ref):
        model_manager.generate.return_value = text_response({"answer": "Photosynthesis."})

        response = client.post("/api/v1/chat/", json={"query": "Topic?", "documentMediaRef": pdf_ref.uri})

        assert response.json()["flow"] == "document_qa"
        assert model_manager.generate.call_args.args[0] == "document_qa"

    def test_empty_query_rejected(self, client, model_manager):
        response = client.post("/api/v1/chat/", json={"query": ""})
        assert response.status_code == 422
        model_manager.generate.assert_not_called()

    def test_model_unavailable(self, client, model_manager):
        model_manager.generate.side_effect = ModelTimeout("upstream timed out after 120s")

        response = client.post("/api/v1/chat/", json={"query": "hi"})

        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error"]["error_code"] == "ModelUnavailable"
        assert "120s" not in body["message"]  # provider detail stays in the logs


class TestFlowsAPI:
    def test_list_flows(self, client):
        response = client.get("/api/v1/flows/")

        assert response.status_code == 200
        flows = {f["name"]: f for f in response.json()}
        assert len(flows) == 7
        assert flows["chat"]["tools"] == ["search"]
        assert flows["mcq"]["input_schema"]["required"] == ["documentMediaRef"]

    def test_run_flashcards(self, client, model_manager):
        cards = [{"term": "ATP", "definition": "Energy currency of the cell."}]
        model_manager.generate.return_value = text_response({"flashcards": cards})

        response = client.post("/api/v1/flows/flashcards_text", json={"text": "ATP stores energy."})

        assert response.status_code == 200
        assert response.json()["data"] == {"flashcards": cards}

    def test_input_violation_is_422_with_details(self, client, model_manager):
        response = client.post("/api/v1/flows/mcq", json={"numberOfQuestions": 3})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["error_code"] == "SchemaViolation"
        assert error["details"]["path"] == "documentMediaRef"
        model_manager.generate.assert_not_called()

    def test_bad_media_is_422(self, client):
        response = client.post("/api/v1/flows/transcribe", json={"audioMediaRef": "not-a-data-uri"})
        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "UnsupportedMediaError"

    def test_output_violation_is_502(self, client, model_manager, pdf_ref):
        model_manager.generate.return_value = text_response({"questions": []})

        response = client.post("/api/v1/flows/mcq", json={"documentMediaRef": pdf_ref.uri, "numberOfQuestions": 2})

        assert response.status_code == 502
        body = response.json()
        assert body["error"]["error_code"] == "OutputSchemaViolation"
        assert body["error"]["details"] is None
        assert body["data"] is None

    def test_unknown_flow(self, client):
        response = client.post("/api/v1/flows/summarize", json={})
        assert response.status_code == 404


class TestMediaAPI:
    def test_encode_upload(self, client):
        response = client.post(
            "/api/v1/media/encode",
            files={"file": ("notes.pdf", b"%PDF-1.4 test", "application/pdf")},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["mediaRef"].startswith("data:application/pdf;base64,")
        assert data["mimeType"] == "application/pdf"
        assert data["size"] == len(b"%PDF-1.4 test")

    def test_upload_too_large(self, client, monkeypatch):
        monkeypatch.setattr("studyflow.api.routers.media.MAX_UPLOAD_BYTES", 4)
        response = client.post("/api/v1/media/encode", files={"file": ("a.txt", b"too long", "text/plain")})
        assert response.status_code == 413


class TestHealthAPI:
    def test_health(self, client, model_manager):
        model_manager.config = {"providers": {"openai": {}, "ollama_local": {}}}
        model_manager.get_stats.return_value = {"chat": {"total_calls": 3, "successful_calls": 2}}

        response = client.get("/health/")

        assert response.status_code == 200
        deps = response.json()["dependencies"]
        assert deps["providers"] == "openai, ollama_local"
        assert deps["flows"] == "7 registered"
        assert deps["task:chat"] == "2/3 calls succeeded"

    def test_ready(self, client, model_manager):
        model_manager.health = AsyncMock(return_value={"openai": True, "ollama_local": False})

        body = client.get("/health/ready").json()

        assert body["ready"] is False
        assert "ollama_local" in body["reason"]

    def test_not_started(self):
        # without lifespan or overrides the services are missing
        response = TestClient(create_app()).get("/health/")
        assert response.status_code == 503


def test_root(client):
    assert client.get("/").json()["name"] == "StudyFlow API"
