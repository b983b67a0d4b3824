"""
Translation and transcription endpoint tests.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from tarjama.main import create_app
from tarjama.services.asr_service import ASRService
from tarjama.services.errors import UpstreamServiceError
from tarjama.services.history_service import HistoryScope

from fakes import BISMILLAH, BISMILLAH_EN, FakeTranslator

HEADERS = {"X-User-Id": "user-1"}


def fake_asr_service(status_code=200, text="بسم الله"):
    def handler(request):
        return httpx.Response(status_code, json={"text": text})

    return ASRService("sk-test", "whisper-1", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.fixture
def pipeline(make_pipeline, translator):
    return make_pipeline(translator)


@pytest.fixture
def client(pipeline):
    """Create test client."""
    app = create_app(pipeline=pipeline, asr_service=fake_asr_service())
    with TestClient(app) as client:
        yield client


def test_translate_requires_identity(client):
    response = client.post("/api/translate", json={"text": BISMILLAH})
    assert response.status_code == 401


def test_translate_requires_text(client):
    response = client.post("/api/translate", json={}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"] == "No text provided"


def test_translate_rejects_blank_text(client):
    response = client.post("/api/translate", json={"text": "   "}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"] == "Text is empty"


def test_translate_rejects_long_text(client):
    response = client.post("/api/translate", json={"text": "كلمة " * 1001}, headers=HEADERS)
    assert response.status_code == 400
    assert "Maximum 5000 characters" in response.json()["detail"]


def test_translate_rejects_non_string_room_id(client):
    response = client.post("/api/translate", json={"text": BISMILLAH, "roomId": 123}, headers=HEADERS)
    assert response.status_code == 422  # Validation error


def test_translate_filters_boilerplate(client, translator):
    response = client.post("/api/translate", json={"text": "اشتركوا في القناة"}, headers=HEADERS)
    assert response.status_code == 200
    data = response.json()
    assert data["text"] == ""
    assert data["filtered"] is True
    assert data["cached"] is False
    assert translator.calls == []


def test_translate_then_cached(client):
    first = client.post("/api/translate", json={"text": BISMILLAH}, headers=HEADERS).json()
    second = client.post("/api/translate", json={"text": BISMILLAH}, headers=HEADERS).json()

    assert first["text"] == BISMILLAH_EN
    assert first["cached"] is False
    assert "filtered" not in first
    assert isinstance(first["processingTime"], float)
    assert second["text"] == BISMILLAH_EN
    assert second["cached"] is True


def test_translate_hallucinated_output(make_pipeline):
    pipeline = make_pipeline(FakeTranslator("You're welcome"))
    with TestClient(create_app(pipeline=pipeline, asr_service=fake_asr_service())) as client:
        data = client.post("/api/translate", json={"text": BISMILLAH}, headers=HEADERS).json()

    assert data["text"] == ""
    assert data["filtered"] is True
    assert len(pipeline.cache) == 0


def test_translate_writes_room_history(make_pipeline, history_store):
    pipeline = make_pipeline()
    with TestClient(create_app(pipeline=pipeline, asr_service=fake_asr_service())) as client:
        response = client.post("/api/translate", json={"text": BISMILLAH, "roomId": "room-1"}, headers=HEADERS)
    # Leaving the client runs shutdown, which drains pending history writes

    assert response.status_code == 200
    assert len(history_store.for_scope(HistoryScope(user_id="user-1", room_id="room-1"))) == 1
    assert len(history_store.for_scope(HistoryScope(user_id="user-1"))) == 1


def test_translate_upstream_error(make_pipeline):
    pipeline = make_pipeline(FakeTranslator(UpstreamServiceError("Translation provider error")))
    with TestClient(create_app(pipeline=pipeline, asr_service=fake_asr_service())) as client:
        response = client.post("/api/translate", json={"text": BISMILLAH}, headers=HEADERS)
    assert response.status_code == 502


def test_translate_unexpected_error(make_pipeline):
    pipeline = make_pipeline(FakeTranslator(RuntimeError("boom")))
    with TestClient(create_app(pipeline=pipeline, asr_service=fake_asr_service())) as client:
        response = client.post("/api/translate", json={"text": BISMILLAH}, headers=HEADERS)
    assert response.status_code == 500
    assert response.json()["detail"] == "Error processing translation: boom"


def test_metrics(client):
    client.post("/api/translate", json={"text": BISMILLAH}, headers=HEADERS)
    response = client.get("/api/metrics")
    assert response.status_code == 200
    assert response.json()["pipeline"]["total_requests"] == 1


def test_transcribe(client):
    response = client.post("/api/transcribe", files={"file": ("chunk.webm", b"\x00" * 2000, "audio/webm")})
    assert response.status_code == 200
    assert response.json() == {"text": "بسم الله"}


def test_transcribe_empty_upload(client):
    response = client.post("/api/transcribe", files={"file": ("chunk.webm", b"", "audio/webm")})
    assert response.status_code == 400


def test_transcribe_silence(client):
    response = client.post("/api/transcribe", files={"file": ("chunk.webm", b"\x00" * 10, "audio/webm")})
    assert response.status_code == 200
    assert response.json() == {"text": ""}


def test_transcribe_provider_error(pipeline):
    app = create_app(pipeline=pipeline, asr_service=fake_asr_service(status_code=500))
    with TestClient(app) as client:
        response = client.post("/api/transcribe", files={"file": ("chunk.webm", b"\x00" * 2000, "audio/webm")})
    assert response.status_code == 502
