"""
Tests for the HTTP surface.
"""
import logging

import pytest
from fastapi.testclient import TestClient

from app.main import create_app, log_level
from config.settings import Settings
from scribe.core.storage import MemoryStorage

from tests.conftest import BACKEND_URL, GeoTransport, US_RESPONSE


@pytest.fixture
def transport():
    return GeoTransport({"backend.test": (200, US_RESPONSE)})


@pytest.fixture
def client(transport):
    settings = Settings()
    settings.app_env = "test"
    settings.location_api_url = BACKEND_URL
    settings.location_external_providers = []
    settings.client_timezone = None
    app = create_app(settings=settings, storage=MemoryStorage(), transport=transport)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_location_is_cached_between_requests(client, transport):
    first = client.get("/location").json()
    second = client.get("/location").json()

    assert first["countryCode"] == "us"
    assert first["recommendedGateway"] == "stripe"
    assert first == second
    assert len(transport.calls) == 1


def test_location_refresh_and_clear(client, transport):
    client.get("/location")
    client.get("/location", params={"refresh": "true"})
    assert len(transport.calls) == 2

    assert client.delete("/location/cache").json() == {"cleared": True}
    client.get("/location")
    assert len(transport.calls) == 3


def test_location_failure_returns_fallback(transport, client):
    transport.routes.clear()

    body = client.get("/location").json()

    assert body["detectionMethod"] == "fallback"
    assert body["currency"] == "ngn"


@pytest.mark.parametrize(
    "payload, status, color",
    [
        ({"status": "processing"}, "paid", "success"),
        ({"status": "failed"}, "failed", "error"),
        ({}, "pending", "warning"),
    ],
)
def test_payment_status(client, payload, status, color):
    response = client.post("/payments/status", json=payload)

    assert response.status_code == 200
    assert response.json() == {"status": status, "color": color}


def test_conversation_lifecycle(client):
    assert client.get("/chat/conversations").json() is None

    conversations = [
        {"id": "c1", "title": "Essay", "messages": [{"role": "user", "content": "Draft an intro"}]},
        {"id": "c2", "title": "Lab report", "messages": []},
    ]
    assert client.put("/chat/conversations", json=conversations).json() == {"saved": True}

    listed = client.get("/chat/conversations").json()
    assert [c["id"] for c in listed] == ["c1", "c2"]

    response = client.post("/chat/conversations/c2/messages", json={"role": "assistant", "content": "Sure"})
    assert response.status_code == 200

    found = client.get("/chat/conversations/search", params={"q": "sure"}).json()
    assert [c["id"] for c in found] == ["c2"]

    assert client.delete("/chat/conversations/c1").status_code == 200
    assert [c["id"] for c in client.get("/chat/conversations").json()] == ["c2"]


def test_append_to_missing_conversation_is_404(client):
    response = client.post("/chat/conversations/nope/messages", json={"role": "user", "content": "hi"})

    assert response.status_code == 404


def test_current_conversation(client):
    assert client.get("/chat/current").json() is None

    client.put("/chat/current", json={"id": "c1", "messages": [{"role": "user", "content": "hi"}]})

    assert client.get("/chat/current").json()["messages"][0]["content"] == "hi"


def test_model_settings(client):
    client.put("/chat/model-settings", json={"selectedModel": "gpt-4o", "modelSettings": {"temperature": 0.2}})

    assert client.get("/chat/model-settings").json() == {
        "selectedModel": "gpt-4o",
        "modelSettings": {"temperature": 0.2},
    }


def test_force_restore_flag(client):
    assert client.get("/chat/force-restore").json() == {"forceRestore": False}
    client.post("/chat/force-restore")
    assert client.get("/chat/force-restore").json() == {"forceRestore": True}
    client.delete("/chat/force-restore")
    assert client.get("/chat/force-restore").json() == {"forceRestore": False}


def test_stats_and_clear(client):
    client.put("/chat/conversations", json=[{"id": "c1", "messages": []}])

    stats = client.get("/chat/stats").json()
    assert stats["local_conversations_count"] == 1
    assert stats["last_save_time"] is not None

    assert client.delete("/chat").json() == {"cleared": True}
    assert client.get("/chat/conversations").json() is None
    assert client.get("/chat/stats").json()["has_local_conversations"] is False


def test_save_failure_is_500(transport):
    settings = Settings()
    settings.app_env = "test"
    settings.location_api_url = BACKEND_URL
    app = create_app(settings=settings, storage=MemoryStorage(quota_bytes=8), transport=transport)

    with TestClient(app) as client:
        response = client.put("/chat/current", json={"id": "c1", "messages": []})

    assert response.status_code == 500


def test_current_history_for_assistant(client):
    client.put(
        "/chat/current",
        json={
            "id": "c1",
            "messages": [
                {"role": "user", "content": "Outline my essay"},
                {"role": "assistant", "content": "Start with the thesis."},
                {"role": "user", "content": "Then?"},
            ],
        },
    )

    assert client.get("/chat/current/history", params={"limit": 2}).json() == [
        {"role": "ai", "content": "Start with the thesis."},
        {"role": "human", "content": "Then?"},
    ]


def test_current_history_is_empty_without_conversation(client):
    assert client.get("/chat/current/history").json() == []


def test_corrupt_storage_file_does_not_block_startup(tmp_path, transport):
    path = tmp_path / "storage.json"
    path.write_text("{oops", encoding="utf-8")
    settings = Settings()
    settings.app_env = "test"
    settings.location_api_url = BACKEND_URL
    settings.storage_path = str(path)

    with TestClient(create_app(settings=settings, transport=transport)) as client:
        assert client.get("/chat/conversations").status_code == 200
        assert client.get("/chat/conversations").json() is None
        assert client.put("/chat/current", json={"id": "c1", "messages": []}).json() == {"saved": True}

    assert (tmp_path / "storage.json.corrupt").exists()


@pytest.mark.parametrize(
    "name, level",
    [("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("verbose", logging.INFO), (None, logging.INFO)],
)
def test_log_level_from_settings(name, level):
    assert log_level(name) == level
