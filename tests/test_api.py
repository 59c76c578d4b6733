import time

import pytest
from fastapi.testclient import TestClient

from chunkscribe.chunkscribe_server import create_app


@pytest.fixture
def client(config):
    with TestClient(create_app(config)) as client:
        yield client


def _wait_for_text(client, name, needle, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/api/documents/{name}").json()
        if body["status"] == "success" and needle in body["document"]["text"]:
            return body["document"]["text"]
        time.sleep(0.05)
    raise AssertionError(f"{needle!r} never appeared in {name!r}")


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["session_state"] == "idle"


def test_stop_when_idle(client):
    body = client.post("/api/session/stop").json()
    assert body["status"] == "success"
    assert body["result"] is None


def test_document_editing(client):
    client.post("/api/documents/notes/insert", json={"text": "world"})
    client.post("/api/documents/notes/insert", json={"text": "hello ", "position": 0})
    body = client.put("/api/documents/notes/point", json={"position": 5}).json()

    assert body["document"]["text"] == "hello world"
    assert body["document"]["point"] == 5
    assert client.get("/api/documents").json()["documents"] == ["notes"]

    assert client.delete("/api/documents/notes").json()["status"] == "success"
    assert client.get("/api/documents/notes").json()["status"] == "error"


def test_out_of_range_insert_is_an_error(client):
    body = client.post("/api/documents/notes/insert", json={"text": "x", "position": 99}).json()
    assert body["status"] == "error"


def test_cleanup_toggle_recomputes_tags(client):
    body = client.post("/api/config/cleanup", json={"enabled": True}).json()
    assert body["start_tag"] == "TRANSCRIBING + LLM => "
    assert body["end_tag"] == " <= TRANSCRIBING + LLM"

    config = client.get("/api/config").json()["config"]
    assert config["cleanup"]["enabled"] is True


def test_config_masks_api_key(config, client):
    config.cleanup.api_key = "secret"
    assert client.get("/api/config").json()["config"]["cleanup"]["api_key"] == "***"


def test_missing_executable_is_reported(config, client):
    config.recorder.command = ["no-such-recorder-xyz"]
    body = client.post("/api/session/start").json()

    assert body["status"] == "error"
    assert "no-such-recorder-xyz" in body["message"]
    assert client.get("/api/documents").json()["documents"] == []


def test_session_round_trip(client, capture_script):
    capture_script("Hello", "(cough) world")

    started = client.post("/api/session/run", params={"document": "memo"}).json()
    assert started["status"] == "success"
    assert started["state"] == "recording"
    assert client.post("/api/session/start", params={"document": "memo"}).json()["status"] == "error"

    _wait_for_text(client, "memo", "world")
    stopped = client.post("/api/session/run").json()

    assert stopped["result"]["text"] == "Hello world"
    assert client.get("/api/documents/memo").json()["document"]["text"] == "Hello world"
    assert client.get("/api/session/history").json()["count"] == 1

    stats = client.get("/api/stats").json()["stats"]
    assert stats["inserts"]["inserted"] >= 2


def test_emergency_cleanup(client, capture_script):
    capture_script()
    client.post("/api/session/start", params={"document": "memo"})

    body = client.post("/api/session/cleanup").json()

    assert body["state"] == "idle"
    assert client.get("/api/session").json()["session"] is None


def test_run_endpoint_delegates_to_controller(client, monkeypatch):
    calls = []

    async def fake_run(document_name=None):
        calls.append(document_name)
        return None

    monkeypatch.setattr(client.app.state.controller, "run", fake_run)
    body = client.post("/api/session/run", params={"document": "memo"}).json()

    assert calls == ["memo"]
    assert body["status"] == "success"
    assert body["result"] is None


def test_run_reports_missing_executable(config, client):
    config.transcriber.command = ["no-such-recognizer-xyz"]
    body = client.post("/api/session/run").json()

    assert body["status"] == "error"
    assert body["error_type"] == "MissingExecutableError"
    assert body["state"] == "idle"
