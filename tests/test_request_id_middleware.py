from __future__ import annotations

from fastapi.testclient import TestClient

from limitr.core.app_factory import create_app


client = TestClient(create_app())


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)
    assert len(generated) > 0

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_denied_responses_carry_request_id():
    resp = client.get("/api/hello", headers={"X-Request-ID": "denied-1", "X-Real-IP": "192.0.2.1"})
    for _ in range(100):
        resp = client.get(
            "/api/hello", headers={"X-Request-ID": "denied-1", "X-Real-IP": "192.0.2.1"}
        )

    assert resp.status_code == 429
    assert resp.headers.get("X-Request-ID") == "denied-1"
