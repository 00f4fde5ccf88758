"""Tests for application-level endpoints and error mapping."""

from fastapi.testclient import TestClient


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["uptime_seconds"] >= 0


def test_api_root(client: TestClient):
    assert client.get("/api").json()["docs"] == "/docs"


def test_domain_errors_use_the_envelope(client: TestClient):
    response = client.get("/api/v1/shipping/packages/nope")
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "code": "E-4004",
        "message": "Saved package 'nope' not found",
    }


def test_cors_allows_configured_origin(client: TestClient):
    response = client.options(
        "/api/v1/batches",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
