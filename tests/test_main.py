"""Smoke tests for the Flask application."""

from datetime import datetime

from src.config import reset_config
from src.main import create_app


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "ok"
    assert data["service"] == "audit-service"
    timestamp = datetime.fromisoformat(data["timestamp"])
    assert timestamp.tzinfo is not None


def test_metrics_endpoint_exposes_audit_counters(client):
    client.get("/health")
    response = client.get("/metrics")
    assert response.status_code == 200
    body = response.get_data(as_text=True)
    assert "audit_service_requests_total" in body
    assert "audit_events_recorded_total" in body


def test_not_found(client):
    response = client.get("/missing")
    assert response.status_code == 404
    payload = response.get_json()
    assert payload["error"]["code"] == 404
    assert payload["error"]["message"]


def test_extensions_are_wired(app):
    for name in (
        "audit_recorder",
        "alert_issuer",
        "audit_query",
        "rate_limiter",
        "csrf",
        "housekeeping",
    ):
        assert name in app.extensions
    assert not app.extensions["housekeeping"].running


def test_cors_headers(client):
    response = client.get("/health")
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_custom_cors_origin_allowed():
    reset_config({"CORS_ORIGINS": "https://allowed.example"})
    try:
        app = create_app()
        app.config.update({"TESTING": True})
        with app.test_client() as client:
            response = client.get(
                "/health", headers={"Origin": "https://allowed.example"}
            )
            assert (
                response.headers["Access-Control-Allow-Origin"]
                == "https://allowed.example"
            )
    finally:
        reset_config({"CORS_ORIGINS": None})


def test_custom_cors_origin_rejected():
    reset_config({"CORS_ORIGINS": "https://allowed.example"})
    try:
        app = create_app()
        app.config.update({"TESTING": True})
        with app.test_client() as client:
            response = client.get(
                "/health", headers={"Origin": "https://other.example"}
            )
            assert "Access-Control-Allow-Origin" not in response.headers
    finally:
        reset_config({"CORS_ORIGINS": None})
