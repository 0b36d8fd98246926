"""Tests for the operator audit endpoints."""

from dataclasses import replace

from src.auth.guards import CSRF_HEADER
from src.auth.jwt_handler import encode_jwt
from src.config import get_config
from src.main import create_app
from src.models.audit import AlertType, EventKind, RiskLevel


def seed_failed_logins(app, count=5, source="203.0.113.5"):
    recorder = app.extensions["audit_recorder"]
    for _ in range(count):
        recorder.record(
            EventKind.USER_LOGIN,
            source_address=source,
            metadata={"success": False},
        )


def open_alert(app):
    return app.extensions["alert_issuer"].issue(
        alert_type=AlertType.CSRF_VIOLATION,
        severity=RiskLevel.HIGH,
        title="Naruszenie ochrony CSRF",
        description="Wykryto potencjalny atak CSRF",
        source_address="198.51.100.3",
    )


def test_list_events_requires_operator(client, service_headers):
    assert client.get("/admin/audit/events").status_code == 401
    response = client.get("/admin/audit/events", headers=service_headers)
    assert response.status_code == 403


def test_list_events_page_shape(client, app, clock, operator_headers):
    recorder = app.extensions["audit_recorder"]
    for _ in range(25):
        recorder.record(EventKind.USER_LOGOUT, actor_id="user-1")
        clock.advance(seconds=1)

    response = client.get(
        "/admin/audit/events?limit=10&offset=0", headers=operator_headers
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert len(payload["items"]) == 10
    assert payload["total"] == 25
    assert payload["totalPages"] == 3
    assert payload["page"] == 1
    assert payload["limit"] == 10
    assert payload["offset"] == 0


def test_filter_by_source_address(client, app, operator_headers):
    seed_failed_logins(app)
    app.extensions["audit_recorder"].record(
        EventKind.USER_LOGOUT, source_address="192.0.2.1"
    )

    events = client.get(
        "/admin/audit/events?source_address=203.0.113.5",
        headers=operator_headers,
    ).get_json()
    alerts = client.get(
        "/admin/audit/alerts?source_address=203.0.113.5",
        headers=operator_headers,
    ).get_json()

    assert events["total"] == 5
    assert alerts["total"] == 1
    alert = alerts["items"][0]
    assert alert["alert_type"] == "multiple_failed_logins"
    assert alert["severity"] == "medium"
    assert alert["resolved"] is False


def test_invalid_filters_return_422(client, operator_headers):
    response = client.get(
        "/admin/audit/events?limit=0", headers=operator_headers
    )
    assert response.status_code == 422
    assert "limit" in response.get_json()["error"]["details"]

    response = client.get(
        "/admin/audit/alerts?severity=extreme", headers=operator_headers
    )
    assert response.status_code == 422


def test_overview(client, app, operator_headers):
    seed_failed_logins(app)

    payload = client.get(
        "/admin/audit/overview", headers=operator_headers
    ).get_json()

    assert payload["unresolved_alerts"] == 1
    assert len(payload["recent_alerts"]) == 1
    assert payload["events_by_risk"] == {"medium": 5}


def test_resolve_alert(client, app, csrf_headers):
    alert = open_alert(app)

    response = client.post(
        f"/admin/audit/alerts/{alert.id}/resolve", headers=csrf_headers
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["resolved"] is True
    assert payload["alert"]["resolved"] is True
    assert payload["alert"]["resolved_by"] == "operator-1"

    actions = app.extensions["audit_query"].list_events(
        {"event_kind": "admin_support_action"}
    )
    assert actions.total == 1
    assert actions.items[0].actor_id == "operator-1"
    assert actions.items[0].event_metadata == {
        "action": "resolve_alert",
        "alert_id": alert.id,
    }


def test_resolve_twice_conflicts(client, app, csrf_headers):
    alert = open_alert(app)
    url = f"/admin/audit/alerts/{alert.id}/resolve"

    assert client.post(url, headers=csrf_headers).status_code == 200
    second = client.post(url, headers=csrf_headers)

    assert second.status_code == 409
    stored = app.extensions["audit_query"].get_alert(alert.id)
    assert stored.resolved_by == "operator-1"


def test_resolve_unknown_alert(client, csrf_headers):
    response = client.post(
        "/admin/audit/alerts/404/resolve", headers=csrf_headers
    )
    assert response.status_code == 404


def test_resolve_without_csrf_token_is_rejected(
    client, app, operator_headers
):
    alert = open_alert(app)

    response = client.post(
        f"/admin/audit/alerts/{alert.id}/resolve", headers=operator_headers
    )

    assert response.status_code == 403
    query = app.extensions["audit_query"]
    assert query.get_alert(alert.id).resolved is False
    violations = query.list_events({"event_kind": "csrf_violation"})
    assert violations.total == 1
    assert violations.items[0].actor_id == "operator-1"
    csrf_alerts = query.list_alerts({"alert_type": "csrf_violation"})
    assert csrf_alerts.total == 2


def test_csrf_token_endpoint(client, operator_headers, app):
    token = client.get(
        "/admin/audit/csrf-token", headers=operator_headers
    ).get_json()["csrf_token"]

    assert app.extensions["csrf"].validate_token(token, "operator-1")


def test_csrf_token_of_other_operator_is_rejected(client, app):
    alert = open_alert(app)
    token = app.extensions["csrf"].generate_token("operator-2")
    headers = {
        "Authorization": f"Bearer {encode_jwt('operator-1', role='admin')}",
        CSRF_HEADER: token,
    }

    response = client.post(
        f"/admin/audit/alerts/{alert.id}/resolve", headers=headers
    )

    assert response.status_code == 403


def test_housekeeping_endpoint(client, app, clock, operator_headers):
    app.extensions["audit_recorder"].record(
        EventKind.USER_LOGOUT, actor_id="old"
    )
    clock.advance(days=91)
    headers = {
        **operator_headers,
        CSRF_HEADER: app.extensions["csrf"].generate_token("operator-1"),
    }

    response = client.post("/admin/audit/housekeeping", headers=headers)

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["ok"] is True
    assert payload["events_purged"] == 1
    assert payload["retention_days"] == 90


def test_admin_rate_limit(clock, operator_headers):
    config = replace(
        get_config(),
        admin_rate_limit_requests=1,
        admin_rate_limit_window_seconds=900,
    )
    limited = create_app(config, clock=clock)
    limited.config.update({"TESTING": True})

    with limited.test_client() as client:
        first = client.get("/admin/audit/overview", headers=operator_headers)
        second = client.get("/admin/audit/overview", headers=operator_headers)

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.headers["Retry-After"] == "900"
