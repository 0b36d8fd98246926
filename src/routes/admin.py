"""Operator endpoints for browsing the audit trail and handling alerts."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from src.audit.alerts import AlertIssuer, ResolveOutcome
from src.audit.query import QueryFacade, QueryValidationError
from src.auth.guards import rate_limited, require_csrf
from src.auth.jwt_handler import current_principal, require_operator
from src.models.audit import EventKind
from src.routes.helpers import error_response, page_payload
from src.schemas.audit import AuditEventSchema, SecurityAlertSchema
from src.services.audit import log_audit_event
from src.services.csrf import CSRFProtection
from src.services.housekeeping import HousekeepingService

admin_bp = Blueprint("admin_audit", __name__, url_prefix="/admin/audit")

events_schema = AuditEventSchema(many=True)
alert_schema = SecurityAlertSchema()
alerts_schema = SecurityAlertSchema(many=True)

_RESOLVE_ERRORS = {
    ResolveOutcome.NOT_FOUND: (404, "alert not found"),
    ResolveOutcome.ALREADY_RESOLVED: (409, "alert already resolved"),
    ResolveOutcome.FAILED: (503, "alert could not be resolved"),
}


def _query() -> QueryFacade:
    return current_app.extensions["audit_query"]


def _issuer() -> AlertIssuer:
    return current_app.extensions["alert_issuer"]


def _operator_id() -> str:
    return str(current_principal().get("sub"))


def _admin_route(fn):
    """Operator routes are rate limited first, then authenticated."""

    limited = rate_limited(
        "admin_rate_limit_requests", "admin_rate_limit_window_seconds"
    )
    return limited(require_operator(fn))


@admin_bp.get("/events")
@_admin_route
def list_events():
    """Return a filtered page of audit events, newest first."""

    try:
        page = _query().list_events(request.args)
    except QueryValidationError as exc:
        return error_response(422, "invalid filters", exc.messages)
    return jsonify(page_payload(page, events_schema.dump(page.items)))


@admin_bp.get("/alerts")
@_admin_route
def list_alerts():
    """Return a filtered page of security alerts, newest first."""

    try:
        page = _query().list_alerts(request.args)
    except QueryValidationError as exc:
        return error_response(422, "invalid filters", exc.messages)
    return jsonify(page_payload(page, alerts_schema.dump(page.items)))


@admin_bp.get("/overview")
@_admin_route
def overview():
    summary = _query().overview()
    return jsonify(
        {
            "unresolved_alerts": summary.unresolved_alerts,
            "recent_alerts": alerts_schema.dump(summary.recent_alerts),
            "events_by_risk": summary.events_by_risk,
        }
    )


@admin_bp.get("/csrf-token")
@_admin_route
def csrf_token():
    protection: CSRFProtection = current_app.extensions["csrf"]
    return jsonify({"csrf_token": protection.generate_token(_operator_id())})


@admin_bp.post("/alerts/<int:alert_id>/resolve")
@_admin_route
@require_csrf
def resolve_alert(alert_id: int):
    """Mark an open alert as resolved by the calling operator."""

    operator_id = _operator_id()
    outcome = _issuer().resolve(alert_id, operator_id)
    if outcome in _RESOLVE_ERRORS:
        status, message = _RESOLVE_ERRORS[outcome]
        return error_response(status, message, {"alert_id": alert_id})

    log_audit_event(
        EventKind.ADMIN_SUPPORT_ACTION,
        actor_id=operator_id,
        metadata={"action": "resolve_alert", "alert_id": alert_id},
    )
    alert = _query().get_alert(alert_id)
    return jsonify({"resolved": True, "alert": alert_schema.dump(alert)})


@admin_bp.post("/housekeeping")
@_admin_route
@require_csrf
def run_housekeeping():
    """Run one retention purge pass immediately."""

    service: HousekeepingService = current_app.extensions["housekeeping"]
    report = service.run_once()
    if not report.ok:
        return error_response(503, "housekeeping failed")
    return jsonify(report.to_dict())
