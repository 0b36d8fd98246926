"""Ingest endpoint used by upstream services to audit their actions."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from marshmallow import ValidationError

from src.auth.guards import rate_limited
from src.auth.jwt_handler import require_auth
from src.routes.helpers import error_response
from src.schemas.audit import AuditEventSchema, RecordEventSchema
from src.services.audit import log_audit_event

audit_bp = Blueprint("audit", __name__, url_prefix="/audit")

record_schema = RecordEventSchema()
event_schema = AuditEventSchema()


@audit_bp.post("/events")
@rate_limited("ingest_rate_limit_requests", "ingest_rate_limit_window_seconds")
@require_auth
def record_event():
    """Record one audit event on behalf of the caller.

    The response is 202 even when the store is unavailable: the event then
    lands in the fallback log and ``recorded`` is false.
    """

    payload = request.get_json(silent=True)
    if payload is None:
        return error_response(400, "missing request body")
    try:
        data = record_schema.load(payload)
    except ValidationError as exc:
        return error_response(422, "invalid payload", exc.messages)

    event = log_audit_event(
        data["event_kind"],
        actor_id=data.get("actor_id"),
        session_id=data.get("session_id"),
        metadata=data.get("metadata"),
        description=data.get("description"),
        source_address=data.get("source_address"),
        user_agent=data.get("client_agent"),
    )
    response = jsonify(
        {
            "recorded": event is not None,
            "event": event_schema.dump(event) if event is not None else None,
        }
    )
    response.status_code = 202
    return response
