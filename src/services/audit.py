"""Request-aware helpers for recording audit trail entries."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import current_app, has_app_context, has_request_context, request

from src.audit.recorder import EventRecorder
from src.models.audit import AuditEvent, EventKind


def client_address() -> Optional[str]:
    """Return the originating client address of the active request.

    ``X-Forwarded-For`` is honoured only through ``ProxyFix``, which the app
    factory installs when ``TRUSTED_PROXY_COUNT`` is set.
    """

    if not has_request_context():
        return None
    return request.remote_addr or None


def client_agent() -> Optional[str]:
    if not has_request_context():
        return None
    return request.headers.get("User-Agent") or None


def get_recorder() -> EventRecorder | None:
    if not has_app_context():
        return None
    return current_app.extensions.get("audit_recorder")


def log_audit_event(
    kind: EventKind | str,
    *,
    actor_id: Optional[str] = None,
    session_id: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
    description: Optional[str] = None,
    source_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    recorder: EventRecorder | None = None,
) -> AuditEvent | None:
    """Record a security-relevant event, filling origin from the request."""

    recorder = recorder or get_recorder()
    if recorder is None:
        return None
    return recorder.record(
        kind,
        actor_id=actor_id,
        session_id=session_id,
        source_address=source_address or client_address(),
        client_agent=user_agent or client_agent(),
        metadata=metadata,
        description=description,
    )


__all__ = [
    "client_address",
    "client_agent",
    "get_recorder",
    "log_audit_event",
]
