"""JWT helper utilities for encoding/decoding tokens and enforcing auth."""

from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, has_app_context, request

from src.config import Config, get_config
from src.models.audit import EventKind
from src.routes.helpers import error_response
from src.services.audit import log_audit_event

ADMIN_ROLE = "admin"


def _config() -> Config:
    """Return the active application configuration."""

    if has_app_context():
        app_config = current_app.config.get("APP_CONFIG")
        if isinstance(app_config, Config):
            return app_config
    return get_config()


def encode_jwt(subject: str, *, role: str = "service") -> str:
    """Encode a JWT for a principal.

    Args:
        subject: Identifier of the user or upstream service.
        role: ``"admin"`` for operators, anything else for plain callers.

    Returns:
        str: The encoded JWT.
    """
    config = _config()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(subject),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=config.jwt_ttl_minutes),
    }
    return jwt.encode(
        payload,
        config.jwt_secret,
        algorithm=config.jwt_algorithm,
    )


def decode_jwt(token: str):
    """Decode a JWT.

    Args:
        token (str): The JWT to decode.

    Returns:
        dict: The decoded JWT payload.
    """
    config = _config()
    return jwt.decode(
        token,
        config.jwt_secret,
        algorithms=[config.jwt_algorithm],
    )


def current_principal() -> dict:
    return getattr(g, "principal", None) or {}


def _authenticate():
    """Return ``(payload, None)`` or ``(None, error response)``."""

    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None, error_response(401, "missing token")
    token = auth.split(" ", 1)[1]
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError as exc:
        log_audit_event(
            EventKind.INVALID_TOKEN,
            metadata={"endpoint": request.path, "reason": str(exc)},
        )
        return None, error_response(401, str(exc))
    g.principal = payload
    return payload, None


def require_auth(fn):
    """Decorator to require JWT authentication for a route.

    Args:
        fn: The function to wrap.

    Returns:
        function: The wrapped function.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        _, error = _authenticate()
        if error:
            return error
        return fn(*args, **kwargs)

    return wrapper


def require_operator(fn):
    """Decorator restricting a route to principals with the admin role."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        payload, error = _authenticate()
        if error:
            return error
        if payload.get("role") != ADMIN_ROLE:
            return error_response(403, "admin access required")
        return fn(*args, **kwargs)

    return wrapper
