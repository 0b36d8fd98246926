"""Request guards: rate limiting and CSRF checks.

Both guards report rejected requests to the audit trail so that repeated
abuse escalates into security alerts.
"""

from __future__ import annotations

from functools import wraps
from typing import Callable

from flask import current_app, request

from src.auth.jwt_handler import current_principal
from src.models.audit import EventKind
from src.routes.helpers import error_response
from src.services.audit import client_address, log_audit_event
from src.services.csrf import CSRFProtection
from src.services.rate_limit import RateLimiter

CSRF_HEADER = "X-CSRF-Token"
_STATE_CHANGING = {"POST", "PUT", "PATCH", "DELETE"}


def rate_limited(
    requests_setting: str, window_setting: str
) -> Callable:
    """Limit a route using the named ``Config`` attributes."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            limiter: RateLimiter | None = current_app.extensions.get(
                "rate_limiter"
            )
            if limiter is None:
                return fn(*args, **kwargs)
            config = current_app.config["APP_CONFIG"]
            requests = getattr(config, requests_setting)
            window = getattr(config, window_setting)
            key = f"{client_address() or 'unknown'}:{request.path}"
            result = limiter.hit(key, requests=requests, window_seconds=window)
            if result.allowed:
                return fn(*args, **kwargs)

            log_audit_event(
                EventKind.RATE_LIMIT_EXCEEDED,
                actor_id=current_principal().get("sub"),
                metadata={
                    "endpoint": request.path,
                    "limit": requests,
                    "window_seconds": window,
                },
            )
            response, status = error_response(
                429, "Zbyt wiele żądań. Spróbuj ponownie później."
            )
            response.headers["Retry-After"] = str(result.retry_after or window)
            return response, status

        return wrapper

    return decorator


def require_csrf(fn):
    """Require a valid CSRF token on state-changing operator requests."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        if request.method not in _STATE_CHANGING:
            return fn(*args, **kwargs)
        protection: CSRFProtection = current_app.extensions["csrf"]
        subject = current_principal().get("sub")
        token = request.headers.get(CSRF_HEADER)
        if protection.validate_token(token, subject):
            return fn(*args, **kwargs)

        log_audit_event(
            EventKind.CSRF_VIOLATION,
            actor_id=subject,
            metadata={
                "endpoint": request.path,
                "method": request.method,
                "token_present": bool(token),
            },
        )
        return error_response(403, "Nieprawidłowy token CSRF")

    return wrapper


__all__ = ["CSRF_HEADER", "rate_limited", "require_csrf"]
