"""Shared route utilities."""

from __future__ import annotations

from typing import Any

from flask import jsonify

from src.audit.query import Page


def error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
):
    """Return a standardized JSON error response."""

    payload = {
        "error": {
            "code": status_code,
            "message": message,
            "details": details or {},
        }
    }
    return jsonify(payload), status_code


def page_payload(page: Page, items: list[Any]) -> dict[str, Any]:
    """Render a facade page with its pagination metadata."""

    return {
        "items": items,
        "page": page.page,
        "limit": page.limit,
        "offset": page.offset,
        "total": page.total,
        "totalPages": page.total_pages,
    }
