"""Repositories for audit persistence logic."""

from __future__ import annotations

from .alerts import SecurityAlertRepository
from .base import RepositoryError, SQLAlchemyRepository
from .events import AuditEventRepository

__all__ = [
    "AuditEventRepository",
    "RepositoryError",
    "SQLAlchemyRepository",
    "SecurityAlertRepository",
]
