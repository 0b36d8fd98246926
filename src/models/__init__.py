"""Model exports for convenience."""

from src.db.session import Base
from src.models.audit import (
    AlertType,
    AuditEvent,
    EventKind,
    RiskLevel,
    SecurityAlert,
)

__all__ = [
    "Base",
    "AlertType",
    "AuditEvent",
    "EventKind",
    "RiskLevel",
    "SecurityAlert",
]
