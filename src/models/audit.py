"""Database models for the audit trail and security alerts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.db.session import Base


class EventKind(str, Enum):
    """Categories of audited actions."""

    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    USER_REGISTER = "user_register"
    PASSWORD_CHANGE = "password_change"
    EMAIL_CHANGE = "email_change"
    ACCOUNT_DELETE = "account_delete"

    DESKTOP_AUTH = "desktop_auth"
    DESKTOP_SESSION_CREATE = "desktop_session_create"
    DESKTOP_SESSION_EXPIRE = "desktop_session_expire"
    API_KEY_GENERATE = "api_key_generate"

    CREDITS_PURCHASE = "credits_purchase"
    CREDITS_CONSUME = "credits_consume"
    CREDITS_GRANT = "credits_grant"
    CREDITS_REFUND = "credits_refund"

    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUND = "payment_refund"

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INVALID_TOKEN = "invalid_token"
    CSRF_VIOLATION = "csrf_violation"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"

    ERROR_OCCURRED = "error_occurred"
    SYSTEM_BACKUP = "system_backup"
    SYSTEM_MAINTENANCE = "system_maintenance"

    ADMIN_LOGIN = "admin_login"
    ADMIN_USER_VIEW = "admin_user_view"
    ADMIN_CREDIT_ADJUST = "admin_credit_adjust"
    ADMIN_SUPPORT_ACTION = "admin_support_action"


class RiskLevel(str, Enum):
    """Ordinal risk classification shared by events and alerts."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertType(str, Enum):
    MULTIPLE_FAILED_LOGINS = "multiple_failed_logins"
    RATE_LIMIT_VIOLATION = "rate_limit_violation"
    CSRF_VIOLATION = "csrf_violation"
    SUSPICIOUS_PAYMENT_ACTIVITY = "suspicious_payment_activity"


def kind_value(kind: "EventKind | str") -> str:
    """Return the plain string tag for ``kind``."""

    return kind.value if isinstance(kind, Enum) else str(kind)


class AuditEvent(Base):
    """Append-only record of something that happened in the portal."""

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_event_kind", "event_kind"),
        Index("ix_audit_events_created_at", "created_at"),
        Index("ix_audit_events_actor_id", "actor_id"),
        Index("ix_audit_events_source_address", "source_address"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    event_kind: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64))
    session_id: Mapped[str | None] = mapped_column(String(128))
    source_address: Mapped[str | None] = mapped_column(String(64))
    client_agent: Mapped[str | None] = mapped_column(String(255))
    risk_level: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    event_metadata: Mapped[dict[str, object] | None] = mapped_column(
        "metadata", JSON
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class SecurityAlert(Base):
    """Escalated condition awaiting an operator decision."""

    __tablename__ = "security_alerts"
    __table_args__ = (
        Index("ix_security_alerts_created_at", "created_at"),
        Index("ix_security_alerts_resolved", "resolved"),
        Index("ix_security_alerts_source_address", "source_address"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    alert_type: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64))
    source_address: Mapped[str | None] = mapped_column(String(64))
    alert_metadata: Mapped[dict[str, object] | None] = mapped_column(
        "metadata", JSON
    )
    dedup_key: Mapped[str | None] = mapped_column(String(255), unique=True)
    resolved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    resolved_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


__all__ = [
    "AlertType",
    "AuditEvent",
    "EventKind",
    "RiskLevel",
    "SecurityAlert",
    "kind_value",
]
