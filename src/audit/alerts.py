"""Creation and resolution of security alerts."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, ContextManager, Optional

from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.audit import AlertType, RiskLevel, SecurityAlert, kind_value
from src.models.repositories import RepositoryError, SecurityAlertRepository
from src.services.transactions import transactional_session
from src.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

_ALERTS_ISSUED = Counter(
    "security_alerts_issued_total",
    "Security alerts written to the store.",
    labelnames=("alert_type", "severity"),
)

TransactionFactory = Callable[..., ContextManager[Session]]


class ResolveOutcome(str, Enum):
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    ALREADY_RESOLVED = "already_resolved"
    FAILED = "failed"


class AlertIssuer:
    """Write alert rows and apply the single open → resolved transition."""

    def __init__(
        self,
        *,
        clock: Clock = utcnow,
        transaction: TransactionFactory = transactional_session,
    ) -> None:
        self._clock = clock
        self._transaction = transaction

    def issue(
        self,
        *,
        alert_type: AlertType | str,
        severity: RiskLevel | str,
        title: str,
        description: str,
        actor_id: Optional[str] = None,
        source_address: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        dedup_key: Optional[str] = None,
    ) -> SecurityAlert | None:
        """Persist a new open alert.

        Failures are logged and reported as ``None``; nothing is retried. When
        ``dedup_key`` collides with an existing alert the write is skipped.
        """

        alert_type = kind_value(alert_type)
        severity = kind_value(severity)
        try:
            with self._transaction(
                name="audit.alert.issue", independent=True
            ) as session:
                alert = SecurityAlertRepository(session).create_alert(
                    alert_type=alert_type,
                    severity=severity,
                    title=title,
                    description=description,
                    actor_id=actor_id,
                    source_address=source_address,
                    metadata=metadata,
                    dedup_key=dedup_key,
                    created_at=self._clock(),
                )
        except RepositoryError as exc:
            if dedup_key and exc.is_conflict:
                logger.info(
                    "audit.alert.suppressed type=%s dedup_key=%s",
                    alert_type,
                    dedup_key,
                )
                return None
            logger.exception("audit.alert.failed type=%s", alert_type)
            return None
        except SQLAlchemyError:
            logger.exception("audit.alert.failed type=%s", alert_type)
            return None

        _ALERTS_ISSUED.labels(alert_type=alert_type, severity=severity).inc()
        logger.warning(
            "SECURITY ALERT: %s - %s (type=%s severity=%s id=%s)",
            title,
            description,
            alert_type,
            severity,
            alert.id,
        )
        return alert

    def resolve(self, alert_id: int, resolved_by: str) -> ResolveOutcome:
        """Close an open alert on behalf of ``resolved_by``.

        Resolving twice never rewrites the first resolution.
        """

        try:
            with self._transaction(name="audit.alert.resolve") as session:
                repo = SecurityAlertRepository(session)
                if repo.resolve(
                    alert_id,
                    resolved_by=resolved_by,
                    resolved_at=self._clock(),
                ):
                    outcome = ResolveOutcome.RESOLVED
                elif repo.get(alert_id) is None:
                    outcome = ResolveOutcome.NOT_FOUND
                else:
                    outcome = ResolveOutcome.ALREADY_RESOLVED
        except (RepositoryError, SQLAlchemyError):
            logger.exception("audit.alert.resolve_failed id=%s", alert_id)
            return ResolveOutcome.FAILED

        logger.info(
            "audit.alert.resolve id=%s by=%s outcome=%s",
            alert_id,
            resolved_by,
            outcome.value,
        )
        return outcome


__all__ = ["AlertIssuer", "ResolveOutcome", "TransactionFactory"]
