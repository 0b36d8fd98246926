"""Escalate audit events into security alerts.

Windowed rules (failed logins, failed payments) look at the trailing window
of stored history; immediate rules (rate limiting, CSRF) alert on every
occurrence. Windowed alerts carry a dedup key made of the alert type, the
severity, the correlation key and the window bucket, so only the first
crossing per bucket and severity is stored even when requests race.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Sequence

from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError

from src.audit.alerts import AlertIssuer, TransactionFactory
from src.audit.classifier import is_failed_login
from src.config import Config
from src.models.audit import (
    AlertType,
    AuditEvent,
    EventKind,
    RiskLevel,
    SecurityAlert,
)
from src.models.repositories import AuditEventRepository, RepositoryError
from src.services.transactions import transactional_session
from src.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

_THRESHOLD_FAILURES = Counter(
    "audit_threshold_failures_total",
    "Threshold evaluations aborted because history could not be read.",
    labelnames=("event_kind",),
)


@dataclass(frozen=True, slots=True)
class ThresholdPolicy:
    window: timedelta = timedelta(hours=1)
    failed_login_threshold: int = 5
    failed_login_high_threshold: int = 10
    payment_failure_threshold: int = 3
    payment_amount_threshold: float = 1000

    @classmethod
    def from_config(cls, config: Config) -> "ThresholdPolicy":
        return cls(
            window=timedelta(minutes=max(config.audit_window_minutes, 1)),
            failed_login_threshold=config.failed_login_threshold,
            failed_login_high_threshold=config.failed_login_high_threshold,
            payment_failure_threshold=config.payment_failure_threshold,
            payment_amount_threshold=config.payment_amount_threshold,
        )


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ThresholdEvaluator:
    """Decide whether a freshly recorded event should raise an alert."""

    def __init__(
        self,
        issuer: AlertIssuer,
        *,
        policy: ThresholdPolicy | None = None,
        clock: Clock = utcnow,
        transaction: TransactionFactory = transactional_session,
    ) -> None:
        self._issuer = issuer
        self.policy = policy or ThresholdPolicy()
        self._clock = clock
        self._transaction = transaction

    def evaluate(self, event: AuditEvent) -> SecurityAlert | None:
        if not event.source_address and not event.actor_id:
            logger.debug(
                "audit.threshold.skip kind=%s reason=uncorrelated",
                event.event_kind,
            )
            return None

        metadata = event.event_metadata or {}
        kind = event.event_kind
        try:
            if kind == EventKind.USER_LOGIN.value and is_failed_login(metadata):
                return self._check_failed_logins(event)
            if kind == EventKind.RATE_LIMIT_EXCEEDED.value:
                return self._rate_limit_alert(event)
            if kind == EventKind.CSRF_VIOLATION.value:
                return self._csrf_alert(event)
            if kind == EventKind.PAYMENT_FAILED.value:
                amount = _as_number(metadata.get("amount"))
                if (
                    amount is not None
                    and amount > self.policy.payment_amount_threshold
                ):
                    return self._check_payment_failures(event)
        except (RepositoryError, SQLAlchemyError):
            _THRESHOLD_FAILURES.labels(event_kind=kind).inc()
            logger.exception("audit.threshold.failed kind=%s", kind)
        return None

    # ------------------------------------------------------------------
    # Windowed rules
    # ------------------------------------------------------------------
    def _check_failed_logins(self, event: AuditEvent) -> SecurityAlert | None:
        now = self._clock()
        history = self._history(
            [EventKind.USER_LOGIN.value],
            since=now - self.policy.window,
            source_address=event.source_address,
            actor_id=event.actor_id,
        )
        failed = sum(1 for entry in history if is_failed_login(entry.event_metadata))
        if failed >= self.policy.failed_login_high_threshold:
            severity = RiskLevel.HIGH
        elif failed >= self.policy.failed_login_threshold:
            severity = RiskLevel.MEDIUM
        else:
            return None

        correlation = self._correlation_key(event)
        return self._issuer.issue(
            alert_type=AlertType.MULTIPLE_FAILED_LOGINS,
            severity=severity,
            title="Wielokrotne nieudane próby logowania",
            description=(
                f"Wykryto {failed} nieudanych prób logowania "
                f"{self._window_phrase()}"
            ),
            actor_id=event.actor_id,
            source_address=event.source_address,
            metadata={"failed_attempts": failed},
            dedup_key=self._dedup_key(
                AlertType.MULTIPLE_FAILED_LOGINS, severity, correlation, now
            ),
        )

    def _check_payment_failures(
        self, event: AuditEvent
    ) -> SecurityAlert | None:
        if not event.actor_id:
            return None
        now = self._clock()
        history = self._history(
            [EventKind.PAYMENT_FAILED.value, EventKind.PAYMENT_SUCCESS.value],
            since=now - self.policy.window,
            actor_id=event.actor_id,
        )
        failed = sum(
            1
            for entry in history
            if entry.event_kind == EventKind.PAYMENT_FAILED.value
        )
        if failed < self.policy.payment_failure_threshold:
            return None

        return self._issuer.issue(
            alert_type=AlertType.SUSPICIOUS_PAYMENT_ACTIVITY,
            severity=RiskLevel.HIGH,
            title="Podejrzana aktywność płatnicza",
            description=(
                f"Użytkownik {event.actor_id} miał {failed} nieudanych "
                f"płatności {self._window_phrase()}"
            ),
            actor_id=event.actor_id,
            source_address=event.source_address,
            metadata={"failed_payments": failed},
            dedup_key=self._dedup_key(
                AlertType.SUSPICIOUS_PAYMENT_ACTIVITY,
                RiskLevel.HIGH,
                f"actor:{event.actor_id}",
                now,
            ),
        )

    # ------------------------------------------------------------------
    # Immediate rules
    # ------------------------------------------------------------------
    def _rate_limit_alert(self, event: AuditEvent) -> SecurityAlert | None:
        return self._issuer.issue(
            alert_type=AlertType.RATE_LIMIT_VIOLATION,
            severity=RiskLevel.MEDIUM,
            title="Przekroczenie limitu żądań",
            description=(
                f"Adres IP {event.source_address} przekroczył limit żądań"
            ),
            actor_id=event.actor_id,
            source_address=event.source_address,
            metadata=dict(event.event_metadata or {}),
        )

    def _csrf_alert(self, event: AuditEvent) -> SecurityAlert | None:
        return self._issuer.issue(
            alert_type=AlertType.CSRF_VIOLATION,
            severity=RiskLevel.HIGH,
            title="Naruszenie ochrony CSRF",
            description=(
                "Wykryto potencjalny atak CSRF z adresu "
                f"{event.source_address}"
            ),
            actor_id=event.actor_id,
            source_address=event.source_address,
            metadata=dict(event.event_metadata or {}),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _history(
        self,
        kinds: Iterable[str],
        *,
        since: datetime,
        source_address: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Sequence[AuditEvent]:
        with self._transaction(
            name="audit.threshold.history", independent=True
        ) as session:
            return AuditEventRepository(session).list_window(
                kinds=kinds,
                since=since,
                source_address=source_address,
                actor_id=actor_id,
            )

    @staticmethod
    def _correlation_key(event: AuditEvent) -> str:
        if event.source_address:
            return f"ip:{event.source_address}"
        return f"actor:{event.actor_id}"

    def _dedup_key(
        self,
        alert_type: AlertType,
        severity: RiskLevel,
        correlation: str,
        now: datetime,
    ) -> str:
        bucket = int(now.timestamp() // self.policy.window.total_seconds())
        return f"{alert_type.value}:{severity.value}:{correlation}:{bucket}"

    def _window_phrase(self) -> str:
        minutes = int(self.policy.window.total_seconds() // 60)
        if minutes == 60:
            return "w ciągu ostatniej godziny"
        return f"w ciągu ostatnich {minutes} minut"


__all__ = ["ThresholdEvaluator", "ThresholdPolicy"]
