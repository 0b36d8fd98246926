"""Periodic retention purge for the audit store.

The service is constructed and started explicitly by the host application;
nothing runs at import time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from src.audit.alerts import TransactionFactory
from src.audit.recorder import EventRecorder
from src.models.audit import EventKind, RiskLevel
from src.models.repositories import (
    AuditEventRepository,
    RepositoryError,
    SecurityAlertRepository,
)
from src.services.rate_limit import RateLimiter
from src.services.transactions import transactional_session
from src.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HousekeepingReport:
    ok: bool
    events_purged: int = 0
    alerts_purged: int = 0
    rate_limit_windows_pruned: int = 0
    retention_days: int = 0

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


class HousekeepingService:
    """Purge expired audit data on an interval."""

    def __init__(
        self,
        recorder: EventRecorder,
        *,
        rate_limiter: RateLimiter | None = None,
        retention_days: int = 90,
        interval_seconds: int = 3600,
        clock: Clock = utcnow,
        transaction: TransactionFactory = transactional_session,
    ) -> None:
        self._recorder = recorder
        self._rate_limiter = rate_limiter
        self.retention_days = max(retention_days, 1)
        self.interval_seconds = max(interval_seconds, 1)
        self._clock = clock
        self._transaction = transaction
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> HousekeepingReport:
        cutoff = self._clock() - timedelta(days=self.retention_days)
        try:
            with self._transaction(name="housekeeping.purge") as session:
                events_purged = AuditEventRepository(session).purge_older_than(
                    cutoff
                )
                alerts_purged = SecurityAlertRepository(
                    session
                ).purge_resolved_before(cutoff)
        except (RepositoryError, SQLAlchemyError) as exc:
            logger.exception("housekeeping.failed")
            self._recorder.log_error(exc, context="housekeeping")
            return HousekeepingReport(
                ok=False, retention_days=self.retention_days
            )

        pruned = self._rate_limiter.prune() if self._rate_limiter else 0
        report = HousekeepingReport(
            ok=True,
            events_purged=events_purged,
            alerts_purged=alerts_purged,
            rate_limit_windows_pruned=pruned,
            retention_days=self.retention_days,
        )
        self._recorder.record(
            EventKind.SYSTEM_MAINTENANCE,
            risk_level=RiskLevel.LOW,
            description=(
                f"Usunięto {events_purged} zdarzeń audytu i "
                f"{alerts_purged} rozwiązanych alertów"
            ),
            metadata={
                "retention_days": self.retention_days,
                "deleted_events": events_purged,
                "deleted_alerts": alerts_purged,
            },
        )
        logger.info(
            "housekeeping.completed events=%s alerts=%s windows=%s",
            events_purged,
            alerts_purged,
            pruned,
        )
        return report

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="audit-housekeeping", daemon=True
        )
        self._thread.start()
        logger.info(
            "housekeeping.started interval_seconds=%s", self.interval_seconds
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("housekeeping.stopped")

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:  # pragma: no cover - keep the loop alive
                logger.exception("housekeeping.iteration_failed")


__all__ = ["HousekeepingReport", "HousekeepingService"]
