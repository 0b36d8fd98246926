"""Persistence helpers for security alerts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import Select, delete, func, select, update

from src.models.audit import SecurityAlert

from .base import SQLAlchemyRepository, repository_method


class SecurityAlertRepository(SQLAlchemyRepository):
    """Create, resolve and list ``SecurityAlert`` rows."""

    @repository_method
    def create_alert(
        self,
        *,
        alert_type: str,
        severity: str,
        title: str,
        description: str,
        created_at: datetime,
        actor_id: Optional[str] = None,
        source_address: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        dedup_key: Optional[str] = None,
    ) -> SecurityAlert:
        alert = SecurityAlert(
            alert_type=alert_type,
            severity=severity,
            title=title,
            description=description,
            actor_id=actor_id,
            source_address=source_address,
            alert_metadata=metadata or {},
            dedup_key=dedup_key,
            resolved=False,
            created_at=created_at,
        )
        self.session.add(alert)
        self._flush()
        return alert

    @repository_method
    def get(self, alert_id: int) -> SecurityAlert | None:
        return self.session.get(SecurityAlert, alert_id)

    @repository_method
    def resolve(
        self,
        alert_id: int,
        *,
        resolved_by: str,
        resolved_at: datetime,
    ) -> bool:
        """Mark an open alert as resolved.

        Returns ``False`` when no open alert with ``alert_id`` exists; an
        already resolved alert keeps its original resolution. The dedup key is
        released so a condition that persists can raise a fresh alert.
        """

        result = self.session.execute(
            update(SecurityAlert)
            .where(
                SecurityAlert.id == alert_id,
                SecurityAlert.resolved.is_(False),
            )
            .values(
                resolved=True,
                resolved_at=resolved_at,
                resolved_by=resolved_by,
                dedup_key=None,
            )
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    @repository_method
    def search(
        self,
        *,
        limit: int,
        offset: int,
        actor_id: Optional[str] = None,
        alert_type: Optional[str] = None,
        severity: Optional[str] = None,
        resolved: Optional[bool] = None,
        source_address: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> tuple[Sequence[SecurityAlert], int]:
        stmt: Select = select(SecurityAlert)
        if actor_id:
            stmt = stmt.where(SecurityAlert.actor_id == actor_id)
        if alert_type:
            stmt = stmt.where(SecurityAlert.alert_type == alert_type)
        if severity:
            stmt = stmt.where(SecurityAlert.severity == severity)
        if resolved is not None:
            stmt = stmt.where(SecurityAlert.resolved.is_(resolved))
        if source_address:
            stmt = stmt.where(SecurityAlert.source_address == source_address)
        if date_from is not None:
            stmt = stmt.where(SecurityAlert.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(SecurityAlert.created_at <= date_to)

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        page_stmt = (
            stmt.order_by(
                SecurityAlert.created_at.desc(), SecurityAlert.id.desc()
            )
            .limit(limit)
            .offset(offset)
        )
        items = self.session.execute(page_stmt).scalars().all()
        return items, int(total)

    @repository_method
    def purge_resolved_before(self, cutoff: datetime) -> int:
        result = self.session.execute(
            delete(SecurityAlert)
            .where(
                SecurityAlert.resolved.is_(True),
                SecurityAlert.created_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


__all__ = ["SecurityAlertRepository"]
