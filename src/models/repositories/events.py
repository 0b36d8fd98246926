"""Persistence helpers for the append-only audit trail."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import Select, delete, func, select

from src.models.audit import AuditEvent

from .base import SQLAlchemyRepository, repository_method


class AuditEventRepository(SQLAlchemyRepository):
    """Create and read immutable ``AuditEvent`` rows."""

    @repository_method
    def record_event(
        self,
        *,
        event_kind: str,
        risk_level: str,
        description: str,
        created_at: datetime,
        actor_id: Optional[str] = None,
        session_id: Optional[str] = None,
        source_address: Optional[str] = None,
        client_agent: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AuditEvent:
        entry = AuditEvent(
            event_kind=event_kind,
            actor_id=actor_id,
            session_id=session_id,
            source_address=source_address,
            client_agent=client_agent,
            risk_level=risk_level,
            description=description,
            event_metadata=metadata or {},
            created_at=created_at,
        )
        self.session.add(entry)
        self._flush()
        return entry

    @repository_method
    def list_window(
        self,
        *,
        kinds: Iterable[str],
        since: datetime,
        source_address: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> Sequence[AuditEvent]:
        """Return events of ``kinds`` created at or after ``since``.

        The history is narrowed by ``source_address`` when given, otherwise
        by ``actor_id``.
        """

        stmt = select(AuditEvent).where(
            AuditEvent.event_kind.in_(list(kinds)),
            AuditEvent.created_at >= since,
        )
        if source_address:
            stmt = stmt.where(AuditEvent.source_address == source_address)
        elif actor_id:
            stmt = stmt.where(AuditEvent.actor_id == actor_id)
        stmt = stmt.order_by(AuditEvent.created_at.asc(), AuditEvent.id.asc())
        return self.session.execute(stmt).scalars().all()

    @repository_method
    def search(
        self,
        *,
        limit: int,
        offset: int,
        actor_id: Optional[str] = None,
        event_kind: Optional[str] = None,
        risk_level: Optional[str] = None,
        source_address: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> tuple[Sequence[AuditEvent], int]:
        stmt: Select = select(AuditEvent)
        if actor_id:
            stmt = stmt.where(AuditEvent.actor_id == actor_id)
        if event_kind:
            stmt = stmt.where(AuditEvent.event_kind == event_kind)
        if risk_level:
            stmt = stmt.where(AuditEvent.risk_level == risk_level)
        if source_address:
            stmt = stmt.where(AuditEvent.source_address == source_address)
        if date_from is not None:
            stmt = stmt.where(AuditEvent.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(AuditEvent.created_at <= date_to)

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        page_stmt = (
            stmt.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
            .limit(limit)
            .offset(offset)
        )
        items = self.session.execute(page_stmt).scalars().all()
        return items, int(total)

    @repository_method
    def count_by_risk(self, *, since: datetime) -> dict[str, int]:
        stmt = (
            select(AuditEvent.risk_level, func.count())
            .where(AuditEvent.created_at >= since)
            .group_by(AuditEvent.risk_level)
        )
        return {
            level: int(count)
            for level, count in self.session.execute(stmt).all()
        }

    @repository_method
    def purge_older_than(self, cutoff: datetime) -> int:
        """Retention purge; the only way events ever leave the table."""

        result = self.session.execute(
            delete(AuditEvent)
            .where(AuditEvent.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


__all__ = ["AuditEventRepository"]
