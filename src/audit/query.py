"""Read-only, filterable and paginated access to events and alerts."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Generic, Mapping, Sequence, TypeVar

from marshmallow import Schema, ValidationError

from src.audit.alerts import TransactionFactory
from src.models.audit import AuditEvent, SecurityAlert
from src.models.repositories import (
    AuditEventRepository,
    SecurityAlertRepository,
)
from src.schemas.audit import AlertQuerySchema, EventQuerySchema
from src.services.transactions import transactional_session
from src.utils.clock import Clock, as_utc, utcnow

T = TypeVar("T")

DEFAULT_LIMIT = 50


class QueryValidationError(ValueError):
    """Raised when listing filters fail validation."""

    def __init__(self, messages: Mapping[str, Any]) -> None:
        super().__init__("invalid query filters")
        self.messages = dict(messages)


@dataclass
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


@dataclass(slots=True)
class Overview:
    unresolved_alerts: int
    recent_alerts: Sequence[SecurityAlert]
    events_by_risk: dict[str, int] = field(default_factory=dict)


class QueryFacade:
    """Operator-facing queries. Never writes."""

    def __init__(
        self,
        *,
        max_limit: int = 200,
        default_limit: int = DEFAULT_LIMIT,
        clock: Clock = utcnow,
        transaction: TransactionFactory = transactional_session,
    ) -> None:
        self.max_limit = max(max_limit, 1)
        self.default_limit = min(max(default_limit, 1), self.max_limit)
        self._clock = clock
        self._transaction = transaction
        self._event_filters = EventQuerySchema()
        self._alert_filters = AlertQuerySchema()

    def list_events(
        self, filters: Mapping[str, Any] | None = None
    ) -> Page[AuditEvent]:
        criteria = self._load(self._event_filters, filters)
        with self._transaction(name="audit.events.list") as session:
            items, total = AuditEventRepository(session).search(**criteria)
        return Page(items, total, criteria["limit"], criteria["offset"])

    def list_alerts(
        self, filters: Mapping[str, Any] | None = None
    ) -> Page[SecurityAlert]:
        criteria = self._load(self._alert_filters, filters)
        with self._transaction(name="audit.alerts.list") as session:
            items, total = SecurityAlertRepository(session).search(**criteria)
        return Page(items, total, criteria["limit"], criteria["offset"])

    def get_alert(self, alert_id: int) -> SecurityAlert | None:
        with self._transaction(name="audit.alerts.get") as session:
            return SecurityAlertRepository(session).get(alert_id)

    def overview(self, *, recent: int = 10) -> Overview:
        since = self._clock() - timedelta(hours=24)
        with self._transaction(name="audit.overview") as session:
            alerts = SecurityAlertRepository(session)
            recent_alerts, unresolved = alerts.search(
                limit=min(max(recent, 1), self.max_limit),
                offset=0,
                resolved=False,
            )
            by_risk = AuditEventRepository(session).count_by_risk(since=since)
        return Overview(
            unresolved_alerts=unresolved,
            recent_alerts=recent_alerts,
            events_by_risk=by_risk,
        )

    def _load(
        self, schema: Schema, filters: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        try:
            criteria = schema.load(filters or {})
        except ValidationError as exc:
            raise QueryValidationError(exc.messages) from exc
        criteria["limit"] = min(
            criteria.get("limit", self.default_limit), self.max_limit
        )
        criteria.setdefault("offset", 0)
        for key in ("date_from", "date_to"):
            if criteria.get(key) is not None:
                criteria[key] = as_utc(criteria[key])
        return criteria


__all__ = ["Overview", "Page", "QueryFacade", "QueryValidationError"]
