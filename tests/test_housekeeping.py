from contextlib import contextmanager
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from src.models.audit import AlertType, EventKind, RiskLevel
from src.services.housekeeping import HousekeepingService
from src.services.rate_limit import InMemoryRateLimitStore, RateLimiter


def test_run_once_purges_expired_rows(pipeline, clock):
    pipeline.recorder.record(EventKind.USER_LOGOUT, actor_id="old")
    stale = pipeline.issuer.issue(
        alert_type=AlertType.CSRF_VIOLATION,
        severity=RiskLevel.HIGH,
        title="old",
        description="old resolved alert",
        source_address="203.0.113.5",
    )
    still_open = pipeline.issuer.issue(
        alert_type=AlertType.CSRF_VIOLATION,
        severity=RiskLevel.HIGH,
        title="old",
        description="old open alert",
        source_address="203.0.113.5",
    )
    pipeline.issuer.resolve(stale.id, "operator-1")

    clock.advance(days=100)
    pipeline.recorder.record(EventKind.USER_LOGOUT, actor_id="recent")
    limiter = RateLimiter(InMemoryRateLimitStore(), clock=clock)
    limiter.hit("k", requests=5, window_seconds=1)
    clock.advance(seconds=5)

    service = HousekeepingService(
        pipeline.recorder,
        rate_limiter=limiter,
        retention_days=90,
        clock=clock,
    )
    report = service.run_once()

    assert report.ok
    assert report.events_purged == 1
    assert report.alerts_purged == 1
    assert report.rate_limit_windows_pruned == 1

    actors = {e.actor_id for e in pipeline.query.list_events({}).items}
    assert "old" not in actors
    assert "recent" in actors
    assert pipeline.query.get_alert(still_open.id) is not None
    assert pipeline.query.get_alert(stale.id) is None

    maintenance = pipeline.query.list_events(
        {"event_kind": "system_maintenance"}
    )
    assert maintenance.total == 1
    assert maintenance.items[0].event_metadata == {
        "retention_days": 90,
        "deleted_events": 1,
        "deleted_alerts": 1,
    }


def test_run_once_reports_failure(clock):
    @contextmanager
    def unavailable(**_):
        raise OperationalError("DELETE", {}, Exception("down"))
        yield  # pragma: no cover

    recorder = MagicMock()
    service = HousekeepingService(
        recorder, clock=clock, transaction=unavailable
    )

    report = service.run_once()

    assert not report.ok
    recorder.log_error.assert_called_once()
    assert recorder.log_error.call_args.kwargs["context"] == "housekeeping"
    recorder.record.assert_not_called()


def test_start_and_stop_background_thread(pipeline, clock):
    service = HousekeepingService(
        pipeline.recorder, interval_seconds=3600, clock=clock
    )

    service.start()
    try:
        assert service.running
    finally:
        service.stop()

    assert not service.running
