from contextlib import contextmanager
from datetime import timedelta
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from src.audit.thresholds import ThresholdEvaluator, ThresholdPolicy
from src.models.audit import AuditEvent, EventKind

ATTACKER = "203.0.113.5"


def fail_logins(recorder, clock, count, *, source=ATTACKER, actor=None):
    for _ in range(count):
        recorder.record(
            EventKind.USER_LOGIN,
            actor_id=actor,
            source_address=source,
            metadata={"success": False},
        )
        clock.advance(seconds=30)


def test_five_failed_logins_raise_one_medium_alert(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 5)

    alerts = pipeline.query.list_alerts({})
    assert alerts.total == 1
    alert = alerts.items[0]
    assert alert.alert_type == "multiple_failed_logins"
    assert alert.severity == "medium"
    assert alert.resolved is False
    assert alert.source_address == ATTACKER
    assert alert.alert_metadata == {"failed_attempts": 5}
    assert "5 nieudanych prób logowania" in alert.description

    events = pipeline.query.list_events({"source_address": ATTACKER})
    assert events.total == 5
    by_source = pipeline.query.list_alerts({"source_address": ATTACKER})
    assert by_source.total == 1


def test_four_failures_and_a_success_raise_nothing(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 4)
    pipeline.recorder.record(
        EventKind.USER_LOGIN,
        source_address=ATTACKER,
        metadata={"success": True},
    )

    assert pipeline.query.list_alerts({}).total == 0


def test_repeated_failures_in_window_do_not_duplicate(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 8)

    alerts = pipeline.query.list_alerts({})
    assert alerts.total == 1
    assert alerts.items[0].severity == "medium"


def test_ten_failures_escalate_to_high(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 12)

    alerts = pipeline.query.list_alerts({})
    severities = sorted(alert.severity for alert in alerts.items)
    assert severities == ["high", "medium"]
    high = next(a for a in alerts.items if a.severity == "high")
    assert high.alert_metadata == {"failed_attempts": 10}


def test_failures_outside_window_are_not_counted(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 4)
    clock.advance(hours=2)
    fail_logins(pipeline.recorder, clock, 1)

    assert pipeline.query.list_alerts({}).total == 0


def test_failures_from_other_addresses_are_separate(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 3, source="198.51.100.1")
    fail_logins(pipeline.recorder, clock, 3, source="198.51.100.2")

    assert pipeline.query.list_alerts({}).total == 0


def test_failures_without_address_correlate_by_actor(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 5, source=None, actor="user-7")

    alerts = pipeline.query.list_alerts({"actor_id": "user-7"})
    assert alerts.total == 1
    assert alerts.items[0].source_address is None


def test_uncorrelated_events_are_skipped(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 6, source=None, actor=None)
    pipeline.recorder.record(EventKind.CSRF_VIOLATION)

    assert pipeline.query.list_alerts({}).total == 0


def test_next_window_bucket_alerts_again(pipeline, clock):
    fail_logins(pipeline.recorder, clock, 5)
    clock.advance(hours=1)
    fail_logins(pipeline.recorder, clock, 5)

    alerts = pipeline.query.list_alerts({})
    assert alerts.total == 2
    assert {alert.severity for alert in alerts.items} == {"medium"}


def test_continued_failures_after_resolution_open_a_new_alert(
    pipeline, clock
):
    fail_logins(pipeline.recorder, clock, 5)
    first = pipeline.query.list_alerts({}).items[0]
    pipeline.issuer.resolve(first.id, "operator-1")

    fail_logins(pipeline.recorder, clock, 4)

    still_open = pipeline.query.list_alerts({"resolved": False})
    assert still_open.total == 1
    assert still_open.items[0].id != first.id
    assert still_open.items[0].severity == "medium"
    assert pipeline.query.get_alert(first.id).resolved_by == "operator-1"


def test_csrf_violation_always_alerts_high(pipeline):
    for _ in range(2):
        pipeline.recorder.record(
            EventKind.CSRF_VIOLATION,
            source_address=ATTACKER,
            metadata={"endpoint": "/admin/audit/housekeeping"},
        )

    alerts = pipeline.query.list_alerts({"alert_type": "csrf_violation"})
    assert alerts.total == 2
    assert {alert.severity for alert in alerts.items} == {"high"}
    assert alerts.items[0].alert_metadata == {
        "endpoint": "/admin/audit/housekeeping"
    }


def test_rate_limit_exceeded_alerts_medium(pipeline):
    pipeline.recorder.record(
        EventKind.RATE_LIMIT_EXCEEDED,
        source_address=ATTACKER,
        metadata={"endpoint": "/audit/events", "limit": 600},
    )

    alerts = pipeline.query.list_alerts({})
    assert alerts.total == 1
    assert alerts.items[0].alert_type == "rate_limit_violation"
    assert alerts.items[0].severity == "medium"


def test_large_payment_failures_raise_high_alert(pipeline, clock):
    for _ in range(3):
        pipeline.recorder.log_payment(
            EventKind.PAYMENT_FAILED, "user-3", 1500
        )
        clock.advance(minutes=5)

    alerts = pipeline.query.list_alerts({})
    assert alerts.total == 1
    alert = alerts.items[0]
    assert alert.alert_type == "suspicious_payment_activity"
    assert alert.severity == "high"
    assert alert.actor_id == "user-3"
    assert alert.alert_metadata == {"failed_payments": 3}


def test_small_payment_failures_are_ignored(pipeline, clock):
    for _ in range(5):
        pipeline.recorder.log_payment(EventKind.PAYMENT_FAILED, "user-3", 1000)
        clock.advance(minutes=1)

    assert pipeline.query.list_alerts({}).total == 0


def test_history_failure_is_contained(clock):
    @contextmanager
    def unavailable(**_):
        raise OperationalError("SELECT", {}, Exception("down"))
        yield  # pragma: no cover

    issuer = MagicMock()
    evaluator = ThresholdEvaluator(issuer, clock=clock, transaction=unavailable)
    event = AuditEvent(
        event_kind="user_login",
        source_address=ATTACKER,
        event_metadata={"success": False},
    )

    assert evaluator.evaluate(event) is None
    issuer.issue.assert_not_called()


def test_policy_from_config_reads_thresholds(pipeline):
    policy = pipeline.evaluator.policy
    assert policy == ThresholdPolicy()
    assert policy.window == timedelta(hours=1)
