from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from src.models.repositories import RepositoryError, SecurityAlertRepository
from src.services.transactions import TransactionManager, transactional_session

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def create_alert(session, dedup_key):
    return SecurityAlertRepository(session).create_alert(
        alert_type="multiple_failed_logins",
        severity="medium",
        title="Wielokrotne nieudane próby logowania",
        description="test",
        source_address="203.0.113.5",
        dedup_key=dedup_key,
        created_at=NOW,
    )


def test_nested_transaction_reuses_same_session():
    with transactional_session(name="outer") as outer_session:
        with transactional_session(name="nested") as nested_session:
            assert nested_session is outer_session


def test_nested_transaction_rollback_on_repository_error():
    with pytest.raises(RepositoryError) as excinfo:
        with transactional_session(name="outer") as session:
            create_alert(session, "dup-key")
            with transactional_session(name="nested") as nested:
                create_alert(nested, "dup-key")

    assert excinfo.value.is_conflict
    with transactional_session(name="check") as session:
        items, total = SecurityAlertRepository(session).search(
            limit=10, offset=0
        )
        assert total == 0


def test_independent_scope_gets_its_own_session():
    outer, inner = MagicMock(), MagicMock()
    manager = TransactionManager(
        session_factory=MagicMock(side_effect=[outer, inner])
    )

    with pytest.raises(RuntimeError):
        with manager.transaction(name="business") as business:
            with manager.transaction(
                name="audit", independent=True
            ) as audit:
                assert audit is inner
            raise RuntimeError("business failure")

    assert business is outer
    inner.commit.assert_called_once()
    inner.rollback.assert_not_called()
    outer.rollback.assert_called_once()
    outer.commit.assert_not_called()
    outer.close.assert_called_once()
    inner.close.assert_called_once()


def test_independent_failure_leaves_outer_scope_usable():
    outer, inner = MagicMock(), MagicMock()
    manager = TransactionManager(
        session_factory=MagicMock(side_effect=[outer, inner])
    )

    with manager.transaction(name="business") as business:
        with pytest.raises(ValueError):
            with manager.transaction(name="audit", independent=True):
                raise ValueError("audit store down")
        with manager.transaction(name="after") as after:
            assert after is business

    inner.rollback.assert_called_once()
    outer.commit.assert_called_once()
    outer.begin_nested.assert_called_once()
