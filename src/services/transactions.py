"""Transactional unit of work helpers built on top of SQLAlchemy sessions."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

from sqlalchemy.exc import ResourceClosedError
from sqlalchemy.orm import Session

from src.db.session import get_session

logger = logging.getLogger(__name__)

_active_session: ContextVar[Session | None] = ContextVar(
    "transaction_session", default=None
)
_transaction_depth: ContextVar[int] = ContextVar(
    "transaction_depth", default=0
)


class TransactionManager:
    """Coordinate transactional scopes with support for nesting.

    A scope opened while another one is active becomes a SAVEPOINT on the
    parent session, unless ``independent=True`` is requested. Independent
    scopes always get their own session and commit on their own; audit writes
    use them so they never share fate with the transaction being audited.
    """

    def __init__(
        self, session_factory: Callable[[], Session] = get_session
    ) -> None:
        self._session_factory = session_factory

    @contextmanager
    def transaction(
        self,
        *,
        name: str = "transaction",
        independent: bool = False,
    ) -> Iterator[Session]:
        parent = _active_session.get()
        if parent is None or independent:
            with self._root(name) as session:
                yield session
        else:
            with self._nested(parent, name) as session:
                yield session

    @contextmanager
    def _root(self, name: str) -> Iterator[Session]:
        session = self._session_factory()
        token = _active_session.set(session)
        depth_token = _transaction_depth.set(1)
        start = time.perf_counter()
        logger.debug("transaction.start name=%s depth=1", name)
        try:
            yield session
            session.commit()
            logger.debug(
                "transaction.commit name=%s depth=1 duration_ms=%.2f",
                name,
                (time.perf_counter() - start) * 1000,
            )
        except Exception:
            logger.debug(
                "transaction.rollback name=%s depth=1 duration_ms=%.2f",
                name,
                (time.perf_counter() - start) * 1000,
            )
            session.rollback()
            raise
        finally:
            session.close()
            _active_session.reset(token)
            _transaction_depth.reset(depth_token)

    @contextmanager
    def _nested(self, parent: Session, name: str) -> Iterator[Session]:
        depth = _transaction_depth.get() + 1
        nested = parent.begin_nested()
        depth_token = _transaction_depth.set(depth)
        logger.debug(
            "transaction.start name=%s depth=%s nested=True", name, depth
        )
        try:
            yield parent
            nested.commit()
        except Exception:
            logger.debug(
                "transaction.rollback name=%s depth=%s nested=True",
                name,
                depth,
            )
            try:
                if nested.is_active:
                    nested.rollback()
            except ResourceClosedError:  # pragma: no cover
                pass
            raise
        finally:
            _transaction_depth.reset(depth_token)


transaction_manager = TransactionManager()


@contextmanager
def transactional_session(
    *, name: str = "transaction", independent: bool = False
) -> Iterator[Session]:
    """Shortcut to open a transactional scope with instrumentation."""

    with transaction_manager.transaction(
        name=name, independent=independent
    ) as session:
        yield session


__all__ = [
    "transaction_manager",
    "transactional_session",
    "TransactionManager",
]
