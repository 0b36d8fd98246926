"""Record audit events and hand them to threshold evaluation.

Audit logging observes business actions; it never takes part in them. Every
public method here swallows its own failures: a rejected write is copied to
the fallback diagnostic log and the caller carries on.
"""

from __future__ import annotations

import json
import logging
import traceback
from typing import Any, Mapping, Optional

from prometheus_client import Counter

from src.audit.alerts import TransactionFactory
from src.audit.classifier import classify, validate_metadata
from src.audit.thresholds import ThresholdEvaluator
from src.models.audit import AuditEvent, EventKind, RiskLevel, kind_value
from src.models.repositories import AuditEventRepository
from src.services.transactions import transactional_session
from src.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("src.audit.fallback")

_KNOWN_KINDS = {kind.value for kind in EventKind}

_EVENTS_RECORDED = Counter(
    "audit_events_recorded_total",
    "Audit events persisted to the store.",
    labelnames=("event_kind", "risk_level"),
)
_FALLBACK_WRITES = Counter(
    "audit_fallback_total",
    "Audit events written to the fallback log after a failed store write.",
)


def configure_fallback_log(path: str | None) -> None:
    """Attach a file handler to the fallback logger (idempotent)."""

    if not path:
        return
    for handler in fallback_logger.handlers:
        if getattr(handler, "baseFilename", None) == path:
            return
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    fallback_logger.addHandler(handler)


class EventRecorder:
    """Entry point used by the rest of the application to audit actions."""

    def __init__(
        self,
        evaluator: ThresholdEvaluator | None = None,
        *,
        clock: Clock = utcnow,
        transaction: TransactionFactory = transactional_session,
    ) -> None:
        self._evaluator = evaluator
        self._clock = clock
        self._transaction = transaction

    def record(
        self,
        kind: EventKind | str,
        *,
        actor_id: Optional[str] = None,
        session_id: Optional[str] = None,
        source_address: Optional[str] = None,
        client_agent: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        description: Optional[str] = None,
        risk_level: RiskLevel | str | None = None,
    ) -> AuditEvent | None:
        """Persist one event, then run threshold evaluation on it.

        Returns the stored event, or ``None`` when the store rejected the
        write. Never raises.
        """

        try:
            tag = kind_value(kind)
            payload = dict(metadata or {})
            validate_metadata(tag, payload)
            classification = classify(tag, payload)
            fields = {
                "event_kind": tag,
                "actor_id": actor_id,
                "session_id": session_id,
                "source_address": source_address,
                "client_agent": client_agent,
                "risk_level": kind_value(
                    risk_level or classification.risk_level
                ),
                "description": description or classification.description,
                "metadata": payload,
                "created_at": self._clock(),
            }
        except Exception:
            logger.warning("audit.build_failed kind=%r", kind, exc_info=True)
            self._write_fallback(
                {
                    "event_kind": kind,
                    "actor_id": actor_id,
                    "source_address": source_address,
                    "metadata": metadata,
                }
            )
            return None

        stored = self._persist(fields)
        self._evaluate(stored if stored is not None else _transient(fields))
        return stored

    def _persist(self, fields: dict[str, Any]) -> AuditEvent | None:
        try:
            with self._transaction(
                name=f"audit.{fields['event_kind']}", independent=True
            ) as session:
                event = AuditEventRepository(session).record_event(**fields)
        except Exception:
            logger.warning(
                "audit.persist_failed kind=%s",
                fields["event_kind"],
                exc_info=True,
            )
            self._write_fallback(fields)
            return None

        label = event.event_kind if event.event_kind in _KNOWN_KINDS else "other"
        _EVENTS_RECORDED.labels(
            event_kind=label, risk_level=event.risk_level
        ).inc()
        logger.debug(
            "audit.recorded id=%s kind=%s risk=%s",
            event.id,
            event.event_kind,
            event.risk_level,
        )
        return event

    def _write_fallback(self, fields: dict[str, Any]) -> None:
        _FALLBACK_WRITES.inc()
        try:
            serialized = json.dumps(
                fields, default=str, ensure_ascii=False, sort_keys=True
            )
        except (TypeError, ValueError):
            serialized = repr(fields)
        fallback_logger.error("AUDIT LOG (FALLBACK): %s", serialized)

    def _evaluate(self, event: AuditEvent) -> None:
        if self._evaluator is None:
            return
        try:
            self._evaluator.evaluate(event)
        except Exception:
            logger.exception(
                "audit.evaluate_failed kind=%s", event.event_kind
            )

    # ------------------------------------------------------------------
    # Convenience helpers for the common callers
    # ------------------------------------------------------------------
    def log_auth(
        self,
        kind: EventKind | str,
        actor_id: Optional[str] = None,
        session_id: Optional[str] = None,
        source_address: Optional[str] = None,
        client_agent: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AuditEvent | None:
        return self.record(
            kind,
            actor_id=actor_id,
            session_id=session_id,
            source_address=source_address,
            client_agent=client_agent,
            metadata=metadata,
        )

    def log_credit(
        self,
        kind: EventKind | str,
        actor_id: str,
        amount: int,
        description: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AuditEvent | None:
        return self.record(
            kind,
            actor_id=actor_id,
            risk_level=RiskLevel.LOW,
            description=description or f"{kind_value(kind)}: {amount} kredytów",
            metadata={"amount": amount, **(metadata or {})},
        )

    def log_payment(
        self,
        kind: EventKind | str,
        actor_id: str,
        amount: float,
        payment_intent_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AuditEvent | None:
        return self.record(
            kind,
            actor_id=actor_id,
            description=f"{kind_value(kind)}: {amount} PLN",
            metadata={
                "amount": amount,
                "payment_intent_id": payment_intent_id,
                **(metadata or {}),
            },
        )

    def log_security(
        self,
        kind: EventKind | str,
        source_address: Optional[str] = None,
        client_agent: Optional[str] = None,
        actor_id: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AuditEvent | None:
        return self.record(
            kind,
            actor_id=actor_id,
            source_address=source_address,
            client_agent=client_agent,
            description=description,
            metadata=metadata,
        )

    def log_error(
        self,
        error: BaseException,
        context: Optional[str] = None,
        actor_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> AuditEvent | None:
        return self.record(
            EventKind.ERROR_OCCURRED,
            actor_id=actor_id,
            risk_level=RiskLevel.MEDIUM,
            description=f"Error in {context or 'unknown'}: {error}",
            metadata={
                "error_name": type(error).__name__,
                "error_message": str(error),
                "error_stack": "".join(traceback.format_exception(error)),
                "context": context,
                **(metadata or {}),
            },
        )


def _transient(fields: dict[str, Any]) -> AuditEvent:
    """Unsaved event carrying ``fields``, used to evaluate rejected writes."""

    data = dict(fields)
    data["event_metadata"] = data.pop("metadata")
    return AuditEvent(**data)


__all__ = ["EventRecorder", "configure_fallback_log", "fallback_logger"]
