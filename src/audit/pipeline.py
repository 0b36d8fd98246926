"""Wire the audit components together from configuration."""

from __future__ import annotations

from dataclasses import dataclass

from src.audit.alerts import AlertIssuer, TransactionFactory
from src.audit.query import QueryFacade
from src.audit.recorder import EventRecorder
from src.audit.thresholds import ThresholdEvaluator, ThresholdPolicy
from src.config import Config
from src.services.transactions import transactional_session
from src.utils.clock import Clock, utcnow


@dataclass(frozen=True, slots=True)
class AuditPipeline:
    recorder: EventRecorder
    evaluator: ThresholdEvaluator
    issuer: AlertIssuer
    query: QueryFacade


def build_pipeline(
    config: Config,
    *,
    clock: Clock = utcnow,
    transaction: TransactionFactory = transactional_session,
) -> AuditPipeline:
    """Create the recorder, evaluator, issuer and facade sharing one clock."""

    issuer = AlertIssuer(clock=clock, transaction=transaction)
    evaluator = ThresholdEvaluator(
        issuer,
        policy=ThresholdPolicy.from_config(config),
        clock=clock,
        transaction=transaction,
    )
    recorder = EventRecorder(evaluator, clock=clock, transaction=transaction)
    query = QueryFacade(
        max_limit=config.query_max_limit,
        clock=clock,
        transaction=transaction,
    )
    return AuditPipeline(
        recorder=recorder, evaluator=evaluator, issuer=issuer, query=query
    )


__all__ = ["AuditPipeline", "build_pipeline"]
