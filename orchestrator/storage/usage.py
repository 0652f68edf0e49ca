"""Append-only usage records for every backend attempt."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, select

from orchestrator.core.exceptions import AttemptOutcome

from .database import session_scope
from .models import GenerationAttemptRecord

logger = logging.getLogger("orchestrator.usage")

MAX_ERROR_MESSAGE_LENGTH = 512


@dataclass(frozen=True)
class GenerationAttempt:
    generation_id: str
    user_id: str | None
    schema_id: str
    ordinal: int
    provider: str
    model: str
    outcome: AttemptOutcome
    latency_ms: float
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0.0
    error_message: str | None = None


def _truncate(message: str | None) -> str | None:
    if message is None or len(message) <= MAX_ERROR_MESSAGE_LENGTH:
        return message
    return f"{message[: MAX_ERROR_MESSAGE_LENGTH - 3]}..."


def record_attempt(attempt: GenerationAttempt) -> None:
    """Persist an attempt. Failures are logged and never propagated."""
    row = GenerationAttemptRecord(
        generation_id=attempt.generation_id,
        user_id=attempt.user_id,
        schema_id=attempt.schema_id,
        ordinal=attempt.ordinal,
        provider=attempt.provider,
        model=attempt.model,
        prompt_tokens=attempt.prompt_tokens,
        completion_tokens=attempt.completion_tokens,
        cost=attempt.cost,
        latency_ms=attempt.latency_ms,
        outcome=attempt.outcome.value,
        error_message=_truncate(attempt.error_message),
    )
    try:
        with session_scope() as session:
            session.add(row)
    except Exception:
        logger.exception(
            "Failed to persist generation attempt",
            extra={
                "event": "usage_persist_error",
                "provider": attempt.provider,
                "model": attempt.model,
                "ordinal": attempt.ordinal,
            },
        )


def list_attempts(generation_id: str) -> list[dict[str, Any]]:
    """Return the attempts of one generation in failover order."""
    with session_scope() as session:
        rows = session.scalars(
            select(GenerationAttemptRecord)
            .where(GenerationAttemptRecord.generation_id == generation_id)
            .order_by(GenerationAttemptRecord.ordinal)
        ).all()

    return [
        {
            "ordinal": row.ordinal,
            "provider": row.provider,
            "model": row.model,
            "outcome": row.outcome,
            "prompt_tokens": row.prompt_tokens,
            "completion_tokens": row.completion_tokens,
            "cost": row.cost,
            "latency_ms": row.latency_ms,
            "error_message": row.error_message,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in rows
    ]


def summarize_usage(since: datetime | None = None) -> list[dict[str, Any]]:
    """Aggregate attempts per provider/model for cost and failure-rate reporting."""
    failures = func.sum(
        case((GenerationAttemptRecord.outcome != AttemptOutcome.SUCCESS.value, 1), else_=0)
    )
    stmt = select(
        GenerationAttemptRecord.provider,
        GenerationAttemptRecord.model,
        func.count(GenerationAttemptRecord.id).label("attempts"),
        failures.label("failures"),
        func.sum(GenerationAttemptRecord.prompt_tokens).label("prompt_tokens"),
        func.sum(GenerationAttemptRecord.completion_tokens).label("completion_tokens"),
        func.sum(GenerationAttemptRecord.cost).label("cost"),
        func.avg(GenerationAttemptRecord.latency_ms).label("avg_latency_ms"),
    ).group_by(GenerationAttemptRecord.provider, GenerationAttemptRecord.model)
    if since is not None:
        stmt = stmt.where(GenerationAttemptRecord.created_at >= since)

    with session_scope() as session:
        rows = session.execute(stmt.order_by(GenerationAttemptRecord.provider)).all()

    return [
        {
            "provider": row.provider,
            "model": row.model,
            "attempts": int(row.attempts),
            "failures": int(row.failures or 0),
            "prompt_tokens": int(row.prompt_tokens or 0),
            "completion_tokens": int(row.completion_tokens or 0),
            "cost": float(row.cost or 0.0),
            "avg_latency_ms": float(row.avg_latency_ms or 0.0),
        }
        for row in rows
    ]


__all__ = ["GenerationAttempt", "list_attempts", "record_attempt", "summarize_usage"]
