"""Event recording helpers for generation telemetry."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from sqlalchemy import delete, select

from orchestrator.logging import get_request_id
from orchestrator.storage.database import session_scope
from orchestrator.storage.models import OrchestratorEvent

logger = logging.getLogger("orchestrator.events")

_EVENTS_ENABLED = os.getenv("EVENTS_ENABLED", "true").lower() in {"1", "true", "yes"}

_RETENTION_DAYS = 2  # today and yesterday


def _current_retention_cutoff() -> datetime:
    now_utc = datetime.now(timezone.utc)
    start_of_today = datetime(now_utc.year, now_utc.month, now_utc.day, tzinfo=timezone.utc)
    return start_of_today - timedelta(days=_RETENTION_DAYS - 1)


def _prune_old_events(session) -> None:
    session.execute(delete(OrchestratorEvent).where(OrchestratorEvent.ts < _current_retention_cutoff()))


def record_event(
    kind: str,
    level: str,
    *,
    message: str | None = None,
    meta: Dict[str, Any] | None = None,
    **fields: Any,
) -> None:
    """Persist a high-value event for operators. Never raises."""
    if not _EVENTS_ENABLED:
        return

    event = OrchestratorEvent(
        ts=datetime.now(timezone.utc),
        level=level.upper(),
        kind=kind,
        request_id=fields.get("request_id") or get_request_id(),
        generation_id=fields.get("generation_id"),
        user_id=fields.get("user_id"),
        provider_from=fields.get("provider_from"),
        provider_to=fields.get("provider_to"),
        model=fields.get("model"),
        message=message[:512] if message else None,
        meta=json.dumps(meta, ensure_ascii=True, default=str) if meta else None,
    )

    try:
        with session_scope() as session:
            session.add(event)
            _prune_old_events(session)
    except Exception:
        logger.exception(
            "Failed to record event", extra={"event": "event_persist_error", "kind": kind}
        )


def list_recent_events(limit: int = 50, kind: str | None = None) -> List[Dict[str, Any]]:
    """Return retained events, newest first."""
    if not _EVENTS_ENABLED:
        return []

    stmt = select(OrchestratorEvent).where(OrchestratorEvent.ts >= _current_retention_cutoff())
    if kind:
        stmt = stmt.where(OrchestratorEvent.kind == kind)
    stmt = stmt.order_by(OrchestratorEvent.ts.desc(), OrchestratorEvent.id.desc()).limit(limit)

    with session_scope() as session:
        _prune_old_events(session)
        rows = session.scalars(stmt).all()

    events: List[Dict[str, Any]] = []
    for row in rows:
        meta_value: Dict[str, Any] | str | None = None
        if row.meta:
            try:
                meta_value = json.loads(row.meta)
            except json.JSONDecodeError:
                meta_value = row.meta

        events.append(
            {
                "id": row.id,
                "timestamp": row.ts.isoformat() if row.ts else None,
                "level": row.level,
                "kind": row.kind,
                "request_id": row.request_id,
                "generation_id": row.generation_id,
                "user_id": row.user_id,
                "provider_from": row.provider_from,
                "provider_to": row.provider_to,
                "model": row.model,
                "message": row.message,
                "meta": meta_value,
            }
        )
    return events


__all__ = ["list_recent_events", "record_event"]
