"""Operator endpoints: candidates, credit accounts, usage and events."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from orchestrator.router import service as service_module
from orchestrator.router.registry import RegistryLoader
from orchestrator.storage import ledger, usage
from orchestrator.telemetry.events import list_recent_events, record_event

router = APIRouter(prefix="/admin")

DEFAULT_PERIOD_DAYS = 30


class CreditGrant(BaseModel):
    amount: int | None = Field(default=None, gt=0)
    allotment: int | None = Field(default=None, ge=0)


def _registry() -> RegistryLoader:
    return service_module.get_service().orchestrator.registry


def _balance_payload(balance: ledger.CreditBalance) -> dict:
    return {
        "user_id": balance.user_id,
        "allotment": balance.allotment,
        "consumed": balance.consumed,
        "remaining": balance.remaining,
        "pending": balance.pending,
        "period_start": balance.period_start.isoformat(),
    }


@router.get("/candidates")
def list_candidates(capability: Annotated[list[str] | None, Query()] = None) -> dict:
    """Return candidates in the order the orchestrator would try them."""
    candidates = _registry().snapshot().candidates(capability or ())
    return {"candidates": [candidate.describe() for candidate in candidates]}


@router.post("/credits/sweep")
def sweep_reservations() -> dict:
    ttl = timedelta(seconds=service_module.get_service().settings.reservation_ttl_seconds)
    return {"released": ledger.sweep_stale_reservations(ttl)}


@router.post("/credits/rollover")
def rollover(period_days: Annotated[int, Query(gt=0)] = DEFAULT_PERIOD_DAYS) -> dict:
    return {"accounts": ledger.rollover_periods(timedelta(days=period_days))}


@router.get("/credits/{user_id}")
def get_credits(user_id: str) -> dict:
    balance = ledger.get_balance(user_id)
    if balance is None:
        raise HTTPException(status_code=404, detail="Credit account not found")
    return _balance_payload(balance)


@router.post("/credits/{user_id}")
def grant_credits(user_id: str, grant: CreditGrant) -> dict:
    """Open an account, set its ``allotment`` or add purchased credits (``amount``)."""
    if grant.amount is None and grant.allotment is None:
        settings = service_module.get_service().settings
        balance = ledger.open_account(user_id, settings.default_allotment)
    elif grant.amount is not None:
        balance = ledger.grant_credits(user_id, grant.amount)
    else:
        try:
            balance = ledger.set_allotment(user_id, grant.allotment or 0)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

    record_event(
        "credits_updated",
        "INFO",
        user_id=user_id,
        message="Credit account updated via admin",
        meta={"amount": grant.amount, "allotment": grant.allotment},
    )
    return _balance_payload(balance)


@router.get("/usage")
def usage_summary(since: datetime | None = None) -> dict:
    return {"usage": usage.summarize_usage(since)}


@router.get("/usage/{generation_id}")
def generation_attempts(generation_id: str) -> dict:
    attempts = usage.list_attempts(generation_id)
    if not attempts:
        raise HTTPException(status_code=404, detail="Generation not found")
    return {"generation_id": generation_id, "attempts": attempts}


@router.get("/events")
def list_events(limit: int = 25, kind: str | None = None) -> dict:
    limit_value = max(1, min(limit, 100))
    return {"events": list_recent_events(limit=limit_value, kind=kind)}
