from __future__ import annotations

from http import HTTPStatus
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import orchestrator.main as app_main
from orchestrator.core.config import AppConfig, ModelConfig, OrchestratorSettings, ProviderConfig
from orchestrator.core.exceptions import AttemptOutcome
from orchestrator.main import app
from orchestrator.router import service as service_module
from orchestrator.router.registry import RegistryLoader
from orchestrator.storage import ledger, usage
from orchestrator.storage.usage import GenerationAttempt
from orchestrator.telemetry import events


def _config() -> AppConfig:
    return AppConfig(
        providers=[
            ProviderConfig(
                name="gemini",
                transport="gemini",
                base_url="https://gemini.example",
                credential_ref="GEMINI_API_KEY",
                priority=20,
                capabilities=frozenset({"structured_output"}),
                models=(ModelConfig(model_id="flash", input_cost_per_million=0.1),),
            ),
            ProviderConfig(
                name="anthropic",
                transport="anthropic",
                base_url="https://anthropic.example",
                credential_ref="ANTHROPIC_API_KEY",
                priority=10,
                models=(ModelConfig(model_id="haiku"),),
            ),
        ]
    )


@pytest.fixture
def client(monkeypatch, memory_db):
    settings = OrchestratorSettings(default_allotment=25, reservation_ttl_seconds=60)
    registry = RegistryLoader(source=_config)
    fake_service = SimpleNamespace(settings=settings, orchestrator=SimpleNamespace(registry=registry))
    monkeypatch.setattr(service_module, "get_service", lambda: fake_service)
    monkeypatch.setattr(app_main, "init_db", lambda: None)

    with TestClient(app) as test_client:
        yield test_client


def test_list_candidates_in_failover_order(client):
    response = client.get("/admin/candidates")

    assert response.status_code == HTTPStatus.OK
    candidates = response.json()["candidates"]
    assert [c["provider"] for c in candidates] == ["anthropic", "gemini"]


def test_list_candidates_filtered_by_capability(client):
    response = client.get("/admin/candidates", params={"capability": "structured_output"})

    assert [c["model"] for c in response.json()["candidates"]] == ["flash"]


def test_open_account_with_default_allotment(client):
    response = client.post("/admin/credits/user-1", json={})

    assert response.status_code == HTTPStatus.OK
    assert response.json()["allotment"] == 25
    assert response.json()["remaining"] == 25


def test_grant_and_read_credits(client):
    client.post("/admin/credits/user-1", json={"allotment": 10})
    client.post("/admin/credits/user-1", json={"amount": 5})
    ledger.reserve("user-1", 4)

    response = client.get("/admin/credits/user-1")

    body = response.json()
    assert body["allotment"] == 15
    assert body["consumed"] == 4
    assert body["pending"] == 4
    assert body["remaining"] == 11


def test_allotment_updates_existing_account(client):
    client.post("/admin/credits/user-1", json={"allotment": 10})
    ledger.reserve("user-1", 4)

    response = client.post("/admin/credits/user-1", json={"allotment": 20})

    assert response.status_code == HTTPStatus.OK
    assert response.json()["allotment"] == 20
    assert response.json()["remaining"] == 16


def test_allotment_below_consumption_conflicts(client):
    client.post("/admin/credits/user-1", json={"allotment": 10})
    ledger.reserve("user-1", 6)

    response = client.post("/admin/credits/user-1", json={"allotment": 5})

    assert response.status_code == HTTPStatus.CONFLICT
    assert ledger.get_balance("user-1").allotment == 10


def test_unknown_account_is_not_found(client):
    response = client.get("/admin/credits/ghost")

    assert response.status_code == HTTPStatus.NOT_FOUND


def test_sweep_route_is_not_treated_as_user_id(client):
    ledger.open_account("user-1", 10)

    response = client.post("/admin/credits/sweep")

    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"released": 0}
    assert ledger.get_balance("sweep") is None


def test_rollover_route(client):
    response = client.post("/admin/credits/rollover", params={"period_days": 30})

    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"accounts": 0}


def test_usage_for_generation(client):
    usage.record_attempt(
        GenerationAttempt(
            generation_id="gen-9",
            user_id="user-1",
            schema_id="npc",
            ordinal=1,
            provider="anthropic",
            model="haiku",
            outcome=AttemptOutcome.MALFORMED_ENCODING,
            latency_ms=80.0,
        )
    )

    response = client.get("/admin/usage/gen-9")

    assert response.status_code == HTTPStatus.OK
    assert response.json()["attempts"][0]["outcome"] == "malformed_encoding"
    assert client.get("/admin/usage/missing").status_code == HTTPStatus.NOT_FOUND
    assert client.get("/admin/usage").json()["usage"][0]["failures"] == 1


def test_events_endpoint_filters_kind(client):
    events.record_event("provider_fail", "WARNING", message="boom")
    events.record_event("no_candidate", "ERROR", message="empty")

    response = client.get("/admin/events", params={"kind": "no_candidate"})

    assert [e["kind"] for e in response.json()["events"]] == ["no_candidate"]
