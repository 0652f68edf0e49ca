from __future__ import annotations

from http import HTTPStatus

import pytest
from fastapi.testclient import TestClient

import orchestrator.main as app_main
from orchestrator.core.exceptions import (
    AllCandidatesExhaustedError,
    AttemptOutcome,
    CandidateFailureReason,
    InsufficientCreditError,
    NoCandidateAvailableError,
)
from orchestrator.main import app
from orchestrator.router import service as service_module
from orchestrator.router.service import GenerationOutcome
from orchestrator.schemas.content import get_schema


class _FakeService:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, object]] = []

    async def generate(self, user_id, request):
        self.calls.append((user_id, request))
        get_schema(request.schema_id)
        if self.error is not None:
            raise self.error
        return GenerationOutcome(
            generation_id="gen-123",
            content={"name": "Mira", "role": "Innkeeper", "description": "Keeps the inn."},
            provider="openai",
            model="gpt-4o-mini",
            attempts=2,
            credits_charged=1,
        )


@pytest.fixture
def fake_service(monkeypatch):
    service = _FakeService()
    monkeypatch.setattr(service_module, "get_service", lambda: service)
    return service


@pytest.fixture
def client(monkeypatch, fake_service):
    monkeypatch.setattr(app_main, "init_db", lambda: None)

    with TestClient(app) as test_client:
        yield test_client


def _body(**overrides) -> dict:
    body = {"user_id": "user-1", "schema_id": "npc", "prompt": "An innkeeper with secrets."}
    body.update(overrides)
    return body


def test_create_generation_returns_content(client, fake_service):
    response = client.post("/v1/generations", json=_body(capabilities=["long_context"]))

    assert response.status_code == HTTPStatus.OK
    body = response.json()
    assert body["generation_id"] == "gen-123"
    assert body["content"]["name"] == "Mira"
    assert body["credits_charged"] == 1
    assert body["attempts"] == 2
    user_id, request = fake_service.calls[0]
    assert user_id == "user-1"
    assert request.capabilities == frozenset({"long_context"})
    assert response.headers["x-request-id"]


def test_request_id_header_is_echoed(client):
    response = client.post("/v1/generations", json=_body(), headers={"x-request-id": "req-abc"})

    assert response.headers["x-request-id"] == "req-abc"


def test_insufficient_credit_is_payment_required(client, fake_service):
    fake_service.error = InsufficientCreditError("user-1", 3, 1)

    response = client.post("/v1/generations", json=_body(schema_id="adventure"))

    assert response.status_code == HTTPStatus.PAYMENT_REQUIRED
    error = response.json()["error"]
    assert error["code"] == "insufficient_credit"
    assert error["requested"] == 3
    assert error["remaining"] == 1


def test_no_candidate_is_service_degraded(client, fake_service):
    fake_service.error = NoCandidateAvailableError(frozenset({"structured_output"}))

    response = client.post("/v1/generations", json=_body())

    assert response.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    assert response.json()["error"]["code"] == "no_candidate_available"


def test_exhaustion_hides_per_candidate_reasons(client, fake_service):
    fake_service.error = AllCandidatesExhaustedError(
        [
            CandidateFailureReason(
                ordinal=1,
                provider="openai",
                model="gpt-4o-mini",
                outcome=AttemptOutcome.TRANSPORT_FAILURE,
                message="Provider quota exhausted: insufficient_quota",
            )
        ]
    )

    response = client.post("/v1/generations", json=_body())

    assert response.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    error = response.json()["error"]
    assert error["code"] == "generation_unavailable"
    assert error["message"] == "Generation temporarily unavailable"
    assert "insufficient_quota" not in response.text


def test_unknown_schema_is_unprocessable(client):
    response = client.post("/v1/generations", json=_body(schema_id="spaceship"))

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    error = response.json()["error"]
    assert error["code"] == "unknown_schema"
    assert "monster" in error["available"]


def test_payload_validation_errors(client):
    response = client.post("/v1/generations", json=_body(temperature=5))

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY


def test_unexpected_errors_return_json_500(monkeypatch):
    monkeypatch.setattr(app_main, "init_db", lambda: None)
    monkeypatch.setattr(app_main, "record_event", lambda *args, **kwargs: None)
    monkeypatch.setattr(service_module, "get_service", lambda: _FakeService(RuntimeError("boom")))

    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.post("/v1/generations", json=_body())

    assert response.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert response.json()["error"]["code"] == "internal_error"
