from __future__ import annotations

import asyncio

import pytest

from orchestrator.core.config import AppConfig, ModelConfig, OrchestratorSettings, ProviderConfig
from orchestrator.core.exceptions import AllCandidatesExhaustedError, InsufficientCreditError
from orchestrator.providers.base import CompletionRequest, CompletionResponse, ProviderAdapter
from orchestrator.router import orchestrator as orchestrator_module
from orchestrator.router import service as service_module
from orchestrator.router.orchestrator import GenerationOrchestrator, GenerationRequest, GenerationResult
from orchestrator.router.registry import RegistryLoader
from orchestrator.router.service import GenerationService
from orchestrator.schemas.content import UnknownSchemaError
from orchestrator.storage import ledger, usage


class _RecordingOrchestrator:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[GenerationRequest] = []
        self._error = error

    async def generate(self, request: GenerationRequest, *, generation_id: str | None = None):
        self.calls.append(request)
        if self._error is not None:
            raise self._error
        return GenerationResult(
            generation_id=generation_id or "gen",
            content={"name": "Mira"},
            provider="demo",
            model="demo-model",
            attempts=1,
        )


class _BlockingOrchestrator:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def generate(self, request: GenerationRequest, *, generation_id: str | None = None):
        self.started.set()
        await asyncio.Event().wait()


class _HangingAdapter(ProviderAdapter):
    calls = 0

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        type(self).calls += 1
        await asyncio.sleep(5)
        raise AssertionError("unreachable")


def _request(schema_id: str = "npc") -> GenerationRequest:
    return GenerationRequest(schema_id=schema_id, system_prompt="sys", prompt="An innkeeper")


@pytest.fixture(autouse=True)
def quiet_events(monkeypatch):
    captured: list[tuple[str, str, dict]] = []

    def capture_event(kind: str, level: str, **fields) -> None:
        captured.append((kind, level, fields))

    monkeypatch.setattr(service_module, "record_event", capture_event)
    monkeypatch.setattr(orchestrator_module, "record_event", capture_event)
    return captured


@pytest.mark.asyncio
async def test_insufficient_credit_rejects_without_backend_calls(memory_db, quiet_events):
    ledger.open_account("user-1", 10)
    ledger.commit(ledger.reserve("user-1", 10).token)
    fake = _RecordingOrchestrator()
    service = GenerationService(fake, OrchestratorSettings(credit_costs={"adventure": 3}))

    with pytest.raises(InsufficientCreditError) as excinfo:
        await service.generate("user-1", _request("adventure"))

    assert excinfo.value.requested == 3
    assert excinfo.value.remaining == 0
    assert fake.calls == []
    assert usage.summarize_usage() == []
    assert quiet_events[0][0] == "credit_insufficient"


@pytest.mark.asyncio
async def test_success_commits_the_reservation(memory_db):
    ledger.open_account("user-1", 5)
    fake = _RecordingOrchestrator()
    service = GenerationService(fake, OrchestratorSettings())

    outcome = await service.generate("user-1", _request())

    balance = ledger.get_balance("user-1")
    assert outcome.credits_charged == 1
    assert outcome.provider == "demo"
    assert balance.consumed == 1
    assert balance.pending == 0
    assert fake.calls[0].user_id == "user-1"


@pytest.mark.asyncio
async def test_exhaustion_releases_reserved_credit(memory_db, monkeypatch):
    monkeypatch.setattr(_HangingAdapter, "calls", 0)
    monkeypatch.setattr(GenerationOrchestrator, "_adapter_map", {"openai": _HangingAdapter})
    providers = [
        ProviderConfig(
            name=name,
            transport="openai",
            base_url=f"https://{name}.example",
            credential_ref="UNUSED_KEY",
            priority=priority,
            capabilities=frozenset({"structured_output"}),
            models=(ModelConfig(model_id=f"{name}-model"),),
        )
        for name, priority in (("first", 1), ("second", 2))
    ]
    config = AppConfig(providers=providers)
    orchestrator = GenerationOrchestrator(
        RegistryLoader(source=lambda: config), timeout_seconds=0.05
    )
    ledger.open_account("user-1", 10)
    before = ledger.get_balance("user-1")
    service = GenerationService(orchestrator, OrchestratorSettings())

    with pytest.raises(AllCandidatesExhaustedError) as excinfo:
        await service.generate("user-1", _request())

    after = ledger.get_balance("user-1")
    assert len(excinfo.value.failures) == 2
    assert _HangingAdapter.calls == 2
    assert after.remaining == before.remaining
    assert after.pending == 0


@pytest.mark.asyncio
async def test_cancellation_after_reserve_restores_balance(memory_db):
    ledger.open_account("user-1", 10)
    before = ledger.get_balance("user-1")
    blocking = _BlockingOrchestrator()
    service = GenerationService(blocking, OrchestratorSettings())

    task = asyncio.create_task(service.generate("user-1", _request()))
    await blocking.started.wait()
    assert ledger.get_balance("user-1").consumed == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    after = ledger.get_balance("user-1")
    assert after.consumed == before.consumed
    assert after.pending == 0


@pytest.mark.asyncio
async def test_unknown_schema_is_rejected_before_reserving(memory_db):
    ledger.open_account("user-1", 10)
    fake = _RecordingOrchestrator()
    service = GenerationService(fake, OrchestratorSettings())

    with pytest.raises(UnknownSchemaError):
        await service.generate("user-1", _request("spaceship"))

    assert ledger.get_balance("user-1").consumed == 0
    assert fake.calls == []
