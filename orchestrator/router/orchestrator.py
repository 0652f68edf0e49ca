"""Structured generation with linear, bounded failover across candidates."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from orchestrator.core.config import STRUCTURED_OUTPUT, ProviderConfig
from orchestrator.core.exceptions import (
    AllCandidatesExhaustedError,
    AttemptOutcome,
    CandidateFailure,
    CandidateFailureReason,
    NoCandidateAvailableError,
    TransportFailure,
)
from orchestrator.logging import reset_generation_id, set_generation_id
from orchestrator.providers.anthropic import AnthropicProvider
from orchestrator.providers.base import (
    CompletionRequest,
    CompletionResponse,
    ProviderAdapter,
)
from orchestrator.providers.gemini import GeminiProvider
from orchestrator.providers.openai import OpenAIProvider
from orchestrator.providers.openrouter import OpenRouterProvider
from orchestrator.router.registry import Candidate, RegistryLoader
from orchestrator.schemas.content import get_schema
from orchestrator.schemas.validator import StructuredContent, ValidatedContent, validate
from orchestrator.storage.usage import GenerationAttempt, record_attempt
from orchestrator.telemetry.events import record_event

logger = logging.getLogger("orchestrator.router")

CHARS_PER_TOKEN = 4


class GenerationRequest(BaseModel):
    schema_id: str
    system_prompt: str
    prompt: str
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)
    strict_json: bool = True
    capabilities: frozenset[str] = Field(default_factory=frozenset)
    user_id: str | None = None

    def required_capabilities(self) -> frozenset[str]:
        if self.strict_json:
            return self.capabilities | {STRUCTURED_OUTPUT}
        return self.capabilities


@dataclass(frozen=True)
class GenerationResult:
    generation_id: str
    content: dict[str, Any]
    provider: str
    model: str
    attempts: int
    repairs: tuple[str, ...] = ()


def estimate_tokens(text: str) -> int:
    """Rough token estimate used only to keep max_tokens inside the context window."""
    return len(text) // CHARS_PER_TOKEN + 1


class GenerationOrchestrator:
    """Try candidates in registry order; the first schema-valid output wins."""

    _adapter_map: dict[str, type[ProviderAdapter]] = {
        "openai": OpenAIProvider,
        "openrouter": OpenRouterProvider,
        "anthropic": AnthropicProvider,
        "gemini": GeminiProvider,
    }

    def __init__(
        self,
        registry: RegistryLoader,
        *,
        timeout_seconds: float = 30.0,
        recorder: Callable[[GenerationAttempt], None] = record_attempt,
    ) -> None:
        self._registry = registry
        self._timeout = timeout_seconds
        self._recorder = recorder

    @property
    def registry(self) -> RegistryLoader:
        return self._registry

    def get_adapter(self, provider: ProviderConfig) -> ProviderAdapter:
        adapter_cls = self._adapter_map.get(provider.transport)
        if adapter_cls is None:
            raise TransportFailure(
                provider.name, message=f"No adapter for transport '{provider.transport}'"
            )
        return adapter_cls(provider, timeout=self._timeout)

    def build_call(self, request: GenerationRequest, candidate: Candidate) -> CompletionRequest:
        model = candidate.model
        prompt_tokens = estimate_tokens(request.system_prompt) + estimate_tokens(request.prompt)
        budget = model.context_window - prompt_tokens
        if budget <= 0:
            raise TransportFailure(
                candidate.provider.name, message="Prompt exceeds model context window"
            )
        requested = request.max_tokens or model.max_output_tokens
        return CompletionRequest(
            model=model.model_id,
            system_prompt=request.system_prompt,
            prompt=request.prompt,
            temperature=request.temperature if request.temperature is not None else model.temperature,
            max_tokens=min(requested, model.max_output_tokens, budget),
            json_mode=request.strict_json and STRUCTURED_OUTPUT in candidate.capabilities,
        )

    async def generate(
        self, request: GenerationRequest, *, generation_id: str | None = None
    ) -> GenerationResult:
        """Serve ``request`` from the first candidate that returns schema-valid output.

        Raises NoCandidateAvailableError when nothing qualifies and
        AllCandidatesExhaustedError when every candidate failed. Per-candidate
        failures never escape this method.
        """
        schema = get_schema(request.schema_id)
        generation_id = generation_id or uuid.uuid4().hex
        context_token = set_generation_id(generation_id)
        try:
            return await self._generate(request, schema, generation_id)
        finally:
            reset_generation_id(context_token)

    async def _generate(
        self,
        request: GenerationRequest,
        schema: type[StructuredContent],
        generation_id: str,
    ) -> GenerationResult:
        needed = request.required_capabilities()
        candidates = self._registry.snapshot().candidates(needed)
        if not candidates:
            logger.error(
                "No candidate available",
                extra={"event": "no_candidate", "capabilities": sorted(needed)},
            )
            record_event(
                "no_candidate",
                "ERROR",
                generation_id=generation_id,
                user_id=request.user_id,
                message="No active provider/model satisfies the request",
                meta={"capabilities": sorted(needed), "schema": request.schema_id},
            )
            raise NoCandidateAvailableError(needed)

        failures: list[CandidateFailureReason] = []
        for ordinal, candidate in enumerate(candidates, start=1):
            if failures:
                previous = failures[-1]
                logger.info(
                    "Provider switched",
                    extra={
                        "event": "provider_switched",
                        "provider_from": previous.provider,
                        "provider_to": candidate.provider.name,
                        "model": candidate.model.model_id,
                        "reason": previous.message,
                        "attempt": ordinal,
                    },
                )
                record_event(
                    "provider_switched",
                    "INFO",
                    generation_id=generation_id,
                    user_id=request.user_id,
                    provider_from=previous.provider,
                    provider_to=candidate.provider.name,
                    model=candidate.model.model_id,
                    message=previous.message,
                    meta={"attempt": ordinal},
                )

            outcome = await self._try_candidate(request, schema, candidate, ordinal, generation_id)
            if isinstance(outcome, CandidateFailureReason):
                failures.append(outcome)
                continue
            return GenerationResult(
                generation_id=generation_id,
                content=outcome.as_dict(),
                provider=candidate.provider.name,
                model=candidate.model.model_id,
                attempts=ordinal,
                repairs=outcome.repairs,
            )

        logger.error(
            "All candidates exhausted",
            extra={
                "event": "generation_exhausted",
                "attempts": len(failures),
                "outcomes": [failure.outcome.value for failure in failures],
            },
        )
        record_event(
            "generation_exhausted",
            "ERROR",
            generation_id=generation_id,
            user_id=request.user_id,
            message=failures[-1].message,
            meta={
                "schema": request.schema_id,
                "failures": [
                    {"provider": f.provider, "model": f.model, "outcome": f.outcome.value}
                    for f in failures
                ],
            },
        )
        raise AllCandidatesExhaustedError(failures)

    async def _try_candidate(
        self,
        request: GenerationRequest,
        schema: type[StructuredContent],
        candidate: Candidate,
        ordinal: int,
        generation_id: str,
    ) -> ValidatedContent | CandidateFailureReason:
        provider_name = candidate.provider.name
        model_id = candidate.model.model_id
        response: CompletionResponse | None = None
        started = time.perf_counter()
        try:
            call = self.build_call(request, candidate)
            adapter = self.get_adapter(candidate.provider)
            try:
                response = await asyncio.wait_for(adapter.complete(call), timeout=self._timeout)
            except asyncio.TimeoutError as exc:
                raise TransportFailure(provider_name, message="Provider call timed out") from exc
            validated = validate(response.text, schema)
        except CandidateFailure as exc:
            return self._fail(
                request, candidate, ordinal, generation_id, started, response, exc.outcome, exc.message
            )
        except Exception as exc:
            logger.exception(
                "Provider call raised unexpectedly",
                extra={"event": "provider_error", "provider": provider_name, "model": model_id},
            )
            return self._fail(
                request,
                candidate,
                ordinal,
                generation_id,
                started,
                response,
                AttemptOutcome.TRANSPORT_FAILURE,
                f"Unexpected provider error: {type(exc).__name__}",
            )

        latency_ms = (time.perf_counter() - started) * 1000
        self._record(
            request, candidate, ordinal, generation_id, AttemptOutcome.SUCCESS, latency_ms, response
        )
        logger.info(
            "Generation succeeded",
            extra={
                "event": "generation_success",
                "provider_to": provider_name,
                "model": model_id,
                "attempt": ordinal,
                "repairs": list(validated.repairs),
            },
        )
        return validated

    def _fail(
        self,
        request: GenerationRequest,
        candidate: Candidate,
        ordinal: int,
        generation_id: str,
        started: float,
        response: CompletionResponse | None,
        outcome: AttemptOutcome,
        message: str,
    ) -> CandidateFailureReason:
        latency_ms = (time.perf_counter() - started) * 1000
        provider_name = candidate.provider.name
        model_id = candidate.model.model_id
        logger.warning(
            "Provider failed",
            extra={
                "event": "provider_fail",
                "provider_from": provider_name,
                "model": model_id,
                "outcome": outcome.value,
                "error_message": message,
                "attempt": ordinal,
            },
        )
        record_event(
            "provider_fail",
            "WARNING",
            generation_id=generation_id,
            user_id=request.user_id,
            provider_from=provider_name,
            model=model_id,
            message=message,
            meta={"attempt": ordinal, "outcome": outcome.value},
        )
        self._record(
            request, candidate, ordinal, generation_id, outcome, latency_ms, response, message
        )
        return CandidateFailureReason(
            ordinal=ordinal,
            provider=provider_name,
            model=model_id,
            outcome=outcome,
            message=message,
        )

    def _record(
        self,
        request: GenerationRequest,
        candidate: Candidate,
        ordinal: int,
        generation_id: str,
        outcome: AttemptOutcome,
        latency_ms: float,
        response: CompletionResponse | None,
        error_message: str | None = None,
    ) -> None:
        prompt_tokens = (response.prompt_tokens or 0) if response else 0
        completion_tokens = (response.completion_tokens or 0) if response else 0
        attempt = GenerationAttempt(
            generation_id=generation_id,
            user_id=request.user_id,
            schema_id=request.schema_id,
            ordinal=ordinal,
            provider=candidate.provider.name,
            model=candidate.model.model_id,
            outcome=outcome,
            latency_ms=latency_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost=candidate.model.cost_for(prompt_tokens, completion_tokens),
            error_message=error_message,
        )
        try:
            self._recorder(attempt)
        except Exception:
            logger.exception(
                "Usage recorder failed",
                extra={"event": "usage_persist_error", "provider": candidate.provider.name},
            )


__all__ = [
    "GenerationOrchestrator",
    "GenerationRequest",
    "GenerationResult",
    "estimate_tokens",
]
