"""Billed generation: credit hold around the orchestrator."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from orchestrator.core.config import OrchestratorSettings, load_config
from orchestrator.core.exceptions import InsufficientCreditError
from orchestrator.logging import reset_generation_id, set_generation_id
from orchestrator.router.orchestrator import GenerationOrchestrator, GenerationRequest
from orchestrator.router.registry import RegistryLoader
from orchestrator.schemas.content import get_schema
from orchestrator.storage import ledger
from orchestrator.telemetry.events import record_event

logger = logging.getLogger("orchestrator.service")


@dataclass(frozen=True)
class GenerationOutcome:
    generation_id: str
    content: dict[str, Any]
    provider: str
    model: str
    attempts: int
    credits_charged: int
    repairs: tuple[str, ...] = ()


class GenerationService:
    """Reserve credit, generate, then commit on success or release otherwise."""

    def __init__(self, orchestrator: GenerationOrchestrator, settings: OrchestratorSettings) -> None:
        self._orchestrator = orchestrator
        self._settings = settings

    @property
    def settings(self) -> OrchestratorSettings:
        return self._settings

    @property
    def orchestrator(self) -> GenerationOrchestrator:
        return self._orchestrator

    async def generate(self, user_id: str, request: GenerationRequest) -> GenerationOutcome:
        get_schema(request.schema_id)
        cost = self._settings.credit_cost(request.schema_id)
        generation_id = uuid.uuid4().hex
        request = request.model_copy(update={"user_id": user_id})

        context_token = set_generation_id(generation_id)
        try:
            try:
                hold = ledger.credit_hold(user_id, cost)
            except InsufficientCreditError as exc:
                record_event(
                    "credit_insufficient",
                    "INFO",
                    generation_id=generation_id,
                    user_id=user_id,
                    message=str(exc),
                    meta={"requested": exc.requested, "remaining": exc.remaining},
                )
                raise

            with hold:
                result = await self._orchestrator.generate(request, generation_id=generation_id)
                hold.commit()

            logger.info(
                "Generation billed",
                extra={
                    "event": "generation_billed",
                    "user_id": user_id,
                    "credits": cost,
                    "provider": result.provider,
                    "model": result.model,
                },
            )
            return GenerationOutcome(
                generation_id=generation_id,
                content=result.content,
                provider=result.provider,
                model=result.model,
                attempts=result.attempts,
                credits_charged=cost,
                repairs=result.repairs,
            )
        finally:
            reset_generation_id(context_token)


@lru_cache(maxsize=1)
def get_service() -> GenerationService:
    """Build the process-wide service from the loaded configuration."""
    settings = load_config().settings
    registry = RegistryLoader(refresh_seconds=settings.registry_refresh_seconds)
    orchestrator = GenerationOrchestrator(
        registry, timeout_seconds=settings.provider_timeout_seconds
    )
    return GenerationService(orchestrator, settings)


__all__ = ["GenerationOutcome", "GenerationService", "get_service"]
