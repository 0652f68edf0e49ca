"""Inbound generation routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from orchestrator.core.exceptions import (
    AllCandidatesExhaustedError,
    InsufficientCreditError,
    NoCandidateAvailableError,
)
from orchestrator.router import service as service_module
from orchestrator.router.orchestrator import GenerationRequest
from orchestrator.schemas.content import SCHEMAS, UnknownSchemaError

router = APIRouter(prefix="/v1")


class GenerationPayload(BaseModel):
    user_id: str = Field(min_length=1)
    schema_id: str
    system_prompt: str = "You are a professional tabletop adventure designer."
    prompt: str = Field(min_length=1)
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)
    strict_json: bool = True
    capabilities: list[str] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-123",
                    "schema_id": "monster",
                    "prompt": "A swamp hag who trades in stolen names, CR 5.",
                    "temperature": 0.8,
                }
            ]
        }
    }


class GenerationResponse(BaseModel):
    generation_id: str
    schema_id: str
    content: dict[str, Any]
    provider: str
    model: str
    attempts: int
    credits_charged: int


def _error(status_code: int, message: str, error_type: str, code: str, **extra: Any) -> JSONResponse:
    body: dict[str, Any] = {"message": message, "type": error_type, "code": code}
    body.update(extra)
    return JSONResponse(status_code=status_code, content={"error": body})


@router.post("/generations", response_model=GenerationResponse)
async def create_generation(payload: GenerationPayload) -> Any:
    request = GenerationRequest(
        schema_id=payload.schema_id,
        system_prompt=payload.system_prompt,
        prompt=payload.prompt,
        temperature=payload.temperature,
        max_tokens=payload.max_tokens,
        strict_json=payload.strict_json,
        capabilities=frozenset(payload.capabilities),
    )
    try:
        outcome = await service_module.get_service().generate(payload.user_id, request)
    except UnknownSchemaError as exc:
        return _error(
            422,
            str(exc),
            "invalid_request_error",
            "unknown_schema",
            available=sorted(SCHEMAS),
        )
    except InsufficientCreditError as exc:
        return _error(
            402,
            "Not enough credits for this generation",
            "billing_error",
            "insufficient_credit",
            requested=exc.requested,
            remaining=exc.remaining,
        )
    except NoCandidateAvailableError:
        return _error(
            503,
            "Generation service is not configured for this request",
            "service_degraded",
            "no_candidate_available",
        )
    except AllCandidatesExhaustedError:
        return _error(
            503,
            "Generation temporarily unavailable",
            "service_unavailable",
            "generation_unavailable",
        )

    return GenerationResponse(
        generation_id=outcome.generation_id,
        schema_id=payload.schema_id,
        content=outcome.content,
        provider=outcome.provider,
        model=outcome.model,
        attempts=outcome.attempts,
        credits_charged=outcome.credits_charged,
    )
