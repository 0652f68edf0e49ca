"""Gemini provider adapter."""

from __future__ import annotations

from typing import Any

from orchestrator.core.exceptions import TransportFailure

from .base import CompletionRequest, CompletionResponse, ProviderAdapter
from .utils import as_token_count, post_json


class GeminiProvider(ProviderAdapter):
    transport = "gemini"
    generate_path = "/v1beta/models/{model}:generateContent"

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        api_key = self._api_key()
        model_slug = request.model.removeprefix("models/")
        headers = {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }
        data = await post_json(
            self.provider_name,
            f"{self._base_url}{self.generate_path.format(model=model_slug)}",
            self._build_payload(request),
            headers,
            self._timeout,
        )
        return self._normalize_response(data, request)

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        generation_config: dict[str, Any] = {
            "temperature": request.temperature,
            "maxOutputTokens": request.max_tokens,
        }
        if request.json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": generation_config,
        }
        if request.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        return payload

    def _normalize_response(
        self, data: dict[str, Any], request: CompletionRequest
    ) -> CompletionResponse:
        candidate = self._select_candidate(data.get("candidates"))
        if candidate is None:
            feedback = data.get("promptFeedback")
            reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            message = f"Prompt blocked: {reason}" if reason else "Response contained no candidates"
            raise TransportFailure(self.provider_name, message=message)

        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if content is not None and not isinstance(content, dict):
            raise TransportFailure(self.provider_name, message="Unexpected response format")
        if parts is not None and not isinstance(parts, list):
            raise TransportFailure(self.provider_name, message="Unexpected response format")
        text = "".join(
            part["text"]
            for part in parts or []
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        if not text:
            finish_reason = candidate.get("finishReason") or "unknown"
            raise TransportFailure(
                self.provider_name, message=f"Response contained no text (finish: {finish_reason})"
            )

        usage = data.get("usageMetadata") if isinstance(data.get("usageMetadata"), dict) else {}
        return CompletionResponse(
            text=text,
            model=request.model,
            prompt_tokens=as_token_count(usage.get("promptTokenCount")),
            completion_tokens=as_token_count(usage.get("candidatesTokenCount")),
        )

    def _select_candidate(self, candidates: Any) -> dict[str, Any] | None:
        if not isinstance(candidates, list):
            return None
        for candidate in candidates:
            if isinstance(candidate, dict):
                return candidate
        return None
