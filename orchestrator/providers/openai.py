"""OpenAI-compatible chat completions adapter."""

from __future__ import annotations

from typing import Any

from orchestrator.core.exceptions import TransportFailure

from .base import CompletionRequest, CompletionResponse, ProviderAdapter
from .utils import as_token_count, post_json


class OpenAIProvider(ProviderAdapter):
    transport = "openai"
    chat_completions_path = "/chat/completions"

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        api_key = self._api_key()
        payload = self._build_payload(request)
        data = await post_json(
            self.provider_name,
            f"{self._base_url}{self.chat_completions_path}",
            payload,
            self._headers(api_key),
            self._timeout,
        )
        return self._normalize_response(data, request)

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.prompt},
            ],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _normalize_response(
        self, data: dict[str, Any], request: CompletionRequest
    ) -> CompletionResponse:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise TransportFailure(self.provider_name, message="Response contained no choices")

        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise TransportFailure(self.provider_name, message="Response contained no text")

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        return CompletionResponse(
            text=content,
            model=data.get("model") or request.model,
            prompt_tokens=as_token_count(usage.get("prompt_tokens")),
            completion_tokens=as_token_count(usage.get("completion_tokens")),
        )
