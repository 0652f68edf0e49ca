"""Anthropic messages API adapter."""

from __future__ import annotations

from typing import Any

from orchestrator.core.exceptions import TransportFailure

from .base import CompletionRequest, CompletionResponse, ProviderAdapter
from .utils import as_token_count, post_json

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(ProviderAdapter):
    transport = "anthropic"
    messages_path = "/v1/messages"

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        api_key = self._api_key()
        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        data = await post_json(
            self.provider_name,
            f"{self._base_url}{self.messages_path}",
            self._build_payload(request),
            headers,
            self._timeout,
        )
        return self._normalize_response(data, request)

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        system_prompt = request.system_prompt
        if request.json_mode:
            # No response_format switch on this API.
            system_prompt = f"{system_prompt}\n\nRespond with a single JSON object and nothing else."
        return {
            "model": request.model,
            "system": system_prompt,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }

    def _normalize_response(
        self, data: dict[str, Any], request: CompletionRequest
    ) -> CompletionResponse:
        content = data.get("content")
        if not isinstance(content, list):
            raise TransportFailure(self.provider_name, message="Response contained no content")

        blocks = [
            block for block in content if isinstance(block, dict) and block.get("type") == "text"
        ]
        if any(not isinstance(block.get("text"), str) for block in blocks):
            raise TransportFailure(self.provider_name, message="Unexpected response format")
        text = "".join(block["text"] for block in blocks)
        if not text:
            raise TransportFailure(self.provider_name, message="Response contained no text")

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        return CompletionResponse(
            text=text,
            model=data.get("model") or request.model,
            prompt_tokens=as_token_count(usage.get("input_tokens")),
            completion_tokens=as_token_count(usage.get("output_tokens")),
        )
