"""OpenRouter provider adapter."""

from __future__ import annotations

import os

from .openai import OpenAIProvider


class OpenRouterProvider(OpenAIProvider):
    transport = "openrouter"

    def _headers(self, api_key: str) -> dict[str, str]:
        headers = super()._headers(api_key)
        headers["HTTP-Referer"] = os.getenv("OPENROUTER_REFERER", "https://localhost")
        headers["X-Title"] = os.getenv("OPENROUTER_TITLE", "Structured Generation Orchestrator")
        return headers
