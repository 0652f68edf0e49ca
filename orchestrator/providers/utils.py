"""Helper utilities for provider adapters."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

import httpx

from orchestrator.core.exceptions import TransportFailure

MAX_ERROR_DETAIL_LENGTH = 300

_QUOTA_STATUSES = {
    HTTPStatus.PAYMENT_REQUIRED,
    HTTPStatus.FORBIDDEN,
    HTTPStatus.TOO_MANY_REQUESTS,
}


def extract_error_detail(response: httpx.Response) -> str | None:
    """Return a compact, trimmed provider error detail, if available."""

    detail: str | None = None
    try:
        data = response.json()
    except ValueError:
        text_summary = (response.text or "").strip()
        if text_summary:
            detail = text_summary
    else:
        if isinstance(data, dict):
            error_obj = data.get("error")
            if isinstance(error_obj, dict):
                parts = [
                    part.strip()
                    for part in (error_obj.get("status") or error_obj.get("type"), error_obj.get("message"))
                    if isinstance(part, str) and part.strip()
                ]
                detail = " - ".join(parts) if parts else str(error_obj)
            elif isinstance(error_obj, str):
                detail = error_obj
            elif isinstance(data.get("message"), str):
                detail = data["message"]
            elif data:
                detail = str(data)
        elif data:
            detail = str(data)

    if not detail:
        return None
    compact = " ".join(detail.split())
    if len(compact) > MAX_ERROR_DETAIL_LENGTH:
        compact = f"{compact[: MAX_ERROR_DETAIL_LENGTH - 3]}..."
    return compact


def _with_detail(message: str, response: httpx.Response) -> str:
    detail = extract_error_detail(response)
    return f"{message}: {detail}" if detail else message


async def post_json(
    provider: str,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
) -> dict[str, Any]:
    """POST a JSON payload and return the decoded object, mapping failures to TransportFailure."""

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
    except httpx.TimeoutException as exc:
        raise TransportFailure(provider, message="Provider request timed out") from exc
    except httpx.RequestError as exc:
        raise TransportFailure(provider, message="Provider request failed") from exc

    if response.status_code == HTTPStatus.UNAUTHORIZED:
        raise TransportFailure(provider, message="Provider rejected credentials")
    if response.status_code in _QUOTA_STATUSES:
        raise TransportFailure(provider, message=_with_detail("Provider quota exhausted", response))
    if response.is_error:
        raise TransportFailure(
            provider, message=_with_detail(f"Provider error HTTP {response.status_code}", response)
        )

    try:
        data = response.json()
    except (ValueError, RecursionError) as exc:
        raise TransportFailure(provider, message="Provider returned non-JSON body") from exc
    if not isinstance(data, dict):
        raise TransportFailure(provider, message="Unexpected response format")
    return data


def as_token_count(value: Any) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) and value >= 0 else None


__all__ = ["as_token_count", "extract_error_detail", "post_json"]
