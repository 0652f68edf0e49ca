from __future__ import annotations

import json as _json
from http import HTTPStatus

import pytest

CLIENT_PATH = "orchestrator.providers.utils.httpx.AsyncClient"


class FakeResponse:
    def __init__(self, status_code: int, payload: dict | list | None = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self._text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    @property
    def is_error(self) -> bool:
        return self.status_code >= HTTPStatus.BAD_REQUEST

    @property
    def text(self) -> str:
        if self._text is not None:
            return self._text
        if self._payload is None:
            return ""
        return _json.dumps(self._payload)


def _stub_async_client(response, recorder, error: Exception | None = None):
    class _DummyAsyncClient:
        def __init__(self, *args, **kwargs) -> None:
            recorder["timeout"] = kwargs.get("timeout")

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def post(self, url, json=None, headers=None):
            recorder["url"] = url
            recorder["json"] = json
            recorder["headers"] = headers
            if error is not None:
                raise error
            return response

    return _DummyAsyncClient


@pytest.fixture
def http_stub(monkeypatch):
    """Replace the adapters' HTTP client; returns a dict capturing the outgoing call."""

    def install(
        status: int = HTTPStatus.OK,
        payload: dict | list | None = None,
        *,
        text: str | None = None,
        error: Exception | None = None,
    ) -> dict:
        recorder: dict = {}
        response = FakeResponse(status, payload, text)
        monkeypatch.setattr(CLIENT_PATH, _stub_async_client(response, recorder, error))
        return recorder

    return install
