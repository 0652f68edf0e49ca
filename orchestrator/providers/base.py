"""Provider adapter interfaces."""

from __future__ import annotations

from pydantic import BaseModel

from orchestrator.core.config import ProviderConfig
from orchestrator.core.credentials import resolve_credential
from orchestrator.core.exceptions import CredentialsMissingError


class CompletionRequest(BaseModel):
    model: str
    system_prompt: str
    prompt: str
    temperature: float
    max_tokens: int
    json_mode: bool = False


class CompletionResponse(BaseModel):
    text: str
    model: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class ProviderAdapter:
    """Abstract provider adapter.

    Adapters translate a provider-neutral CompletionRequest into the backend's
    wire format and raise TransportFailure for anything other than a usable
    2xx response.
    """

    transport: str

    def __init__(self, config: ProviderConfig, timeout: float = 30.0) -> None:
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._timeout = timeout

    @property
    def provider_name(self) -> str:
        return self._config.name

    def _api_key(self) -> str:
        api_key = resolve_credential(self._config.credential_ref)
        if not api_key:
            raise CredentialsMissingError(self._config.name)
        return api_key

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        raise NotImplementedError
