"""Provider/model registry: immutable snapshots and candidate ordering."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from orchestrator.core.config import AppConfig, ModelConfig, ProviderConfig, reload_config
from orchestrator.core.credentials import has_credential

logger = logging.getLogger("orchestrator.registry")


@dataclass(frozen=True)
class Candidate:
    provider: ProviderConfig
    model: ModelConfig
    capabilities: frozenset[str]

    @property
    def key(self) -> str:
        return f"{self.provider.name}/{self.model.model_id}"

    def describe(self) -> dict:
        return {
            "provider": self.provider.name,
            "transport": self.provider.transport,
            "model": self.model.model_id,
            "priority": self.provider.priority,
            "declared_cost": self.model.declared_cost,
            "capabilities": sorted(self.capabilities),
            "credential_configured": has_credential(self.provider.credential_ref),
        }


class RegistrySnapshot:
    """A point-in-time view of the configured providers.

    Ordering: ascending provider priority, then ascending declared model cost,
    then registration order (provider position, model position).
    """

    def __init__(self, providers: Iterable[ProviderConfig]) -> None:
        self._providers: tuple[ProviderConfig, ...] = tuple(providers)

    @classmethod
    def from_config(cls, config: AppConfig) -> "RegistrySnapshot":
        return cls(config.providers)

    @property
    def providers(self) -> tuple[ProviderConfig, ...]:
        return self._providers

    def candidates(self, capabilities: Iterable[str] = ()) -> tuple[Candidate, ...]:
        """Return active candidates whose capabilities cover ``capabilities``."""
        needed = frozenset(capabilities)
        ranked: list[tuple[tuple[int, float, int, int], Candidate]] = []
        for provider_index, provider in enumerate(self._providers):
            if not provider.active:
                continue
            for model_index, model in enumerate(provider.models):
                if not model.active:
                    continue
                effective = provider.capabilities | model.capabilities
                if not needed <= effective:
                    continue
                sort_key = (provider.priority, model.declared_cost, provider_index, model_index)
                ranked.append((sort_key, Candidate(provider, model, effective)))
        ranked.sort(key=lambda item: item[0])
        return tuple(candidate for _, candidate in ranked)


class RegistryLoader:
    """Serves registry snapshots, rebuilding them at most every ``refresh_seconds``."""

    def __init__(
        self,
        source: Callable[[], AppConfig] = reload_config,
        refresh_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._refresh_seconds = refresh_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: RegistrySnapshot | None = None
        self._loaded_at = 0.0

    def snapshot(self) -> RegistrySnapshot:
        with self._lock:
            now = self._clock()
            stale = now - self._loaded_at >= self._refresh_seconds
            if self._snapshot is not None and not stale:
                return self._snapshot
            try:
                config = self._source()
            except Exception:
                if self._snapshot is None:
                    raise
                logger.exception(
                    "Registry refresh failed, serving previous snapshot",
                    extra={"event": "registry_refresh_error"},
                )
            else:
                self._snapshot = RegistrySnapshot.from_config(config)
                logger.info(
                    "Registry snapshot loaded",
                    extra={"event": "registry_loaded", "providers": len(config.providers)},
                )
            self._loaded_at = now
            return self._snapshot


__all__ = ["Candidate", "RegistryLoader", "RegistrySnapshot"]
