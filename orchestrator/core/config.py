"""Application configuration loading utilities."""

from __future__ import annotations

import os
import pathlib
from functools import lru_cache
from typing import Dict, List, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR.parent / "config" / "orchestrator.yaml"

TransportKind = Literal["openai", "openrouter", "anthropic", "gemini"]

STRUCTURED_OUTPUT = "structured_output"


class ModelConfig(BaseModel):
    model_id: str
    max_output_tokens: int = Field(default=4096, gt=0)
    context_window: int = Field(default=128_000, gt=0)
    temperature: float = 0.7
    active: bool = True
    input_cost_per_million: float = Field(default=0.0, ge=0)
    output_cost_per_million: float = Field(default=0.0, ge=0)
    capabilities: frozenset[str] = Field(default_factory=frozenset)

    model_config = {"frozen": True}

    @property
    def declared_cost(self) -> float:
        return self.input_cost_per_million + self.output_cost_per_million

    def cost_for(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Return the cost of a call given its token usage."""
        return (
            prompt_tokens * self.input_cost_per_million
            + completion_tokens * self.output_cost_per_million
        ) / 1_000_000


class ProviderConfig(BaseModel):
    name: str
    transport: TransportKind
    base_url: str
    credential_ref: str
    active: bool = True
    priority: int = Field(default=100)
    capabilities: frozenset[str] = Field(default_factory=frozenset)
    models: tuple[ModelConfig, ...] = ()

    model_config = {"frozen": True}

    @field_validator("credential_ref")
    @classmethod
    def _reference_not_secret(cls, value: str) -> str:
        if not value or not value.replace("_", "").isalnum():
            raise ValueError("credential_ref must name an environment variable")
        return value


class OrchestratorSettings(BaseModel):
    provider_timeout_seconds: float = Field(default=30.0, gt=0)
    registry_refresh_seconds: float = Field(default=60.0, ge=0)
    reservation_ttl_seconds: int = Field(default=900, gt=0)
    default_allotment: int = Field(default=10, ge=0)
    default_credit_cost: int = Field(default=1, gt=0)
    credit_costs: Dict[str, int] = Field(
        default_factory=lambda: {
            "adventure": 3,
            "monster": 1,
            "npc": 1,
            "magic_item": 1,
            "character": 1,
        }
    )

    def credit_cost(self, schema_id: str) -> int:
        return self.credit_costs.get(schema_id, self.default_credit_cost)


class AppConfig(BaseModel):
    settings: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    providers: List[ProviderConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_provider_names(self) -> "AppConfig":
        names = [provider.name for provider in self.providers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate provider names: {', '.join(duplicates)}")
        return self


def _config_path() -> pathlib.Path:
    configured = os.getenv("ORCHESTRATOR_CONFIG")
    return pathlib.Path(configured) if configured else DEFAULT_CONFIG_PATH


@lru_cache(maxsize=1)
def load_config(path: pathlib.Path | None = None) -> AppConfig:
    """Load provider and orchestrator configuration from YAML."""
    config_path = path or _config_path()
    raw = yaml.safe_load(config_path.read_text()) or {}
    return AppConfig(**raw)


def reload_config() -> AppConfig:
    """Drop the cached configuration and read it again from disk."""
    load_config.cache_clear()
    return load_config()
