"""Settings loader for the AIos chat core."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, SecretStr

from aios.core.infra.retry import RetryPolicy

_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "AIOS_LLM_API_KEY": ("llm", "api_key"),
    "AIOS_LLM_BASE_URL": ("llm", "base_url"),
    "AIOS_LLM_MODEL": ("llm", "model"),
    "AIOS_LLM_TIMEOUT_S": ("llm", "timeout_s"),
    "AIOS_RETRY_MAX_ATTEMPTS": ("retry", "max_attempts"),
    "AIOS_RETRY_INITIAL_DELAY_MS": ("retry", "initial_delay_ms"),
    "AIOS_RETRY_MULTIPLIER": ("retry", "multiplier"),
    "AIOS_APP_ID": ("store", "app_id"),
    "AIOS_STATE_DIR": ("store", "state_dir"),
    "AIOS_STORE_BACKEND": ("store", "backend"),
}


class LLMSettings(BaseModel):
    api_key: SecretStr = SecretStr("")
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-2.5-flash-preview-09-2025"
    timeout_s: float = Field(45.0, gt=0)


class RetrySettings(BaseModel):
    max_attempts: int = Field(3, ge=1)
    initial_delay_ms: int = Field(1000, ge=0)
    multiplier: int = Field(2, ge=1)

    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay_ms=self.initial_delay_ms,
            multiplier=self.multiplier,
        )


class StoreSettings(BaseModel):
    app_id: str = "local-canvas-chat"
    state_dir: Path = Field(default_factory=lambda: Path.home() / ".aios")
    backend: Literal["jsonl", "memory"] = "jsonl"


class AiosSettings(BaseModel):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    store: StoreSettings = Field(default_factory=StoreSettings)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(path: Optional[str] = None) -> AiosSettings:
    """Load settings from an optional YAML file, then apply ``AIOS_*`` env overrides."""
    configured = path or os.getenv("AIOS_CONFIG")
    data = _read_yaml(Path(configured).expanduser()) if configured else {}

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        block = data.setdefault(section, {})
        if not isinstance(block, dict):
            raise ValueError(f"Settings section '{section}' must be a mapping")
        block[key] = raw

    settings = AiosSettings.model_validate(data)
    settings.store.state_dir = settings.store.state_dir.expanduser()
    return settings
