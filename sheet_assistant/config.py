from __future__ import annotations

from typing import Any, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderPreference = Literal["auto", "openai", "gemini", "ollama"]

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

# field name -> (default, min, max)
_INT_BOUNDS: dict[str, tuple[int, int, int]] = {
    "openai_timeout_ms": (12000, 1500, 120000),
    "gemini_timeout_ms": (15000, 1500, 120000),
    "ollama_timeout_ms": (90000, 1500, 180000),
    "ollama_num_predict": (180, 64, 1024),
    "ollama_num_ctx": (3072, 512, 32768),
    "ai_rag_top_k": (8, 2, 20),
    "ai_rag_doc_max_chars": (700, 180, 3000),
    "training_cache_size": (64, 4, 1024),
    "training_max_attempts": (42, 1, 200),
}

_BOOL_DEFAULTS: dict[str, bool] = {
    "ai_free_only": True,
    "ai_enable_local_fallback": True,
    "ai_community_learning_enabled": True,
}


def parse_env_bool(raw: Any, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return default
    value = str(raw).strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return default


def parse_env_int(raw: Any, default: int, minimum: int, maximum: int) -> int:
    if isinstance(raw, bool):
        return default
    try:
        number = float(str(raw).strip()) if not isinstance(raw, (int, float)) else float(raw)
    except (TypeError, ValueError):
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return int(min(maximum, max(minimum, round(number))))


def resolve_provider_preference(raw: Any) -> ProviderPreference:
    value = str(raw or "").strip().lower()
    if not value or value == "auto":
        return "auto"
    if value in {"openai", "gemini", "ollama"}:
        return value  # type: ignore[return-value]
    return "ollama"


class Settings(BaseSettings):
    app_name: str = "sheet_assistant"
    env: str = "dev"
    log_level: str = "INFO"
    database_url: str = "sqlite+pysqlite:///./sheet_assistant.db"

    ai_provider: ProviderPreference = "auto"
    ai_free_only: bool = True
    ai_enable_local_fallback: bool = True
    ai_community_learning_enabled: bool = True

    openai_api_key: str = ""
    openai_assistant_model: str = "gpt-5-mini"
    openai_timeout_ms: int = 12000

    gemini_api_key: str = ""
    gemini_assistant_model: str = "gemini-2.0-flash"
    gemini_timeout_ms: int = 15000

    ollama_base_url: str = "http://127.0.0.1:11434"
    ollama_model: str = "llama3.1:8b"
    ollama_timeout_ms: int = 90000
    ollama_num_predict: int = 180
    ollama_num_ctx: int = 3072

    ai_rag_top_k: int = 8
    ai_rag_doc_max_chars: int = 700

    training_cache_size: int = 64
    training_max_attempts: int = 42

    assistant_api_token: str = ""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("ai_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: Any) -> str:
        return resolve_provider_preference(value)

    @field_validator(*_BOOL_DEFAULTS.keys(), mode="before")
    @classmethod
    def _lenient_bool(cls, value: Any, info) -> bool:
        return parse_env_bool(value, _BOOL_DEFAULTS[info.field_name])

    @field_validator(*_INT_BOUNDS.keys(), mode="before")
    @classmethod
    def _clamped_int(cls, value: Any, info) -> int:
        default, minimum, maximum = _INT_BOUNDS[info.field_name]
        return parse_env_int(value, default, minimum, maximum)

    @property
    def effective_provider(self) -> ProviderPreference:
        if self.ai_free_only and self.ai_provider == "openai":
            return "auto"
        return self.ai_provider

    @property
    def effective_openai_api_key(self) -> str:
        if self.ai_free_only:
            return ""
        return str(self.openai_api_key or "").strip()


settings = Settings()
