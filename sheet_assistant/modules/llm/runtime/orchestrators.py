from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from sheet_assistant.config import ProviderPreference, Settings, settings
from sheet_assistant.modules.llm.base import LLMProvider
from sheet_assistant.modules.llm.providers import GeminiProvider, OllamaProvider, OpenAIProvider
from sheet_assistant.modules.llm.runtime.errors import (
    PROVIDER_ERROR_MISSING_KEY,
    PROVIDER_ERROR_NETWORK,
    PROVIDER_ERROR_TIMEOUT,
    LLMUnavailableError,
    PlanParseError,
    ProviderError,
)
from sheet_assistant.modules.llm.runtime.parsers import (
    ModelPlan,
    assistant_plan_json_schema,
    format_chain_error,
    parse_assistant_plan,
    provider_error_kind,
    sanitize_raw_snippet,
)
from sheet_assistant.modules.llm.runtime.prompts import build_system_prompt, build_user_payload
from sheet_assistant.modules.telemetry.service import record_provider_failure

logger = logging.getLogger(__name__)

LOCAL_PROVIDER = "ollama"
_HOSTED_KEY_MESSAGES = {
    "openai": "Falta OPENAI_API_KEY en el servidor.",
    "gemini": "Falta GEMINI_API_KEY en el servidor.",
}


@dataclass(slots=True)
class PlanResult:
    plan: ModelPlan
    provider: str
    latency_ms: int


def resolve_provider_order(
    preference: ProviderPreference,
    *,
    enable_local_fallback: bool,
    has_openai_key: bool,
    has_gemini_key: bool,
) -> list[str]:
    """Providers to try, in order, without duplicates.

    An explicit hosted preference is tried alone, followed by the local
    provider when local fallback is enabled. ``auto`` tries every hosted
    provider with a key, then always the local one.
    """
    order: list[str] = []
    if preference in ("gemini", "openai"):
        order.append(preference)
        if enable_local_fallback:
            order.append(LOCAL_PROVIDER)
    elif preference == LOCAL_PROVIDER:
        order.append(LOCAL_PROVIDER)
    else:
        if has_gemini_key:
            order.append("gemini")
        if has_openai_key:
            order.append("openai")
        order.append(LOCAL_PROVIDER)
    return list(dict.fromkeys(order))


def build_providers(config: Settings) -> dict[str, LLMProvider]:
    return {
        "openai": OpenAIProvider(
            config.effective_openai_api_key,
            config.openai_assistant_model,
            timeout_ms=config.openai_timeout_ms,
            response_schema=assistant_plan_json_schema(),
        ),
        "gemini": GeminiProvider(
            config.gemini_api_key,
            config.gemini_assistant_model,
            timeout_ms=config.gemini_timeout_ms,
        ),
        "ollama": OllamaProvider(
            config.ollama_base_url,
            config.ollama_model,
            timeout_ms=config.ollama_timeout_ms,
            num_predict=config.ollama_num_predict,
            num_ctx=config.ollama_num_ctx,
        ),
    }


class PlanOrchestrator:
    def __init__(
        self,
        providers: dict[str, LLMProvider],
        *,
        preference: ProviderPreference = "auto",
        enable_local_fallback: bool = True,
    ):
        self.providers = dict(providers)
        self.preference = preference
        self.enable_local_fallback = bool(enable_local_fallback)

    @classmethod
    def from_settings(cls, config: Settings) -> "PlanOrchestrator":
        return cls(
            build_providers(config),
            preference=config.effective_provider,
            enable_local_fallback=config.ai_enable_local_fallback,
        )

    def _has_key(self, name: str) -> bool:
        provider = self.providers.get(name)
        return provider is not None and provider.is_configured()

    def provider_order(self) -> list[str]:
        order = resolve_provider_order(
            self.preference,
            enable_local_fallback=self.enable_local_fallback,
            has_openai_key=self._has_key("openai"),
            has_gemini_key=self._has_key("gemini"),
        )
        return [name for name in order if name in self.providers]

    def configuration_error(self) -> str | None:
        """Message for an explicit hosted preference whose key is missing, else None."""
        if self.preference in _HOSTED_KEY_MESSAGES and not self._has_key(self.preference):
            return _HOSTED_KEY_MESSAGES[self.preference]
        return None

    async def _attempt(self, provider: LLMProvider, system_prompt: str, user_payload: str) -> ModelPlan:
        if not provider.is_configured():
            raise ProviderError(
                provider.missing_key_message(), provider=provider.name, error_kind=PROVIDER_ERROR_MISSING_KEY
            )
        timeout_s = provider.timeout_ms / 1000.0
        try:
            raw = await asyncio.wait_for(
                provider.generate(system_prompt=system_prompt, user_payload=user_payload, timeout_s=timeout_s),
                timeout=timeout_s,
            )
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise ProviderError(
                provider.timeout_message(), provider=provider.name, error_kind=PROVIDER_ERROR_TIMEOUT
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                provider.network_message(), provider=provider.name, error_kind=PROVIDER_ERROR_NETWORK
            ) from exc
        return parse_assistant_plan(raw)

    async def request_plan_async(self, prompt: str, context: dict[str, Any]) -> PlanResult:
        system_prompt = build_system_prompt()
        user_payload = build_user_payload(prompt, context)
        failures: list[tuple[str, str]] = []
        for name in self.provider_order():
            provider = self.providers[name]
            started = time.perf_counter()
            try:
                plan = await self._attempt(provider, system_prompt, user_payload)
            except (ProviderError, PlanParseError) as exc:
                logger.warning(
                    "assistant provider %s failed kind=%s snippet=%s",
                    name,
                    provider_error_kind(exc),
                    exc.raw_snippet,
                )
                record_provider_failure(provider=name)
                failures.append((name, str(exc)))
                continue
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "assistant provider %s failed kind=%s detail=%s",
                    name,
                    provider_error_kind(exc),
                    sanitize_raw_snippet(str(exc)),
                )
                record_provider_failure(provider=name)
                failures.append((name, str(exc) or "Error desconocido"))
                continue
            latency_ms = int((time.perf_counter() - started) * 1000)
            logger.info("assistant provider %s answered in %sms", name, latency_ms)
            return PlanResult(plan=plan, provider=name, latency_ms=latency_ms)

        message = format_chain_error(failures)
        logger.error("assistant provider chain exhausted after %s attempt(s)", len(failures))
        raise LLMUnavailableError(message, failures=[f"{name}: {detail}" for name, detail in failures])

    def request_plan(self, prompt: str, context: dict[str, Any]) -> PlanResult:
        return asyncio.run(self.request_plan_async(prompt, context))


_orchestrator: PlanOrchestrator | None = None


def get_plan_orchestrator() -> PlanOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = PlanOrchestrator.from_settings(settings)
    return _orchestrator


def reset_plan_orchestrator() -> None:
    global _orchestrator
    _orchestrator = None
