import asyncio
import json

import pytest

from sheet_assistant.config import Settings
from sheet_assistant.modules.llm.base import LLMProvider
from sheet_assistant.modules.llm.providers.fake import FakeProvider
from sheet_assistant.modules.llm.runtime.errors import LLMUnavailableError
from sheet_assistant.modules.llm.runtime.orchestrators import PlanOrchestrator, resolve_provider_order
from sheet_assistant.modules.telemetry.service import get_assistant_telemetry_summary

PLAN = {"reply": "Listo.", "actions": [{"operation": "update", "characterId": "c1", "data": {"level": 2}}]}


class _SlowProvider(LLMProvider):
    name = "ollama"
    display_name = "Ollama"

    async def generate(self, *, system_prompt: str, user_payload: str, timeout_s: float) -> str:
        await asyncio.sleep(1)
        return json.dumps(PLAN)


def test_provider_order_rules() -> None:
    kwargs = {"has_openai_key": True, "has_gemini_key": True}

    assert resolve_provider_order("auto", enable_local_fallback=False, **kwargs) == ["gemini", "openai", "ollama"]
    assert resolve_provider_order("openai", enable_local_fallback=True, **kwargs) == ["openai", "ollama"]
    assert resolve_provider_order("gemini", enable_local_fallback=False, **kwargs) == ["gemini"]
    assert resolve_provider_order("ollama", enable_local_fallback=True, **kwargs) == ["ollama"]
    assert resolve_provider_order(
        "auto", enable_local_fallback=True, has_openai_key=False, has_gemini_key=False
    ) == ["ollama"]


def test_falls_through_to_next_provider() -> None:
    gemini = FakeProvider([RuntimeError("boom")], name="gemini")
    ollama = FakeProvider([PLAN], name="ollama")
    orchestrator = PlanOrchestrator({"gemini": gemini, "ollama": ollama})

    result = orchestrator.request_plan("sube a nivel 2", {"characters": []})

    assert result.provider == "ollama"
    assert result.plan.reply == "Listo."
    assert result.plan.actions == PLAN["actions"]
    assert json.loads(ollama.calls[0]["user_payload"])["user_request"] == "sube a nivel 2"
    assert get_assistant_telemetry_summary()["provider_failures"] == {"gemini": 1}


def test_invalid_json_counts_as_provider_failure() -> None:
    orchestrator = PlanOrchestrator(
        {"gemini": FakeProvider(["esto no es json"], name="gemini"), "ollama": FakeProvider([PLAN], name="ollama")}
    )

    assert orchestrator.request_plan("hola", {}).provider == "ollama"


def test_exhausted_chain_raises_with_every_failure() -> None:
    gemini = FakeProvider([RuntimeError("boom")], name="gemini")
    gemini.configured = False
    orchestrator = PlanOrchestrator(
        {"gemini": gemini, "ollama": FakeProvider([RuntimeError("sin red")], name="ollama")},
        preference="gemini",
    )

    assert orchestrator.provider_order() == ["gemini", "ollama"]
    assert orchestrator.configuration_error() == "Falta GEMINI_API_KEY en el servidor."
    with pytest.raises(LLMUnavailableError) as exc_info:
        orchestrator.request_plan("hola", {})

    assert exc_info.value.failures == ["gemini: Fake no está configurado.", "ollama: sin red"]
    assert str(exc_info.value).startswith("No se pudo obtener respuesta del asistente.")
    assert gemini.calls == []


def test_slow_provider_times_out() -> None:
    orchestrator = PlanOrchestrator({"ollama": _SlowProvider(timeout_ms=20)}, preference="ollama")

    with pytest.raises(LLMUnavailableError) as exc_info:
        orchestrator.request_plan("hola", {})

    assert exc_info.value.failures == ["ollama: Ollama tardó demasiado en responder (20ms)."]


def test_free_only_hides_openai() -> None:
    paid = Settings(ai_provider="openai", ai_free_only=False, openai_api_key="sk-test", gemini_api_key="")
    free = Settings(ai_provider="openai", ai_free_only=True, openai_api_key="sk-test", gemini_api_key="")

    assert PlanOrchestrator.from_settings(paid).provider_order() == ["openai", "ollama"]
    assert PlanOrchestrator.from_settings(free).provider_order() == ["ollama"]
