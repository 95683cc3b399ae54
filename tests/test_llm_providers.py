import asyncio
import json

import pytest

from sheet_assistant.modules.llm.providers.gemini import GeminiProvider
from sheet_assistant.modules.llm.providers.ollama import OllamaProvider
from sheet_assistant.modules.llm.providers.openai import OpenAIProvider
from sheet_assistant.modules.llm.runtime.errors import (
    PROVIDER_ERROR_EMPTY_CONTENT,
    PROVIDER_ERROR_HTTP_STATUS,
    ProviderError,
)


class _FakeResponse:
    def __init__(self, status_code: int, data: object):
        self.status_code = status_code
        self._data = data
        self.content = json.dumps(data).encode("utf-8")

    def json(self) -> object:
        return self._data


class _FakeAsyncClient:
    last_init_timeout = None
    last_request = None
    status_code = 200
    data: object = {}

    def __init__(self, *, timeout):
        _FakeAsyncClient.last_init_timeout = timeout

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def post(self, url: str, *, headers: dict, json: dict):
        _FakeAsyncClient.last_request = {"url": url, "headers": headers, "json": json}
        return _FakeResponse(_FakeAsyncClient.status_code, _FakeAsyncClient.data)


def _script(monkeypatch, module: str, status_code: int, data: object) -> None:
    monkeypatch.setattr(f"sheet_assistant.modules.llm.providers.{module}.httpx.AsyncClient", _FakeAsyncClient)
    monkeypatch.setattr(_FakeAsyncClient, "status_code", status_code)
    monkeypatch.setattr(_FakeAsyncClient, "data", data)
    monkeypatch.setattr(_FakeAsyncClient, "last_request", None)


def _generate(provider) -> str:
    return asyncio.run(provider.generate(system_prompt="sys", user_payload='{"prompt":"hola"}', timeout_s=5.0))


def test_openai_payload_carries_schema_and_bearer_key(monkeypatch) -> None:
    _script(monkeypatch, "openai", 200, {"choices": [{"message": {"content": ' {"reply":"ok","actions":[]} '}}]})
    provider = OpenAIProvider("sk-test", "gpt-4o-mini", timeout_ms=5000, response_schema={"type": "object"})

    assert _generate(provider) == '{"reply":"ok","actions":[]}'

    req = _FakeAsyncClient.last_request or {}
    assert req["url"] == "https://api.openai.com/v1/chat/completions"
    assert req["headers"]["authorization"] == "Bearer sk-test"
    assert req["json"]["model"] == "gpt-4o-mini"
    assert [message["role"] for message in req["json"]["messages"]] == ["system", "user"]
    schema_format = req["json"]["response_format"]["json_schema"]
    assert schema_format["strict"] is False
    assert schema_format["schema"] == {"type": "object"}
    assert provider.last_latency_ms is not None


def test_openai_error_status_uses_api_message(monkeypatch) -> None:
    _script(monkeypatch, "openai", 401, {"error": {"message": "Incorrect API key provided."}})
    provider = OpenAIProvider("sk-test", "gpt-4o-mini", timeout_ms=5000)

    with pytest.raises(ProviderError) as exc_info:
        _generate(provider)

    assert str(exc_info.value) == "Incorrect API key provided."
    assert exc_info.value.error_kind == PROVIDER_ERROR_HTTP_STATUS
    assert exc_info.value.provider == "openai"


def test_openai_text_parts_are_joined(monkeypatch) -> None:
    content = [{"type": "text", "text": '{"reply":'}, {"type": "text", "text": '"ok"}'}]
    _script(monkeypatch, "openai", 200, {"choices": [{"message": {"content": content}}]})

    assert _generate(OpenAIProvider("sk-test", "m", timeout_ms=5000)) == '{"reply":\n"ok"}'


def test_gemini_endpoint_and_candidate_text(monkeypatch) -> None:
    _script(
        monkeypatch,
        "gemini",
        200,
        {"candidates": [{"content": {"parts": [{"text": '{"reply":"ok"}'}]}}]},
    )
    provider = GeminiProvider("AIza-key", "gemini-2.0-flash", timeout_ms=5000)

    assert _generate(provider) == '{"reply":"ok"}'

    req = _FakeAsyncClient.last_request or {}
    assert req["url"].endswith("/models/gemini-2.0-flash:generateContent?key=AIza-key")
    assert req["json"]["systemInstruction"]["parts"] == [{"text": "sys"}]
    assert req["json"]["generationConfig"]["responseMimeType"] == "application/json"


def test_gemini_without_candidates_is_empty_content(monkeypatch) -> None:
    _script(monkeypatch, "gemini", 200, {"candidates": []})

    with pytest.raises(ProviderError) as exc_info:
        _generate(GeminiProvider("AIza-key", "gemini-2.0-flash", timeout_ms=5000))

    assert exc_info.value.error_kind == PROVIDER_ERROR_EMPTY_CONTENT


def test_ollama_payload_options(monkeypatch) -> None:
    _script(monkeypatch, "ollama", 200, {"message": {"content": '{"reply":"local"}'}})
    provider = OllamaProvider("http://localhost:11434/", "llama3.1", timeout_ms=5000, num_predict=256, num_ctx=4096)

    assert _generate(provider) == '{"reply":"local"}'

    req = _FakeAsyncClient.last_request or {}
    assert req["url"] == "http://localhost:11434/api/chat"
    assert req["json"]["stream"] is False
    assert req["json"]["format"] == "json"
    assert req["json"]["options"]["num_predict"] == 256
    assert req["json"]["options"]["num_ctx"] == 4096


def test_ollama_error_status_surfaces_server_error(monkeypatch) -> None:
    _script(monkeypatch, "ollama", 404, {"error": "model 'llama3.1' not found"})

    with pytest.raises(ProviderError) as exc_info:
        _generate(OllamaProvider("http://localhost:11434", "llama3.1", timeout_ms=5000, num_predict=1, num_ctx=1))

    assert str(exc_info.value) == "model 'llama3.1' not found"


def test_hosted_providers_need_keys() -> None:
    assert not OpenAIProvider("  ", "m", timeout_ms=1).is_configured()
    assert not GeminiProvider("", "m", timeout_ms=1).is_configured()
    assert OllamaProvider("http://x", "m", timeout_ms=1, num_predict=1, num_ctx=1).is_configured()
