import time
from typing import Any

import httpx

from sheet_assistant.modules.llm.base import LLMProvider
from sheet_assistant.modules.llm.runtime.errors import (
    PROVIDER_ERROR_EMPTY_CONTENT,
    PROVIDER_ERROR_HTTP_STATUS,
    ProviderError,
)
from sheet_assistant.modules.llm.runtime.parsers import extract_model_content, read_json_body, sanitize_raw_snippet

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIProvider(LLMProvider):
    name = "openai"
    display_name = "OpenAI"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        timeout_ms: int,
        response_schema: dict[str, Any] | None = None,
        temperature: float = 0.2,
        url: str = OPENAI_CHAT_URL,
    ):
        super().__init__(timeout_ms=timeout_ms)
        self.api_key = str(api_key or "").strip()
        self.model = model
        self.response_schema = response_schema
        self.temperature = float(temperature)
        self.url = url
        self.last_latency_ms: int | None = None

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def missing_key_message(self) -> str:
        return "Falta OPENAI_API_KEY."

    def _payload(self, system_prompt: str, user_payload: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_payload},
            ],
        }
        if self.response_schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "campaign_assistant_plan", "strict": False, "schema": self.response_schema},
            }
        return payload

    async def generate(self, *, system_prompt: str, user_payload: str, timeout_s: float) -> str:
        started = time.perf_counter()
        headers = {"authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout=timeout_s)) as client:
            resp = await client.post(self.url, headers=headers, json=self._payload(system_prompt, user_payload))
            data = read_json_body(resp)
        self.last_latency_ms = int((time.perf_counter() - started) * 1000)

        if resp.status_code >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            raise ProviderError(
                str(message or f"OpenAI error ({resp.status_code})."),
                provider=self.name,
                error_kind=PROVIDER_ERROR_HTTP_STATUS,
                raw_snippet=sanitize_raw_snippet(data),
            )

        choices = data.get("choices") if isinstance(data, dict) else None
        message = choices[0].get("message", {}) if isinstance(choices, list) and choices else {}
        content = extract_model_content(message.get("content") if isinstance(message, dict) else None)
        if not content:
            raise ProviderError(
                "El modelo no devolvió contenido utilizable.",
                provider=self.name,
                error_kind=PROVIDER_ERROR_EMPTY_CONTENT,
            )
        return content
