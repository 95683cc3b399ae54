import time
from typing import Any
from urllib.parse import quote

import httpx

from sheet_assistant.modules.llm.base import LLMProvider
from sheet_assistant.modules.llm.runtime.errors import (
    PROVIDER_ERROR_EMPTY_CONTENT,
    PROVIDER_ERROR_HTTP_STATUS,
    ProviderError,
)
from sheet_assistant.modules.llm.runtime.parsers import read_json_body, sanitize_raw_snippet

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(LLMProvider):
    name = "gemini"
    display_name = "Gemini"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        timeout_ms: int,
        temperature: float = 0.2,
        base_url: str = GEMINI_BASE_URL,
    ):
        super().__init__(timeout_ms=timeout_ms)
        self.api_key = str(api_key or "").strip()
        self.model = model
        self.temperature = float(temperature)
        self.base_url = base_url.rstrip("/")
        self.last_latency_ms: int | None = None

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def missing_key_message(self) -> str:
        return "Falta GEMINI_API_KEY."

    def endpoint(self) -> str:
        return f"{self.base_url}/models/{quote(self.model, safe='')}:generateContent?key={quote(self.api_key, safe='')}"

    def _payload(self, system_prompt: str, user_payload: str) -> dict[str, Any]:
        return {
            "systemInstruction": {"role": "system", "parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": user_payload}]}],
            "generationConfig": {"temperature": self.temperature, "responseMimeType": "application/json"},
        }

    @staticmethod
    def _candidate_text(data: Any) -> str:
        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        texts = [part.get("text") for part in parts or [] if isinstance(part, dict)]
        return "\n".join(text for text in texts if isinstance(text, str)).strip()

    async def generate(self, *, system_prompt: str, user_payload: str, timeout_s: float) -> str:
        started = time.perf_counter()
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout=timeout_s)) as client:
            resp = await client.post(
                self.endpoint(),
                headers={"Content-Type": "application/json"},
                json=self._payload(system_prompt, user_payload),
            )
            data = read_json_body(resp)
        self.last_latency_ms = int((time.perf_counter() - started) * 1000)

        if resp.status_code >= 400:
            raise ProviderError(
                f"Gemini error ({resp.status_code}).",
                provider=self.name,
                error_kind=PROVIDER_ERROR_HTTP_STATUS,
                raw_snippet=sanitize_raw_snippet(data),
            )
        content = self._candidate_text(data)
        if not content:
            raise ProviderError(
                "Gemini no devolvió contenido utilizable.",
                provider=self.name,
                error_kind=PROVIDER_ERROR_EMPTY_CONTENT,
            )
        return content
