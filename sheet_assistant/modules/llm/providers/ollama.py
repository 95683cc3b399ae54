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


class OllamaProvider(LLMProvider):
    """Local model server; always configured, reachable or not."""

    name = "ollama"
    display_name = "Ollama"

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        timeout_ms: int,
        num_predict: int,
        num_ctx: int,
        temperature: float = 0.2,
    ):
        super().__init__(timeout_ms=timeout_ms)
        self.base_url = str(base_url or "").rstrip("/")
        self.model = model
        self.num_predict = int(num_predict)
        self.num_ctx = int(num_ctx)
        self.temperature = float(temperature)
        self.last_latency_ms: int | None = None

    def endpoint(self) -> str:
        return f"{self.base_url}/api/chat"

    def timeout_message(self) -> str:
        return (
            f"Ollama tardó demasiado en responder ({self.timeout_ms}ms). "
            "Sube OLLAMA_TIMEOUT_MS (ejemplo: 90000)."
        )

    def network_message(self) -> str:
        return f"No se pudo conectar con Ollama en {self.endpoint()}. Inicia Ollama y verifica OLLAMA_BASE_URL."

    def _payload(self, system_prompt: str, user_payload: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self.temperature,
                "num_predict": self.num_predict,
                "num_ctx": self.num_ctx,
            },
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_payload},
            ],
        }

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
            error = data.get("error") if isinstance(data, dict) else None
            raise ProviderError(
                str(error or f"Ollama error ({resp.status_code}). Verifica que el modelo esté descargado."),
                provider=self.name,
                error_kind=PROVIDER_ERROR_HTTP_STATUS,
                raw_snippet=sanitize_raw_snippet(data),
            )
        message = data.get("message") if isinstance(data, dict) else None
        content = extract_model_content(message.get("content") if isinstance(message, dict) else None)
        if not content:
            raise ProviderError(
                "Ollama no devolvió contenido utilizable.",
                provider=self.name,
                error_kind=PROVIDER_ERROR_EMPTY_CONTENT,
            )
        return content
