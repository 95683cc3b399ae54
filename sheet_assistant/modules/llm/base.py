from abc import ABC, abstractmethod


class LLMProvider(ABC):
    name: str
    display_name: str

    def __init__(self, *, timeout_ms: int):
        self.timeout_ms = int(timeout_ms)

    def is_configured(self) -> bool:
        return True

    def missing_key_message(self) -> str:
        return f"{self.display_name} no está configurado."

    def timeout_message(self) -> str:
        return f"{self.display_name} tardó demasiado en responder ({self.timeout_ms}ms)."

    def network_message(self) -> str:
        return f"No se pudo conectar con {self.display_name}."

    @abstractmethod
    async def generate(self, *, system_prompt: str, user_payload: str, timeout_s: float) -> str:
        """Return the raw text content of the model reply."""
