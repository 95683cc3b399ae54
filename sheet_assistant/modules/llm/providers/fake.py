import json
from collections.abc import Iterable

from sheet_assistant.modules.llm.base import LLMProvider


class FakeProvider(LLMProvider):
    """Scripted provider: each call pops the next reply, or raises it when it is an exception."""

    display_name = "Fake"

    def __init__(self, replies: Iterable[object] = (), *, name: str = "fake", timeout_ms: int = 1000):
        super().__init__(timeout_ms=timeout_ms)
        self.name = name
        self.replies = list(replies)
        self.configured = True
        self.calls: list[dict[str, str]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, *, system_prompt: str, user_payload: str, timeout_s: float) -> str:
        self.calls.append({"system_prompt": system_prompt, "user_payload": user_payload})
        if not self.replies:
            return json.dumps({"reply": "Sin cambios.", "actions": []})
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply, ensure_ascii=False)
        return str(reply)
