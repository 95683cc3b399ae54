from sheet_assistant.modules.llm.providers.fake import FakeProvider
from sheet_assistant.modules.llm.providers.gemini import GeminiProvider
from sheet_assistant.modules.llm.providers.ollama import OllamaProvider
from sheet_assistant.modules.llm.providers.openai import OpenAIProvider

__all__ = ["FakeProvider", "GeminiProvider", "OllamaProvider", "OpenAIProvider"]
