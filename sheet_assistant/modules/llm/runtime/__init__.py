from sheet_assistant.modules.llm.runtime.errors import (
    PROVIDER_ERROR_EMPTY_CONTENT,
    PROVIDER_ERROR_HTTP_STATUS,
    PROVIDER_ERROR_JSON_PARSE,
    PROVIDER_ERROR_MISSING_KEY,
    PROVIDER_ERROR_NETWORK,
    PROVIDER_ERROR_TIMEOUT,
    LLMUnavailableError,
    PlanParseError,
    ProviderError,
)
from sheet_assistant.modules.llm.runtime.parsers import (
    DEFAULT_PLAN_REPLY,
    ModelPlan,
    assistant_plan_json_schema,
    parse_assistant_plan,
    sanitize_raw_snippet,
    strip_code_fences,
)
from sheet_assistant.modules.llm.runtime.prompts import build_system_prompt, build_user_payload

__all__ = [
    "DEFAULT_PLAN_REPLY",
    "LLMUnavailableError",
    "ModelPlan",
    "PROVIDER_ERROR_EMPTY_CONTENT",
    "PROVIDER_ERROR_HTTP_STATUS",
    "PROVIDER_ERROR_JSON_PARSE",
    "PROVIDER_ERROR_MISSING_KEY",
    "PROVIDER_ERROR_NETWORK",
    "PROVIDER_ERROR_TIMEOUT",
    "PlanParseError",
    "ProviderError",
    "assistant_plan_json_schema",
    "build_system_prompt",
    "build_user_payload",
    "parse_assistant_plan",
    "sanitize_raw_snippet",
    "strip_code_fences",
]
