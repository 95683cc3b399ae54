from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import httpx
from jsonschema import Draft202012Validator

from sheet_assistant.modules.llm.runtime.errors import (
    PROVIDER_ERROR_HTTP_STATUS,
    PROVIDER_ERROR_NETWORK,
    PROVIDER_ERROR_TIMEOUT,
    PlanParseError,
    ProviderError,
)
from sheet_assistant.modules.patches.schemas import AssistantPlan

logger = logging.getLogger(__name__)

DEFAULT_PLAN_REPLY = "He analizado tu petición, pero no encontré cambios concretos para aplicar."
MAX_REPLY_CHARS = 2000

_TOKEN_REDACTION_RE = re.compile(r"\b(?:sk-[A-Za-z0-9_\-]{8,}|AIza[A-Za-z0-9_\-]{20,})\b")
_KEY_PARAM_RE = re.compile(r"([?&]key=)[^&\s]+")
_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")


@dataclass(slots=True)
class ModelPlan:
    """Model reply before sanitization: ``actions`` is whatever the model sent."""

    reply: str
    actions: list[Any] = field(default_factory=list)


def sanitize_raw_snippet(raw: object, max_len: int = 200) -> str | None:
    if raw is None:
        return None
    if isinstance(raw, (dict, list)):
        try:
            text = json.dumps(raw, ensure_ascii=False)
        except (TypeError, ValueError):
            text = str(raw)
    else:
        text = str(raw)
    text = _TOKEN_REDACTION_RE.sub("[REDACTED_KEY]", text)
    text = _KEY_PARAM_RE.sub(r"\1[REDACTED_KEY]", text)
    text = " ".join(text.split())
    text = text.replace("|", "/")
    if not text:
        return None
    return text[:max_len]


def read_json_body(resp: httpx.Response) -> Any:
    if not resp.content:
        return {}
    try:
        return resp.json()
    except ValueError:
        return {}


def extract_model_content(content: Any) -> str:
    """Chat content arrives either as a string or as a list of typed parts."""
    if isinstance(content, str):
        return content.strip()
    if not isinstance(content, list):
        return ""
    chunks: list[str] = []
    for part in content:
        if isinstance(part, str):
            chunks.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            chunks.append(part["text"])
    return "\n".join(chunks).strip()


def strip_code_fences(raw: str) -> str:
    text = str(raw or "").strip()
    if not text.startswith("```"):
        return text
    text = _FENCE_OPEN_RE.sub("", text)
    return _FENCE_CLOSE_RE.sub("", text).strip()


@lru_cache(maxsize=1)
def assistant_plan_json_schema() -> dict[str, Any]:
    """JSON schema of the plan the model must return, derived from ``AssistantPlan``."""
    schema = AssistantPlan.model_json_schema(by_alias=True)
    schema["additionalProperties"] = False
    return schema


@lru_cache(maxsize=1)
def _plan_validator() -> Draft202012Validator:
    return Draft202012Validator(assistant_plan_json_schema())


def plan_schema_violations(payload: Any, max_items: int = 5) -> list[str]:
    violations: list[str] = []
    for error in _plan_validator().iter_errors(payload):
        location = "/".join(str(part) for part in error.absolute_path) or "<root>"
        violations.append(f"{location}: {error.message}")
        if len(violations) >= max_items:
            break
    return violations


def parse_assistant_plan(raw: str) -> ModelPlan:
    """Parse the model text into a plan.

    Schema violations are logged and tolerated; the actions are sanitized
    downstream. Only non-JSON or non-object replies are rejected.
    """
    text = strip_code_fences(raw)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PlanParseError(
            "La respuesta del modelo no es JSON válido.", raw_snippet=sanitize_raw_snippet(text)
        ) from exc
    if not isinstance(payload, dict):
        raise PlanParseError("La respuesta del modelo no es un objeto JSON.", raw_snippet=sanitize_raw_snippet(text))

    violations = plan_schema_violations(payload)
    if violations:
        logger.info("model plan deviates from schema: %s", "; ".join(violations))

    reply = payload.get("reply")
    reply_text = reply.strip()[:MAX_REPLY_CHARS] if isinstance(reply, str) else ""
    actions = payload.get("actions")
    return ModelPlan(reply=reply_text or DEFAULT_PLAN_REPLY, actions=actions if isinstance(actions, list) else [])


def provider_error_kind(exc: Exception) -> str:
    if isinstance(exc, (ProviderError, PlanParseError)):
        return exc.error_kind
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return PROVIDER_ERROR_TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return PROVIDER_ERROR_HTTP_STATUS
    if isinstance(exc, httpx.HTTPError):
        return PROVIDER_ERROR_NETWORK
    return type(exc).__name__.upper()


def format_chain_error(failures: list[tuple[str, str]]) -> str:
    detail = " | ".join(f"{provider}: {message}" for provider, message in failures)
    return f"No se pudo obtener respuesta del asistente. {detail}".strip()
