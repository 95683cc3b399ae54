import pytest

from sheet_assistant.modules.llm.runtime.errors import PROVIDER_ERROR_JSON_PARSE, PlanParseError
from sheet_assistant.modules.llm.runtime.parsers import (
    DEFAULT_PLAN_REPLY,
    assistant_plan_json_schema,
    extract_model_content,
    format_chain_error,
    parse_assistant_plan,
    sanitize_raw_snippet,
    strip_code_fences,
)


def test_code_fences_are_stripped() -> None:
    assert strip_code_fences('```json\n{"reply":"ok"}\n```') == '{"reply":"ok"}'
    assert strip_code_fences('  {"reply":"ok"}  ') == '{"reply":"ok"}'


def test_plan_is_parsed_from_fenced_reply() -> None:
    plan = parse_assistant_plan('```json\n{"reply":" Listo. ","actions":[{"operation":"update"}]}\n```')

    assert plan.reply == "Listo."
    assert plan.actions == [{"operation": "update"}]


def test_schema_deviations_are_tolerated() -> None:
    plan = parse_assistant_plan('{"reply": 7, "actions": "none", "extra": true}')

    assert plan.reply == DEFAULT_PLAN_REPLY
    assert plan.actions == []


@pytest.mark.parametrize("raw", ["no es json", "[1, 2]", ""])
def test_non_object_replies_are_rejected(raw: str) -> None:
    with pytest.raises(PlanParseError) as exc_info:
        parse_assistant_plan(raw)

    assert exc_info.value.error_kind == PROVIDER_ERROR_JSON_PARSE


def test_plan_schema_forbids_extra_keys() -> None:
    schema = assistant_plan_json_schema()

    assert schema["additionalProperties"] is False
    assert set(schema["properties"]) == {"reply", "actions"}


def test_raw_snippet_redacts_keys() -> None:
    snippet = sanitize_raw_snippet("token sk-abcdefghijkl at https://x.test/v1?key=secret123 | done")

    assert snippet == "token [REDACTED_KEY] at https://x.test/v1?key=[REDACTED_KEY] / done"
    assert sanitize_raw_snippet(None) is None
    assert len(sanitize_raw_snippet("x" * 500) or "") == 200


def test_model_content_shapes() -> None:
    assert extract_model_content("  hola ") == "hola"
    assert extract_model_content(["a", {"text": "b"}, {"image": "c"}]) == "a\nb"
    assert extract_model_content(None) == ""


def test_chain_error_lists_each_provider() -> None:
    message = format_chain_error([("gemini", "Falta GEMINI_API_KEY."), ("ollama", "No se pudo conectar con Ollama.")])

    assert message == (
        "No se pudo obtener respuesta del asistente. "
        "gemini: Falta GEMINI_API_KEY. | ollama: No se pudo conectar con Ollama."
    )
