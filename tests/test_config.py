import pytest

from sheet_assistant.config import Settings, parse_env_bool, parse_env_int, resolve_provider_preference


@pytest.mark.parametrize(
    ("raw", "default", "expected"),
    [("yes", False, True), ("OFF", True, False), ("maybe", True, True), (None, False, False), (True, False, True)],
)
def test_parse_env_bool(raw, default, expected) -> None:
    assert parse_env_bool(raw, default) is expected


def test_parse_env_int_clamps_and_falls_back() -> None:
    assert parse_env_int("250000", 90000, 1500, 180000) == 180000
    assert parse_env_int("10", 90000, 1500, 180000) == 1500
    assert parse_env_int(" 4096.4 ", 3072, 512, 32768) == 4096
    assert parse_env_int("abc", 8, 2, 20) == 8
    assert parse_env_int("nan", 8, 2, 20) == 8
    assert parse_env_int(True, 8, 2, 20) == 8


def test_provider_preference_normalization() -> None:
    assert resolve_provider_preference(" Gemini ") == "gemini"
    assert resolve_provider_preference("") == "auto"
    assert resolve_provider_preference("claude") == "ollama"


def test_settings_apply_lenient_parsing() -> None:
    config = Settings(
        ai_provider="OpenAI",
        ai_free_only="false",
        ai_enable_local_fallback="nope",
        openai_api_key="  sk-test ",
        ollama_timeout_ms="999999",
        ai_rag_top_k="1",
    )

    assert config.ai_provider == "openai"
    assert config.effective_provider == "openai"
    assert config.effective_openai_api_key == "sk-test"
    assert config.ai_enable_local_fallback is True
    assert config.ollama_timeout_ms == 180000
    assert config.ai_rag_top_k == 2


def test_free_only_blocks_paid_provider() -> None:
    config = Settings(ai_provider="openai", ai_free_only="1", openai_api_key="sk-test")

    assert config.effective_provider == "auto"
    assert config.effective_openai_api_key == ""
