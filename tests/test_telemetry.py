from sheet_assistant.modules.telemetry.service import (
    get_assistant_telemetry_summary,
    record_assistant_failure,
    record_assistant_request,
    record_provider_failure,
    record_training_draft,
)


def test_summary_starts_empty() -> None:
    summary = get_assistant_telemetry_summary()

    assert summary["total_requests"] == 0
    assert summary["results"] == {"applied": 0, "blocked": 0, "skipped": 0, "error": 0}
    assert summary["avg_latency_ms"] == 0.0
    assert summary["p95_latency_ms"] == 0.0


def test_summary_aggregates_requests_and_failures() -> None:
    for latency in range(10, 101, 10):
        record_assistant_request(latency_ms=latency, intent="mutation", provider="ollama", statuses=["applied"])
    record_assistant_request(latency_ms=55, intent="chat", provider="heuristic-local", statuses=["blocked", "error"])
    record_assistant_failure(error_code="LLM_UNAVAILABLE")
    record_assistant_failure(error_code="FORBIDDEN")
    record_provider_failure(provider="gemini")
    record_training_draft()

    summary = get_assistant_telemetry_summary()

    assert summary["total_requests"] == 13
    assert summary["failed_requests"] == 2
    assert summary["llm_unavailable_errors"] == 1
    assert summary["requests_by_intent"] == {"mutation": 10, "chat": 1}
    assert summary["requests_by_provider"] == {"ollama": 10, "heuristic-local": 1}
    assert summary["heuristic_plans"] == 1
    assert summary["provider_failures"] == {"gemini": 1}
    assert summary["training_drafts"] == 1
    assert summary["results"] == {"applied": 10, "blocked": 1, "skipped": 0, "error": 1}
    assert summary["avg_latency_ms"] == 55.0
    assert summary["p95_latency_ms"] == 100.0
