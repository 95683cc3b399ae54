from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from statistics import mean
from threading import Lock

_MAX_LATENCY_SAMPLES = 1000


class _AssistantTelemetryStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._latencies_ms: list[float] = []
        self.total_requests: int = 0
        self.failed_requests: int = 0
        self.llm_unavailable_errors: int = 0
        self.heuristic_plans: int = 0
        self.training_drafts: int = 0
        self.by_intent: Counter[str] = Counter()
        self.by_provider: Counter[str] = Counter()
        self.provider_failures: Counter[str] = Counter()
        self.results: Counter[str] = Counter()

    def reset(self) -> None:
        with self._lock:
            self._latencies_ms = []
            self.total_requests = 0
            self.failed_requests = 0
            self.llm_unavailable_errors = 0
            self.heuristic_plans = 0
            self.training_drafts = 0
            self.by_intent = Counter()
            self.by_provider = Counter()
            self.provider_failures = Counter()
            self.results = Counter()

    def record_request(
        self,
        *,
        latency_ms: float,
        intent: str | None,
        provider: str,
        statuses: Iterable[str] = (),
    ) -> None:
        with self._lock:
            self.total_requests += 1
            self._latencies_ms.append(float(latency_ms))
            if len(self._latencies_ms) > _MAX_LATENCY_SAMPLES:
                self._latencies_ms = self._latencies_ms[-_MAX_LATENCY_SAMPLES:]
            if intent:
                self.by_intent[str(intent)] += 1
            self.by_provider[str(provider)] += 1
            if provider == "heuristic-local":
                self.heuristic_plans += 1
            for status in statuses:
                self.results[str(status)] += 1

    def record_failure(self, *, error_code: str) -> None:
        with self._lock:
            self.total_requests += 1
            self.failed_requests += 1
            if str(error_code) == "LLM_UNAVAILABLE":
                self.llm_unavailable_errors += 1

    def record_provider_failure(self, *, provider: str) -> None:
        with self._lock:
            self.provider_failures[str(provider)] += 1

    def record_training_draft(self) -> None:
        with self._lock:
            self.training_drafts += 1

    def summary(self) -> dict:
        with self._lock:
            latencies = list(self._latencies_ms)
            avg_latency = float(mean(latencies)) if latencies else 0.0
            p95_latency = 0.0
            if latencies:
                ordered = sorted(latencies)
                idx = max(0, min(len(ordered) - 1, round(0.95 * (len(ordered) - 1))))
                p95_latency = float(ordered[idx])

            return {
                "total_requests": int(self.total_requests),
                "failed_requests": int(self.failed_requests),
                "llm_unavailable_errors": int(self.llm_unavailable_errors),
                "requests_by_intent": dict(self.by_intent),
                "requests_by_provider": dict(self.by_provider),
                "provider_failures": dict(self.provider_failures),
                "heuristic_plans": int(self.heuristic_plans),
                "training_drafts": int(self.training_drafts),
                "results": {status: int(self.results.get(status, 0)) for status in ("applied", "blocked", "skipped", "error")},
                "avg_latency_ms": round(avg_latency, 3),
                "p95_latency_ms": round(p95_latency, 3),
            }


_assistant_telemetry = _AssistantTelemetryStore()


def reset_assistant_telemetry() -> None:
    _assistant_telemetry.reset()


def record_assistant_request(
    *, latency_ms: float, intent: str | None, provider: str, statuses: Iterable[str] = ()
) -> None:
    _assistant_telemetry.record_request(latency_ms=latency_ms, intent=intent, provider=provider, statuses=statuses)


def record_assistant_failure(*, error_code: str) -> None:
    _assistant_telemetry.record_failure(error_code=error_code)


def record_provider_failure(*, provider: str) -> None:
    _assistant_telemetry.record_provider_failure(provider=provider)


def record_training_draft() -> None:
    _assistant_telemetry.record_training_draft()


def get_assistant_telemetry_summary() -> dict:
    return _assistant_telemetry.summary()
