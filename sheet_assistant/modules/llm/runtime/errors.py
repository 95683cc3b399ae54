from __future__ import annotations


class LLMUnavailableError(RuntimeError):
    """Raised when every provider in the chain failed."""

    def __init__(self, message: str, *, failures: list[str] | None = None):
        super().__init__(message)
        self.failures = list(failures or [])


class PlanParseError(ValueError):
    """Raised when the model reply is not a JSON object."""

    def __init__(self, message: str, *, raw_snippet: str | None = None):
        super().__init__(message)
        self.error_kind = PROVIDER_ERROR_JSON_PARSE
        self.raw_snippet = raw_snippet


class ProviderError(RuntimeError):
    """One provider attempt failed; the orchestrator moves on to the next."""

    def __init__(self, message: str, *, provider: str, error_kind: str, raw_snippet: str | None = None):
        super().__init__(message)
        self.provider = str(provider)
        self.error_kind = str(error_kind)
        self.raw_snippet = raw_snippet


PROVIDER_ERROR_TIMEOUT = "TIMEOUT"
PROVIDER_ERROR_NETWORK = "NETWORK"
PROVIDER_ERROR_HTTP_STATUS = "HTTP_STATUS"
PROVIDER_ERROR_EMPTY_CONTENT = "EMPTY_CONTENT"
PROVIDER_ERROR_JSON_PARSE = "JSON_PARSE"
PROVIDER_ERROR_MISSING_KEY = "MISSING_KEY"
