"""Error taxonomy for the enrichment pipeline."""

from __future__ import annotations


class EnrichmentError(RuntimeError):
    """Base class for all pipeline errors."""


class ConfigurationError(EnrichmentError):
    """No usable LLM provider credential. Fatal for the whole invocation."""


class ProviderError(EnrichmentError):
    """A provider call failed."""

    def __init__(self, message: str, provider: str | None = None, attempts: int = 1) -> None:
        super().__init__(message)
        self.provider = provider
        self.attempts = attempts


class RetryableProviderError(ProviderError):
    """Rate limit, timeout, network or 5xx failure; retried before surfacing."""


class NonRetryableProviderError(ProviderError):
    """Auth, malformed request or any other failure that retrying cannot fix."""


class PersistenceError(EnrichmentError):
    """A storage call failed for one bookmark or connection."""
