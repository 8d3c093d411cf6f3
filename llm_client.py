"""Multi-provider LLM client with task routing, provider fallback and retry."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, NoReturn, Protocol, TypeVar

from config import LLMSettings, load_llm_settings
from cost_model import calculate_cost
from errors import (
    ConfigurationError,
    NonRetryableProviderError,
    ProviderError,
    RetryableProviderError,
)
from models import Completion, ModelConfig, Provider, TaskResult

MAX_RETRIES = 3
INITIAL_DELAY_SECONDS = 1.0
BACKOFF_MULTIPLIER = 2.0
MAX_DELAY_SECONDS = 10.0

DEFAULT_TEMPERATURE = 0.3
CATEGORY_MAX_OUTPUT_TOKENS = 100
DEFAULT_MAX_OUTPUT_TOKENS = 500

CONNECTION_TEST_MODELS: dict[str, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
}

_RETRYABLE_MARKERS: tuple[str, ...] = (
    "rate limit",
    "rate_limit",
    "timeout",
    "timed out",
    "network",
    "connection error",
    "429",
    "503",
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CompletionProvider(Protocol):
    """Complete a chat-style prompt and return text + token usage."""

    name: str

    def complete(self, system_prompt: str, user_prompt: str, config: ModelConfig) -> Completion: ...


@dataclass(frozen=True, slots=True)
class ConnectionTestResult:
    openai: bool = False
    anthropic: bool = False
    error: str | None = None


def provider_for_model(model: str) -> Provider:
    return "anthropic" if "claude" in model.lower() else "openai"


def is_retryable_error(error: BaseException) -> bool:
    """Classify a provider failure by type or, failing that, by message content."""
    if isinstance(error, RetryableProviderError):
        return True
    if isinstance(error, NonRetryableProviderError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in _RETRYABLE_MARKERS)


def _build_providers(settings: LLMSettings) -> dict[str, CompletionProvider]:
    providers: dict[str, CompletionProvider] = {}
    # SDK imports stay lazy so a single configured provider is enough to run.
    if settings.openai_api_key:
        from openai_client import OpenAIProvider  # noqa: PLC0415

        providers["openai"] = OpenAIProvider(settings.openai_api_key)
    if settings.anthropic_api_key:
        from anthropic_client import AnthropicProvider  # noqa: PLC0415

        providers["anthropic"] = AnthropicProvider(settings.anthropic_api_key)
    return providers


class LLMClient:
    """Routes each enrichment task to a model and calls it with retry.

    Providers are injected (or built from settings); the client fails fast with
    ConfigurationError when none is available.
    """

    def __init__(
        self,
        settings: LLMSettings | None = None,
        providers: dict[str, CompletionProvider] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or load_llm_settings()
        self._providers = dict(providers) if providers is not None else _build_providers(self.settings)
        self._sleep = sleep
        if not self._providers:
            raise ConfigurationError(
                "No LLM API keys configured. Please set OPENAI_API_KEY or ANTHROPIC_API_KEY."
            )

    def available_providers(self) -> list[str]:
        return [name for name in ("openai", "anthropic") if name in self._providers]

    def get_model_config(self, task: str) -> ModelConfig:
        """Resolve the model for a task, falling back to the other provider if needed."""
        model = self.settings.model_for(task)
        provider = provider_for_model(model)
        max_tokens = CATEGORY_MAX_OUTPUT_TOKENS if task == "category" else DEFAULT_MAX_OUTPUT_TOKENS

        if provider not in self._providers:
            if provider == "openai" and "anthropic" in self._providers:
                fallback_model = self.settings.anthropic_fallback_model
                fallback: Provider = "anthropic"
            elif provider == "anthropic" and "openai" in self._providers:
                fallback_model = "gpt-4o-mini" if task == "category" else "gpt-4o"
                fallback = "openai"
            else:
                raise ConfigurationError(f"No provider available for task={task} model={model}")
            LOGGER.warning(
                "Provider %s not configured for task=%s; falling back to %s model=%s",
                provider,
                task,
                fallback,
                fallback_model,
            )
            provider, model = fallback, fallback_model

        return ModelConfig(
            provider=provider,
            model=model,
            max_output_tokens=max_tokens,
            temperature=DEFAULT_TEMPERATURE,
        )

    def call_with_retry(
        self,
        task: str,
        system_prompt: str,
        user_prompt: str,
        parse: Callable[[str], T],
    ) -> TaskResult[T]:
        """Run one task prompt with exponential backoff on retryable failures.

        Up to MAX_RETRIES retries after the first attempt; waits start at
        INITIAL_DELAY_SECONDS, double each time and are capped at
        MAX_DELAY_SECONDS. The parse function owns all shape validation and
        fallback; the client passes it the raw text unchanged.
        """
        config = self.get_model_config(task)
        provider = self._providers[config.provider]
        delay = INITIAL_DELAY_SECONDS
        total_attempts = MAX_RETRIES + 1

        for attempt in range(1, total_attempts + 1):
            try:
                completion = provider.complete(system_prompt, user_prompt, config)
            except Exception as exc:
                if not is_retryable_error(exc):
                    _raise_provider_error(exc, NonRetryableProviderError, config, attempt)
                if attempt == total_attempts:
                    LOGGER.error(
                        "LLM call for task=%s failed after %s attempts: %s", task, attempt, exc
                    )
                    _raise_provider_error(exc, RetryableProviderError, config, attempt)
                LOGGER.warning(
                    "LLM call for task=%s failed (attempt %s/%s). Retrying in %.1fs: %s",
                    task,
                    attempt,
                    total_attempts,
                    delay,
                    exc,
                )
                self._sleep(delay)
                delay = min(delay * BACKOFF_MULTIPLIER, MAX_DELAY_SECONDS)
                continue

            cost = calculate_cost(config.model, completion.usage)
            return TaskResult(
                data=parse(completion.text),
                usage=completion.usage,
                model=config.model,
                provider=config.provider,
                cost=cost,
            )

        raise RuntimeError("unreachable: retry loop exited without result")

    def test_connection(self) -> ConnectionTestResult:
        """Send a minimal prompt to each configured provider independently."""
        status: dict[str, bool] = {"openai": False, "anthropic": False}
        errors: list[str] = []

        for name in self.available_providers():
            config = ModelConfig(
                provider=name,  # type: ignore[arg-type]
                model=CONNECTION_TEST_MODELS[name],
                max_output_tokens=5,
                temperature=0.0,
            )
            try:
                self._providers[name].complete("", "Hello", config)
                status[name] = True
            except Exception as exc:
                LOGGER.error("%s connection test failed: %s", name, exc)
                errors.append(f"{_display_name(name)}: {exc}")

        return ConnectionTestResult(
            openai=status["openai"],
            anthropic=status["anthropic"],
            error=" | ".join(errors) if errors else None,
        )


def _raise_provider_error(
    exc: Exception,
    kind: type[ProviderError],
    config: ModelConfig,
    attempts: int,
) -> NoReturn:
    if isinstance(exc, kind):
        exc.attempts = attempts
        raise exc
    raise kind(str(exc), provider=config.provider, attempts=attempts) from exc


def _display_name(provider: str) -> str:
    return "OpenAI" if provider == "openai" else "Anthropic"
