"""
Adapter for LiteLLM - The chat capability over any supported provider.

Retries configurable from LLMConfig:
- Only for transient errors: RateLimitError, ServiceUnavailableError,
  APIConnectionError and Timeout.
- Authentication and request errors are not retried.
- Structured logging on each retry with attempt number and wait time.

Every failure that leaves the adapter is a CapabilityError carrying the
upstream status code and body, so callers never see provider exceptions.
"""

import os
from typing import Any

import litellm
import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config.schema import LLMConfig
from ..errors import CapabilityError
from .capability import Message

logger = structlog.get_logger()

__all__ = ["CONNECTION_PROBE", "LLMAdapter", "resolve_model"]

# Transient errors that justify retries
_RETRYABLE_ERRORS = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.APIConnectionError,
    litellm.Timeout,
)

CONNECTION_PROBE = "Hello, respond with just 'OK' to confirm connection."

# provider -> (litellm model prefix, default endpoint)
_PROVIDERS: dict[str, tuple[str, str | None]] = {
    "openai": ("openai", None),
    "anthropic": ("anthropic", None),
    "claude": ("anthropic", None),
    "deepseek": ("deepseek", None),
    "ollama": ("ollama", "http://localhost:11434"),
    "custom": ("openai", None),
}


def resolve_model(config: LLMConfig) -> tuple[str, str | None]:
    """Map provider + model to the LiteLLM model string and endpoint.

    Models that already carry a ``provider/`` prefix are passed through.
    ``custom`` talks to any OpenAI-compatible endpoint at ``api_base``.

    Returns:
        (model, api_base) as litellm.completion expects them.
    """
    prefix, default_base = _PROVIDERS[config.provider]
    model = config.model if "/" in config.model else f"{prefix}/{config.model}"
    return model, config.api_base or default_base


class LLMAdapter:
    """ChatCapability over LiteLLM with configuration, retries and error mapping."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.model, self.api_base = resolve_model(config)
        self.log = logger.bind(component="llm_adapter", model=self.model)

        if config.provider == "custom" and not self.api_base:
            self.log.warning("llm.no_api_base", provider=config.provider)

        self._api_key = os.environ.get(config.api_key_env)
        if self._api_key:
            self.log.debug("llm.api_key_configured", env_var=config.api_key_env)
        elif config.provider != "ollama":
            self.log.warning(
                "llm.no_api_key",
                env_var=config.api_key_env,
                message=f"Environment variable {config.api_key_env} not found",
            )

        # Reduce LiteLLM's own verbosity
        litellm.suppress_debug_info = True

        self.log.info(
            "llm.adapter.initialized",
            provider=config.provider,
            api_base=self.api_base,
            retries=config.retries,
        )

    def _on_retry_sleep(self, retry_state: RetryCallState) -> None:
        """Callback called before each retry. Logs the attempt and wait time."""
        next_wait = retry_state.next_action.sleep if retry_state.next_action else 0
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.log.warning(
            "llm.retry",
            attempt=retry_state.attempt_number,
            wait_seconds=round(next_wait, 1),
            error=str(exc) if exc else None,
            error_type=type(exc).__name__ if exc else None,
        )

    def _call_with_retry(self, fn, *args, **kwargs) -> Any:
        """Execute fn, retrying only transient errors up to config.retries times."""
        max_attempts = self.config.retries + 1  # 1 original attempt + N retries
        for attempt in Retrying(
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=60),
            before_sleep=self._on_retry_sleep,
            reraise=True,
        ):
            with attempt:
                return fn(*args, **kwargs)

    def chat(self, messages: list[Message], temperature: float) -> str:
        """Send a chat completion and return the assistant's text.

        Raises:
            CapabilityError: On any provider failure, after retries for
                transient ones, or when the response has no choices.
        """
        self.log.info(
            "llm.completion.start",
            messages_count=len(messages),
            temperature=temperature,
        )

        def _call() -> Any:
            kwargs: dict[str, Any] = {
                "model": self.model,
                "messages": messages,
                "temperature": temperature,
                "timeout": self.config.timeout,
            }
            if self.api_base:
                kwargs["api_base"] = self.api_base
            if self._api_key:
                kwargs["api_key"] = self._api_key
            return litellm.completion(**kwargs)

        try:
            response = self._call_with_retry(_call)
        except Exception as e:
            error = _to_capability_error(e)
            self.log.error(
                "llm.completion.error",
                error=str(error),
                error_type=type(e).__name__,
                status_code=error.status_code,
            )
            raise error from e

        content = self._extract_content(response)
        self.log.info("llm.completion.success", chars=len(content))
        return content

    def test_connection(self) -> str:
        """Send a one-line probe and return the model's reply."""
        return self.chat([{"role": "user", "content": CONNECTION_PROBE}], temperature=0.0)

    def _extract_content(self, response: Any) -> str:
        choices = getattr(response, "choices", None)
        if not choices:
            self.log.error("llm.completion.empty")
            raise CapabilityError("empty response")
        return getattr(choices[0].message, "content", None) or ""

    def __repr__(self) -> str:
        return f"<LLMAdapter(model='{self.model}', provider='{self.config.provider}')>"


def _to_capability_error(exc: Exception) -> CapabilityError:
    """Map a LiteLLM (or transport) exception, keeping upstream detail verbatim."""
    status = getattr(exc, "status_code", None)
    body = getattr(exc, "message", None) or str(exc)
    return CapabilityError(
        body,
        status_code=status if isinstance(status, int) else None,
        body=body,
    )
