# src/tutorgen/llm/client.py
"""LiteLLM-based LLM client."""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from litellm import acompletion
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    RateLimitError,
)

from tutorgen.config import ConfigError, load_settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base exception for LLM client errors."""

    pass


class LLMConnectionError(LLMError):
    """Raised when unable to connect to the LLM provider."""

    pass


class LLMAuthenticationError(LLMError):
    """Raised when authentication with the LLM provider fails."""

    pass


class LLMRateLimitError(LLMError):
    """Raised when rate limited by the LLM provider."""

    pass


RELEVANT_HEADERS = frozenset(
    {
        "x-ratelimit-limit-requests",
        "x-ratelimit-limit-tokens",
        "x-ratelimit-remaining-requests",
        "x-ratelimit-remaining-tokens",
        "x-ratelimit-reset-requests",
        "x-ratelimit-reset-tokens",
        "retry-after",
        "x-request-id",
    }
)


class LLMClient:
    """Unified LLM client supporting multiple providers via LiteLLM.

    Satisfies the ContentSynthesizer protocol. The client reports itself as
    deterministic when it samples at temperature 0.
    """

    def __init__(
        self,
        provider: str,
        model: str,
        api_key: str | None = None,
        endpoint: str | None = None,
        log_path: Path | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        """Initialize LLM client.

        Args:
            provider: LLM provider (openai, anthropic, google, ollama).
            model: Model name.
            api_key: Optional API key (uses env var if not provided).
            endpoint: Optional custom endpoint (for Ollama).
            log_path: Optional path to JSONL log file for query logging.
            temperature: Default sampling temperature for calls that pass none.
            max_tokens: Default response token cap for calls that pass none.
        """
        self.provider = provider
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.log_path = log_path

        default_temperature = 0.7
        default_max_tokens = 4096
        try:
            settings = load_settings()
            default_temperature = settings.llm.default_temperature
            default_max_tokens = settings.llm.max_tokens
        except (ValueError, OSError, ConfigError):
            pass
        self.temperature = default_temperature if temperature is None else temperature
        self.max_tokens = default_max_tokens if max_tokens is None else max_tokens

    @property
    def deterministic(self) -> bool:
        """True when repeated calls with one prompt should agree."""
        return self.temperature == 0.0

    def _log_query(
        self,
        system_prompt: str | None,
        prompt: str,
        temperature: float,
        max_tokens: int,
        response: str | None,
        duration_ms: int,
        error: str | None,
        error_details: dict | None = None,
    ) -> None:
        """Append a query record to the JSONL log file.

        Args:
            system_prompt: System prompt used.
            prompt: User prompt.
            temperature: Temperature setting.
            max_tokens: Max tokens setting.
            response: Response text (None if error).
            duration_ms: Request duration in milliseconds.
            error: Error message (None if success).
            error_details: Optional dict with status_code, headers, etc.
        """
        if not self.log_path:
            return

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "provider": self.provider,
            "model": self.model,
            "request": {
                "system_prompt": system_prompt,
                "prompt": prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
            "response": response,
            "duration_ms": duration_ms,
            "error": error,
        }

        if error_details:
            entry["error_details"] = error_details

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            # Query logging is best effort
            logger.debug(f"Could not write LLM query log {self.log_path}: {e}")

    def _extract_error_details(self, e: Exception) -> dict | None:
        """Extract HTTP details from LiteLLM exceptions.

        Args:
            e: The exception to extract details from.

        Returns:
            Dict with status_code, headers, and provider if available.
        """
        details: dict = {}

        if hasattr(e, "status_code"):
            details["status_code"] = e.status_code

        resp = getattr(e, "response", None)
        if resp is not None:
            if hasattr(resp, "status_code"):
                details["status_code"] = resp.status_code
            headers = getattr(resp, "headers", None)
            if headers:
                relevant = {k: v for k, v in dict(headers).items() if k.lower() in RELEVANT_HEADERS}
                if relevant:
                    details["response_headers"] = relevant

        if hasattr(e, "llm_provider"):
            details["llm_provider"] = e.llm_provider

        return details if details else None

    def _get_model_string(self) -> str:
        """Get LiteLLM model string.

        Returns:
            Model string in provider/model format.
        """
        if self.provider == "openai":
            return self.model  # OpenAI is default
        elif self.provider == "ollama":
            return f"ollama/{self.model}"
        else:
            return f"{self.provider}/{self.model}"

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate completion from prompt.

        Args:
            prompt: User prompt.
            system_prompt: Optional system prompt.
            temperature: Sampling temperature.
            max_tokens: Maximum response tokens.

        Returns:
            Generated text response.

        Raises:
            LLMAuthenticationError: Credentials were rejected.
            LLMRateLimitError: The provider throttled the request.
            LLMConnectionError: The provider could not be reached.
            LLMError: Any other provider error.
        """
        if temperature is None:
            temperature = self.temperature
        if max_tokens is None:
            max_tokens = self.max_tokens

        messages = []

        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": self._get_model_string(),
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if self.api_key:
            kwargs["api_key"] = self.api_key

        if self.endpoint and self.provider == "ollama":
            kwargs["api_base"] = self.endpoint

        start_time = time.perf_counter()
        try:
            response = await acompletion(**kwargs)
        except AuthenticationError as e:
            self._log_failure(system_prompt, prompt, temperature, max_tokens, start_time, e)
            raise LLMAuthenticationError(f"Authentication failed: {e}") from e
        except RateLimitError as e:
            self._log_failure(system_prompt, prompt, temperature, max_tokens, start_time, e)
            raise LLMRateLimitError(f"Rate limit exceeded: {e}") from e
        except APIConnectionError as e:
            self._log_failure(system_prompt, prompt, temperature, max_tokens, start_time, e)
            raise LLMConnectionError(f"Connection failed: {e}") from e
        except APIError as e:
            self._log_failure(system_prompt, prompt, temperature, max_tokens, start_time, e)
            raise LLMError(f"LLM API error: {e}") from e

        result: str = str(response.choices[0].message.content or "")
        duration_ms = int((time.perf_counter() - start_time) * 1000)
        self._log_query(
            system_prompt,
            prompt,
            temperature,
            max_tokens,
            response=result,
            duration_ms=duration_ms,
            error=None,
        )
        return result

    def _log_failure(
        self,
        system_prompt: str | None,
        prompt: str,
        temperature: float,
        max_tokens: int,
        start_time: float,
        error: Exception,
    ) -> None:
        duration_ms = int((time.perf_counter() - start_time) * 1000)
        self._log_query(
            system_prompt,
            prompt,
            temperature,
            max_tokens,
            response=None,
            duration_ms=duration_ms,
            error=str(error),
            error_details=self._extract_error_details(error),
        )
