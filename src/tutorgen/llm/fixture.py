"""Deterministic fixture-based synthesizer.

Stands in for the LLM in tests and offline runs. Responses are keyed by a
substring of the prompt; the first key found in the prompt (in insertion
order) wins. A response may also be a callable that receives the prompt.

Fixture files are YAML mappings:

    default: "Generated text."
    responses:
      - match: "Identify the core abstractions"
        response: |
          - name: Scanner
            ...
    failures:
      "Problem & Motivation": 1
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Union

import yaml

from tutorgen.llm.client import LLMConnectionError, LLMError

logger = logging.getLogger(__name__)

Response = Union[str, Callable[[str], str]]


@dataclass
class RecordedCall:
    """One call received by the fixture synthesizer."""

    prompt: str
    system_prompt: str | None
    temperature: float | None


class FixtureSynthesizer:
    """Synthesizer double that answers from a fixed table."""

    deterministic = True

    def __init__(
        self,
        responses: dict[str, Response] | None = None,
        default: Response | None = None,
        failures: dict[str, int] | None = None,
        error_type: type[LLMError] = LLMConnectionError,
    ):
        """Initialize the fixture table.

        Args:
            responses: Prompt substring -> response text or callable.
            default: Response when no key matches. None raises LLMError.
            failures: Prompt substring -> number of calls that fail before
                the substring's prompts start succeeding.
            error_type: Exception raised for injected failures.
        """
        self.responses: dict[str, Response] = dict(responses or {})
        self.default = default
        self.failures: dict[str, int] = dict(failures or {})
        self.error_type = error_type
        self.calls: list[RecordedCall] = []

    @classmethod
    def from_yaml(cls, path: Path) -> "FixtureSynthesizer":
        """Load a fixture table from a YAML file.

        Args:
            path: Fixture file.

        Returns:
            Configured FixtureSynthesizer.

        Raises:
            ValueError: If the file is not a valid fixture mapping.
        """
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid fixture file {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Fixture file {path} must contain a mapping")

        responses: dict[str, Response] = {}
        for item in data.get("responses") or []:
            if not isinstance(item, dict) or "match" not in item:
                raise ValueError(f"Fixture entry without 'match' in {path}: {item!r}")
            responses[str(item["match"])] = str(item.get("response", ""))

        failures = {str(k): int(v) for k, v in (data.get("failures") or {}).items()}
        default = data.get("default")
        return cls(
            responses=responses,
            default=str(default) if default is not None else None,
            failures=failures,
        )

    def calls_matching(self, text: str) -> list[RecordedCall]:
        """Recorded calls whose prompt contains text."""
        return [call for call in self.calls if text in call.prompt]

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        self.calls.append(RecordedCall(prompt, system_prompt, temperature))

        for key, remaining in self.failures.items():
            if remaining > 0 and key in prompt:
                self.failures[key] = remaining - 1
                logger.debug(f"Fixture failure injected for {key!r}")
                raise self.error_type(f"Injected failure for {key!r}")

        response: Response | None = self.default
        for key, candidate in self.responses.items():
            if key in prompt:
                response = candidate
                break

        if response is None:
            raise LLMError(f"No fixture response for prompt starting {prompt[:60]!r}")
        if callable(response):
            return response(prompt)
        return response
