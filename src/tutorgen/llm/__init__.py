# src/tutorgen/llm/__init__.py
"""LLM client abstraction."""

from tutorgen.llm.client import (
    LLMAuthenticationError,
    LLMClient,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
)
from tutorgen.llm.fixture import FixtureSynthesizer
from tutorgen.llm.synthesizer import (
    BoundedSynthesizer,
    CancellationToken,
    ContentSynthesizer,
    RetryPolicy,
    call_with_retry,
    first_error,
)

__all__ = [
    "BoundedSynthesizer",
    "CancellationToken",
    "ContentSynthesizer",
    "FixtureSynthesizer",
    "LLMAuthenticationError",
    "LLMClient",
    "LLMConnectionError",
    "LLMError",
    "LLMRateLimitError",
    "RetryPolicy",
    "call_with_retry",
    "first_error",
]
