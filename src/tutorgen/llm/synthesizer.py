"""Content synthesizer capability, retry policy and concurrency bounds.

Pipeline stages never talk to a provider directly. They receive an object
satisfying ContentSynthesizer: the LiteLLM client in production, the fixture
double in tests. The orchestrator wraps it in a BoundedSynthesizer so that
every stage shares one concurrency cap and one cancellation token.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, TypeVar, runtime_checkable

from tutorgen.errors import JobCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ContentSynthesizer(Protocol):
    """Anything that turns a prompt into generated text."""

    @property
    def deterministic(self) -> bool:
        """True when the same prompt always yields the same text."""
        ...

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str: ...


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Attributes:
        max_attempts: Total attempts, including the first one.
        backoff_seconds: Delay before the second attempt.
        multiplier: Factor applied to the delay after each failure.
        max_backoff: Upper bound on any single delay.
    """

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    multiplier: float = 2.0
    max_backoff: float = 8.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be non-negative, got {self.backoff_seconds}")

    def delays(self) -> list[float]:
        """Delays slept between consecutive attempts."""
        delays = []
        delay = self.backoff_seconds
        for _ in range(self.max_attempts - 1):
            delays.append(min(delay, self.max_backoff))
            delay *= self.multiplier
        return delays


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...],
    give_up_on: tuple[type[BaseException], ...] = (),
    description: str = "operation",
) -> T:
    """Run an async operation, retrying failures with backoff.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Attempt count and backoff schedule.
        retry_on: Exception types that trigger another attempt.
        give_up_on: Subclasses of retry_on that are re-raised immediately.
        description: Label used in log messages.

    Returns:
        The first successful result.

    Raises:
        The last exception once attempts are exhausted.
    """
    delays = policy.delays()
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except give_up_on:
            raise
        except retry_on as e:
            if attempt == policy.max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise
            delay = delays[attempt - 1]
            logger.warning(
                f"{description} failed (attempt {attempt}/{policy.max_attempts}): {e}; "
                f"retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


class CancellationToken:
    """Job-level cancellation flag shared by every in-flight call."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation."""
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise JobCancelled if cancellation was requested."""
        if self._event.is_set():
            raise JobCancelled(f"Job cancelled: {self.reason}")

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        await self._event.wait()


class BoundedSynthesizer:
    """Wraps a synthesizer with a concurrency cap and a cancellation check.

    The cap bounds in-flight generative calls for a whole job, so it follows
    the provider's rate limit rather than the CPU count.
    """

    def __init__(
        self,
        inner: ContentSynthesizer,
        limit: int,
        token: CancellationToken | None = None,
    ):
        """Initialize the wrapper.

        Args:
            inner: Synthesizer that performs the calls.
            limit: Maximum concurrent calls.
            token: Cancellation token checked before and after each call.
        """
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        self.inner = inner
        self.limit = limit
        self.token = token or CancellationToken()
        self._semaphore = asyncio.Semaphore(limit)
        self.in_flight = 0
        self.peak_in_flight = 0

    @property
    def deterministic(self) -> bool:
        return self.inner.deterministic

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        self.token.raise_if_cancelled()
        async with self._semaphore:
            self.token.raise_if_cancelled()
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                result = await self.inner.generate(
                    prompt,
                    system_prompt=system_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            finally:
                self.in_flight -= 1
        self.token.raise_if_cancelled()
        return result


def first_error(group: BaseExceptionGroup) -> BaseException:
    """Most significant leaf of an exception group raised by a TaskGroup.

    A JobCancelled leaf wins over any other failure.
    """
    leaves: list[BaseException] = []
    pending: list[BaseException] = [group]
    while pending:
        exc = pending.pop(0)
        if isinstance(exc, BaseExceptionGroup):
            pending[:0] = list(exc.exceptions)
        else:
            leaves.append(exc)
    for exc in leaves:
        if isinstance(exc, JobCancelled):
            return exc
    return leaves[0]
