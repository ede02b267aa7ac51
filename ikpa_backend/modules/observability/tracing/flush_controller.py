"""Flush buffered telemetry with bounded retries, backoff and a per-attempt timeout."""

import asyncio
import inspect
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

import async_timeout
from pydantic import BaseModel, ConfigDict, Field

from ikpa_backend.config import TracingSettings
from ..logging.structured_logger import get_logger
from .exceptions import FlushException

if TYPE_CHECKING:
    from .backend_client import TracingBackendClient

logger = get_logger("flush")

MAX_BACKOFF_DELAY_MS = 30000
JITTER_RATIO = 0.3


class RetryPolicy(BaseModel):
    """Per-call flush configuration.

    Unset fields are taken from TracingSettings when the flush runs.

    Attributes:
        retry_attempts: Total number of attempts (not retries after the first)
        retry_delay_ms: Base delay between attempts
        timeout_ms: Timeout for each individual attempt
        throw_on_error: Raise FlushException once every attempt failed
        exponential_backoff: Double the base delay on each attempt
    """

    model_config = ConfigDict(frozen=True)

    retry_attempts: Optional[int] = Field(default=None, ge=1)
    retry_delay_ms: Optional[int] = Field(default=None, ge=0)
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    throw_on_error: bool = False
    exponential_backoff: bool = True

    def resolve(self, settings: TracingSettings) -> "RetryPolicy":
        """Return a copy with every unset field filled from settings."""
        return self.model_copy(
            update={
                "retry_attempts": self.retry_attempts or settings.flush_retry_attempts,
                "retry_delay_ms": (
                    self.retry_delay_ms if self.retry_delay_ms is not None else settings.flush_retry_delay_ms
                ),
                "timeout_ms": self.timeout_ms or settings.flush_timeout_ms,
            }
        )


@dataclass(frozen=True)
class FlushOutcome:
    """Result of a single flush call."""

    attempts: int
    error: Optional[BaseException] = None
    timeout_ms: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return _describe(self.error, self.timeout_ms)


def calculate_exponential_backoff(
    attempt: int,
    retry_delay_ms: int,
    exponential_backoff: bool = True,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay (ms) to wait after the given failed attempt.

    base = retry_delay_ms * 2^(attempt-1), or retry_delay_ms when
    exponential_backoff is off. Up to 30% random jitter is added on top so
    clients do not retry in lockstep, and the result is capped at
    MAX_BACKOFF_DELAY_MS.

    Args:
        attempt: 1-based number of the attempt that just failed
        retry_delay_ms: Base delay
        exponential_backoff: Grow the base delay with each attempt
        rng: Uniform [0, 1) source
    """
    if exponential_backoff:
        base = retry_delay_ms * (2 ** (max(attempt, 1) - 1))
    else:
        base = retry_delay_ms
    jitter = rng() * JITTER_RATIO * base
    return min(base + jitter, MAX_BACKOFF_DELAY_MS)


class FlushController:
    """Drains the backend client's buffer with retry and timeout.

    Example:
        controller = FlushController(client, settings)
        await controller.flush(RetryPolicy(retry_attempts=5, throw_on_error=True))
    """

    def __init__(
        self,
        client: "TracingBackendClient",
        settings: TracingSettings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        """Initialize flush controller.

        Args:
            client: Backend client whose flush() is retried
            settings: Source of default retry/timeout values
            sleep: Async sleep taking seconds, injectable for tests
            rng: Uniform [0, 1) source used for jitter
        """
        self.client = client
        self.settings = settings
        self._sleep = sleep
        self._rng = rng

    async def _flush_once(self, timeout_ms: int) -> None:
        # The timeout cancels the awaited flush; a late result is discarded
        async with async_timeout.timeout(timeout_ms / 1000):
            result = self.client.flush()
            if inspect.isawaitable(result):
                await result

    async def flush(self, policy: Optional[RetryPolicy] = None) -> FlushOutcome:
        """Flush, retrying failed or timed-out attempts.

        Returns:
            The outcome of this call; concurrent flushes never share it

        Raises:
            FlushException: Only when every attempt failed and
                ``policy.throw_on_error`` is set
        """
        policy = (policy or RetryPolicy()).resolve(self.settings)
        attempts = policy.retry_attempts

        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                await self._flush_once(policy.timeout_ms)
                if attempt > 1:
                    logger.info(f"Flush succeeded on attempt {attempt}/{attempts}", attempt=attempt)
                return FlushOutcome(attempts=attempt, timeout_ms=policy.timeout_ms)
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(
                    f"Flush attempt {attempt}/{attempts} failed: timed out after {policy.timeout_ms}ms",
                    attempt=attempt,
                    timeout_ms=policy.timeout_ms,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Flush attempt {attempt}/{attempts} failed: {e}",
                    attempt=attempt,
                    error_type=type(e).__name__,
                )

            if attempt < attempts:
                delay_ms = calculate_exponential_backoff(
                    attempt,
                    policy.retry_delay_ms,
                    exponential_backoff=policy.exponential_backoff,
                    rng=self._rng,
                )
                await self._sleep(delay_ms / 1000)

        outcome = FlushOutcome(attempts=attempts, error=last_error, timeout_ms=policy.timeout_ms)
        error_message = outcome.error_message
        logger.error(
            f"Failed to flush traces after {attempts} attempts: {error_message}",
            attempts=attempts,
        )

        if policy.throw_on_error:
            raise FlushException(attempts=attempts, error=error_message) from last_error
        return outcome


def _describe(error: Optional[BaseException], timeout_ms: Optional[int]) -> str:
    if error is None:
        return "Unknown error"
    if isinstance(error, asyncio.TimeoutError):
        return f"Flush timed out after {timeout_ms}ms"
    return str(error) or type(error).__name__
