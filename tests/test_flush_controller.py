import asyncio

import pytest

from ikpa_backend.config import TracingSettings
from ikpa_backend.modules.observability.tracing.exceptions import FlushException
from ikpa_backend.modules.observability.tracing.flush_controller import (
    MAX_BACKOFF_DELAY_MS,
    FlushController,
    RetryPolicy,
    calculate_exponential_backoff,
)


def test_exponential_backoff_without_jitter():
    delays = [calculate_exponential_backoff(a, 1000, rng=lambda: 0.0) for a in (1, 2, 3, 4)]

    assert delays == [1000, 2000, 4000, 8000]


def test_backoff_jitter_is_at_most_thirty_percent():
    assert calculate_exponential_backoff(2, 1000, rng=lambda: 0.999999) == pytest.approx(2600, abs=0.01)


def test_backoff_is_capped():
    assert calculate_exponential_backoff(10, 1000, rng=lambda: 0.0) == MAX_BACKOFF_DELAY_MS
    assert calculate_exponential_backoff(6, 1000, rng=lambda: 0.99) == MAX_BACKOFF_DELAY_MS


def test_backoff_increases_in_expectation():
    def mean_delay(attempt):
        return sum(calculate_exponential_backoff(attempt, 500) for _ in range(500)) / 500

    means = [mean_delay(a) for a in (1, 2, 3, 4)]
    assert means == sorted(means)
    assert means[0] < means[-1]


def test_constant_backoff_keeps_base_delay():
    for attempt in (1, 2, 5, 9):
        delay = calculate_exponential_backoff(attempt, 1000, exponential_backoff=False)
        assert 1000 <= delay <= 1300


def test_policy_resolves_unset_fields_from_settings():
    settings = TracingSettings(flush_retry_attempts=4, flush_retry_delay_ms=250, flush_timeout_ms=900)

    resolved = RetryPolicy(retry_delay_ms=0).resolve(settings)

    assert resolved.retry_attempts == 4
    assert resolved.retry_delay_ms == 0
    assert resolved.timeout_ms == 900


@pytest.mark.asyncio
async def test_flush_retries_until_success(backend, sleep):
    backend.flush_outcomes = [RuntimeError("boom"), RuntimeError("boom"), None]
    controller = FlushController(backend, TracingSettings(), sleep=sleep, rng=lambda: 0.0)

    outcome = await controller.flush(RetryPolicy(retry_attempts=3))

    assert backend.flush_calls == 3
    assert outcome.attempts == 3
    assert outcome.succeeded
    assert outcome.error_message is None
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_flush_is_swallowed_by_default(backend, sleep, caplog):
    backend.flush_outcomes = [RuntimeError("down")] * 3
    controller = FlushController(backend, TracingSettings(), sleep=sleep)

    outcome = await controller.flush(RetryPolicy(retry_attempts=3, retry_delay_ms=0))

    assert backend.flush_calls == 3
    assert not outcome.succeeded
    assert isinstance(outcome.error, RuntimeError)
    assert outcome.error_message == "down"
    assert any(r.levelname == "ERROR" for r in caplog.records)


@pytest.mark.asyncio
async def test_exhausted_flush_raises_when_opted_in(backend, sleep):
    backend.flush_outcomes = [RuntimeError("down")] * 2
    controller = FlushController(backend, TracingSettings(), sleep=sleep)

    with pytest.raises(FlushException) as exc_info:
        await controller.flush(RetryPolicy(retry_attempts=2, throw_on_error=True))

    assert exc_info.value.attempts == 2
    assert exc_info.value.error == "down"


@pytest.mark.asyncio
async def test_each_flush_reports_its_own_outcome(backend, sleep):
    backend.flush_outcomes = [RuntimeError("down"), None]
    controller = FlushController(backend, TracingSettings(), sleep=sleep)

    failed = await controller.flush(RetryPolicy(retry_attempts=1))
    succeeded = await controller.flush(RetryPolicy(retry_attempts=1))

    assert failed.error_message == "down"
    assert succeeded.succeeded
    assert succeeded.attempts == 1


class GatedClient:
    """Fails the first flush only after the second one has finished."""

    def __init__(self):
        self.second_done = asyncio.Event()
        self.calls = 0

    async def flush(self):
        self.calls += 1
        if self.calls == 1:
            await self.second_done.wait()
            raise RuntimeError("first failed")
        self.second_done.set()


@pytest.mark.asyncio
async def test_concurrent_flushes_do_not_share_outcomes():
    controller = FlushController(GatedClient(), TracingSettings())
    policy = RetryPolicy(retry_attempts=1, timeout_ms=1000)

    first, second = await asyncio.gather(controller.flush(policy), controller.flush(policy))

    assert first.error_message == "first failed"
    assert second.succeeded
    assert second.error is None


class SlowClient:
    def __init__(self, seconds):
        self.seconds = seconds
        self.cancelled = False

    async def flush(self):
        try:
            await asyncio.sleep(self.seconds)
        except asyncio.CancelledError:
            self.cancelled = True
            raise


@pytest.mark.asyncio
async def test_timeout_counts_as_failure_and_raises():
    client = SlowClient(1.0)
    controller = FlushController(client, TracingSettings())

    with pytest.raises(FlushException) as exc_info:
        await controller.flush(RetryPolicy(timeout_ms=50, retry_attempts=1, throw_on_error=True))

    assert exc_info.value.attempts == 1
    assert "timed out" in exc_info.value.error
    assert client.cancelled is True


@pytest.mark.asyncio
async def test_constant_backoff_between_attempts(backend, sleep):
    backend.flush_outcomes = [RuntimeError("x")] * 3
    controller = FlushController(backend, TracingSettings(), sleep=sleep, rng=lambda: 0.0)

    await controller.flush(RetryPolicy(retry_attempts=3, retry_delay_ms=200, exponential_backoff=False))

    assert sleep.delays == [0.2, 0.2]
