import asyncio
from typing import Any, List
from unittest.mock import MagicMock

import pytest

from hypercli.domain.errors import (
    CircuitOpenError,
    OperationTimeoutError,
    RemoteCallError,
    RetryExhaustedError,
    TransientError,
)
from hypercli.domain.interfaces.observer import DiagnosticObserver
from hypercli.domain.models.resilience import CircuitState, ReasonCode, RetryPolicy, TransportFailure
from hypercli.infrastructure.resilience.api_retry import RetryExecutor
from hypercli.infrastructure.resilience.circuit_breaker import CircuitBreakerRegistry


class FixedRng:
    """Jitter source that always returns the same factor."""

    def __init__(self, factor: float = 1.0):
        self.factor = factor

    def uniform(self, low: float, high: float) -> float:
        return min(max(self.factor, low), high)


class ScriptedOperation:
    """Coroutine factory that raises or returns the scripted outcomes in order."""

    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]

        async def run():
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return run()


@pytest.fixture
def breakers(clock):
    return CircuitBreakerRegistry(failure_threshold=3, cooldown_ms=60_000, clock=clock)


@pytest.fixture
def observer():
    return MagicMock(spec=DiagnosticObserver)


@pytest.fixture
def executor(breakers, fake_sleep, observer):
    return RetryExecutor(
        breakers=breakers,
        policy=RetryPolicy(max_retries=3, base_delay_ms=1000, max_delay_ms=30_000),
        observer=observer,
        sleep=fake_sleep,
        rng=FixedRng(1.0),
    )


def emitted(observer: MagicMock) -> List[str]:
    return [c.args[0].event for c in observer.emit.call_args_list]


def test_success_on_first_attempt(executor: RetryExecutor, fake_sleep, breakers):
    op = ScriptedOperation(["ok"])
    assert asyncio.run(executor.execute(op, target="search")) == "ok"
    assert op.calls == 1
    assert fake_sleep.calls == []
    assert breakers.get("search").state is CircuitState.CLOSED


def test_retries_transient_failures_then_succeeds(executor: RetryExecutor, fake_sleep):
    op = ScriptedOperation([TransportFailure(status=503), TransportFailure(status=502), "ok"])
    assert asyncio.run(executor.execute(op)) == "ok"
    assert op.calls == 3
    assert fake_sleep.calls == [1.0, 2.0]


def test_never_exceeds_max_retries(executor: RetryExecutor, fake_sleep):
    op = ScriptedOperation([TransportFailure(status=503)])
    with pytest.raises(RetryExhaustedError) as exc_info:
        asyncio.run(executor.execute(op))
    assert op.calls == 4
    assert exc_info.value.attempts == 4
    assert exc_info.value.classification.reason is ReasonCode.SERVICE_UNAVAILABLE
    assert isinstance(exc_info.value.last_error, TransportFailure)
    assert fake_sleep.calls == [1.0, 2.0, 4.0]


def test_non_retryable_failure_is_raised_immediately(executor: RetryExecutor, fake_sleep):
    op = ScriptedOperation([TransportFailure(status=404, message="missing")])
    with pytest.raises(RemoteCallError) as exc_info:
        asyncio.run(executor.execute(op))
    assert not isinstance(exc_info.value, (TransientError, RetryExhaustedError))
    assert op.calls == 1
    assert fake_sleep.calls == []


def test_retryable_failure_without_retries_is_transient(executor: RetryExecutor):
    op = ScriptedOperation([TransportFailure(status=503)])
    with pytest.raises(TransientError):
        asyncio.run(executor.execute(op, policy=RetryPolicy(max_retries=0)))
    assert op.calls == 1


def test_rate_limit_waits_for_retry_after(executor: RetryExecutor, fake_sleep, observer):
    op = ScriptedOperation([TransportFailure(status=429, headers={"Retry-After": "2"}), "ok"])
    assert asyncio.run(executor.execute(op)) == "ok"
    assert fake_sleep.calls == [2.0]
    assert emitted(observer) == ["retry_attempt", "rate_limited", "retry", "retry_attempt"]
    retry_event = observer.emit.call_args_list[2].args[0]
    assert retry_event.delay_ms == 2000
    assert retry_event.reason == "rate_limited"


def test_retry_after_is_clamped_to_max_delay(executor: RetryExecutor, fake_sleep):
    op = ScriptedOperation([TransportFailure(status=429, retry_after_ms=120_000), "ok"])
    policy = RetryPolicy(max_retries=1, base_delay_ms=100, max_delay_ms=5000)
    asyncio.run(executor.execute(op, policy=policy))
    assert fake_sleep.calls == [5.0]


@pytest.mark.parametrize("factor", [0.5, 1.0, 1.5])
def test_delay_never_exceeds_max(breakers, fake_sleep, factor):
    executor = RetryExecutor(breakers=breakers, sleep=fake_sleep, rng=FixedRng(factor))
    policy = RetryPolicy(max_retries=10, base_delay_ms=1000, max_delay_ms=8000)
    delays = [executor.compute_delay_ms(attempt, policy) for attempt in range(1, 11)]
    assert all(0 <= d <= 8000 for d in delays)
    assert delays[0] == int(1000 * factor)


def test_three_failures_open_circuit_and_block_fourth_call(executor: RetryExecutor, breakers):
    op = ScriptedOperation([TransportFailure(status=503)])
    no_retries = RetryPolicy(max_retries=0)
    for _ in range(3):
        with pytest.raises(TransientError):
            asyncio.run(executor.execute(op, policy=no_retries, target="search"))

    with pytest.raises(CircuitOpenError) as exc_info:
        asyncio.run(executor.execute(op, policy=no_retries, target="search"))
    assert op.calls == 3
    assert exc_info.value.target == "search"
    assert breakers.get("search").state is CircuitState.OPEN


def test_retries_of_one_call_count_as_one_breaker_failure(executor: RetryExecutor, breakers):
    op = ScriptedOperation([TransportFailure(status=503)])
    with pytest.raises(RetryExhaustedError):
        asyncio.run(executor.execute(op, target="search"))
    assert breakers.get("search").failure_count == 1
    assert breakers.get("search").state is CircuitState.CLOSED


def test_half_open_probe_keeps_its_retries(executor: RetryExecutor, breakers, clock):
    breaker = breakers.get("search")
    for _ in range(3):
        breaker.record_failure()
    clock.advance(60)

    op = ScriptedOperation([TransportFailure(status=503), "ok"])
    assert asyncio.run(executor.execute(op, target="search")) == "ok"
    assert op.calls == 2
    assert breaker.state is CircuitState.CLOSED


def test_failed_probe_reopens_circuit(executor: RetryExecutor, breakers, clock):
    breaker = breakers.get("search")
    for _ in range(3):
        breaker.record_failure()
    clock.advance(60)

    op = ScriptedOperation([TransportFailure(status=400)])
    with pytest.raises(RemoteCallError):
        asyncio.run(executor.execute(op, target="search"))
    assert breaker.state is CircuitState.OPEN


def test_timeout_aborts_and_raises(executor: RetryExecutor):
    async def slow():
        await asyncio.sleep(5)
        return "late"

    with pytest.raises(OperationTimeoutError):
        asyncio.run(executor.execute(slow, timeout_s=0.01, context="search 'tasks'"))


def test_timed_out_probe_counts_as_failure(executor: RetryExecutor, breakers, clock):
    breaker = breakers.get("search")
    for _ in range(3):
        breaker.record_failure()
    clock.advance(60)

    async def slow():
        await asyncio.sleep(5)

    with pytest.raises(OperationTimeoutError):
        asyncio.run(executor.execute(slow, target="search", timeout_s=0.01))
    assert breaker.state is CircuitState.OPEN
    assert not breaker.probe_in_flight


def test_failing_observer_does_not_break_execution(breakers, fake_sleep):
    observer = MagicMock(spec=DiagnosticObserver)
    observer.emit.side_effect = RuntimeError("sink down")
    executor = RetryExecutor(breakers=breakers, observer=observer, sleep=fake_sleep)
    assert asyncio.run(executor.execute(ScriptedOperation(["ok"]))) == "ok"


def test_execute_batch_collects_outcomes(executor: RetryExecutor):
    ops = [
        ScriptedOperation(["a"]),
        ScriptedOperation([TransportFailure(status=400)]),
        ScriptedOperation(["c"]),
    ]
    outcomes = asyncio.run(executor.execute_batch(ops, concurrency=2, target="pages"))
    assert [o.success for o in outcomes] == [True, False, True]
    assert outcomes[0].value == "a"
    assert outcomes[2].value == "c"
    assert isinstance(outcomes[1].error, RemoteCallError)
