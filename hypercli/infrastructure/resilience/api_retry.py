"""Service for executing remote calls with automatic retries.

Implements exponential backoff with jitter for transient errors like rate
limits (429) or temporary server issues (5xx), honoring server-supplied
Retry-After delays, and consults a per-target circuit breaker before every
attempt so a failing target is not hammered.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from hypercli.domain.errors import (
    CircuitOpenError,
    OperationTimeoutError,
    RemoteCallError,
    RetryExhaustedError,
    TransientError,
)
from hypercli.domain.events.diagnostic_events import (
    DiagnosticEvent,
    RateLimited,
    RetryAttempt,
    RetryExhausted,
    RetryScheduled,
)
from hypercli.domain.interfaces.observer import DiagnosticObserver, NullObserver, emit_safely
from hypercli.domain.interfaces.remote import RemoteOperation
from hypercli.domain.models.resilience import (
    FailureClassification,
    ReasonCode,
    RetryContext,
    RetryPolicy,
)
from hypercli.infrastructure.resilience.circuit_breaker import CircuitBreakerRegistry
from hypercli.infrastructure.resilience.error_classifier import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_CONCURRENCY = 5


@dataclass(frozen=True)
class BatchOutcome(Generic[T]):
    """Result of one operation in a batch: a value or the error it ended with."""
    success: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None


class RetryExecutor:
    """Runs remote operations under backoff, classification and circuit breaking."""

    def __init__(
        self,
        breakers: Optional[CircuitBreakerRegistry] = None,
        policy: Optional[RetryPolicy] = None,
        observer: Optional[DiagnosticObserver] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        classifier: Callable[[BaseException], FailureClassification] = classify_error,
    ):
        """Initializes the RetryExecutor.

        Args:
            breakers: Registry supplying one breaker per target.
            policy: Default retry policy when ``execute`` is not given one.
            observer: Receives retry diagnostics; a no-op observer by default.
            sleep: Coroutine used for backoff delays (seconds).
            rng: Random source for jitter.
            classifier: Maps a raised exception to a FailureClassification.
        """
        self.breakers = breakers or CircuitBreakerRegistry()
        self.policy = policy or RetryPolicy()
        self.observer = observer or NullObserver()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._classify = classifier

        logger.debug(
            f"RetryExecutor initialized: max_retries={self.policy.max_retries}, "
            f"base_delay={self.policy.base_delay_ms}ms, max_delay={self.policy.max_delay_ms}ms"
        )

    def _emit(self, event: DiagnosticEvent) -> None:
        emit_safely(self.observer, event)

    def compute_delay_ms(
        self,
        attempt: int,
        policy: Optional[RetryPolicy] = None,
        retry_after_ms: Optional[int] = None,
    ) -> int:
        """Backoff before the retry that follows failed ``attempt``.

        ``min(max_delay, base_delay * 2**(attempt-1))`` scaled by a random jitter
        factor, unless the server supplied a delay. Never exceeds ``max_delay_ms``.
        """
        policy = policy or self.policy
        if retry_after_ms is not None:
            return int(min(max(0, retry_after_ms), policy.max_delay_ms))
        exponential = min(policy.max_delay_ms, policy.base_delay_ms * (2 ** (attempt - 1)))
        jittered = exponential * self._rng.uniform(policy.jitter_min, policy.jitter_max)
        return int(min(policy.max_delay_ms, max(0.0, jittered)))

    async def execute(
        self,
        operation: RemoteOperation[T],
        policy: Optional[RetryPolicy] = None,
        target: str = "default",
        context: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> T:
        """Executes an async operation with retries behind the target's breaker.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt.
            policy: Retry policy for this call (defaults to the executor's).
            target: Logical target; selects the circuit breaker.
            context: Free-text label carried in diagnostics.
            timeout_s: Overall deadline; aborts the in-flight attempt when hit.

        Returns:
            The operation's result.

        Raises:
            CircuitOpenError: The breaker refused the attempt; the operation was not called.
            RetryExhaustedError: Retries were attempted and the last one failed.
            TransientError: A retryable failure with no retries allowed.
            RemoteCallError: A non-retryable failure on the first attempt.
            OperationTimeoutError: ``timeout_s`` elapsed.
        """
        if timeout_s is None:
            return await self._execute(operation, policy or self.policy, target, context)
        try:
            return await asyncio.wait_for(
                self._execute(operation, policy or self.policy, target, context), timeout_s
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Operation on '{target}' timed out after {timeout_s}s")
            raise OperationTimeoutError(timeout_s, context or target) from e

    async def _execute(
        self,
        operation: RemoteOperation[T],
        policy: RetryPolicy,
        target: str,
        context: Optional[str],
    ) -> T:
        breaker = self.breakers.get(target)
        holding_probe = False
        attempt = 0

        try:
            while True:
                attempt += 1
                # An execution that owns the half-open probe keeps it for its own retries
                if not holding_probe:
                    if not breaker.allow():
                        logger.warning(f"Circuit open for '{target}'; refusing attempt {attempt}.")
                        raise CircuitOpenError(target, breaker.retry_in_ms())
                    holding_probe = breaker.probe_in_flight

                self._emit(RetryAttempt(
                    attempt=attempt, max_retries=policy.max_retries, target=target, context=context
                ))
                try:
                    result = await operation()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    classification = self._classify(e)
                    retry_context = RetryContext(
                        attempt=attempt,
                        max_retries=policy.max_retries,
                        base_delay_ms=policy.base_delay_ms,
                        max_delay_ms=policy.max_delay_ms,
                        reason=classification.reason,
                    )
                    if not classification.retryable or attempt > policy.max_retries:
                        breaker.record_failure()
                        holding_probe = False
                        raise self._terminal_error(e, retry_context, classification, target, context) from e

                    delay_ms = self.compute_delay_ms(attempt, policy, classification.retry_after_ms)
                    if classification.reason is ReasonCode.RATE_LIMITED:
                        self._emit(RateLimited(
                            attempt=attempt,
                            max_retries=policy.max_retries,
                            target=target,
                            retry_after_ms=classification.retry_after_ms,
                            context=context,
                        ))
                    self._emit(RetryScheduled(
                        attempt=attempt,
                        max_retries=policy.max_retries,
                        reason=classification.reason.value,
                        delay_ms=delay_ms,
                        target=target,
                        context=context,
                        status_code=classification.status_code,
                    ))
                    logger.warning(
                        f"Retryable error on '{target}' attempt {attempt}/{policy.max_retries + 1}: "
                        f"{classification.reason.value}. Waiting {delay_ms}ms..."
                    )
                    await self._sleep(delay_ms / 1000.0)
                    continue

                breaker.record_success()
                holding_probe = False
                if attempt > 1:
                    logger.info(f"Call on '{target}' succeeded on attempt {attempt}.")
                return result
        except asyncio.CancelledError:
            # A probe aborted by a timeout counts as a failed probe so the breaker cannot wedge
            if holding_probe:
                breaker.record_failure()
            raise

    def _terminal_error(
        self,
        error: Exception,
        retry_context: RetryContext,
        classification: FailureClassification,
        target: str,
        context: Optional[str],
    ) -> RemoteCallError:
        attempt = retry_context.attempt
        if attempt > 1 or classification.retryable:
            self._emit(RetryExhausted(
                attempt=attempt,
                max_retries=retry_context.max_retries,
                reason=classification.reason.value,
                target=target,
                context=context,
            ))
        error_context = {"target": target}
        if attempt > 1:
            logger.error(
                f"Max retries ({retry_context.max_retries}) reached for '{target}'. Last error: {error}"
            )
            return RetryExhaustedError(error, attempt, classification, context=error_context)
        if classification.retryable:
            return TransientError(
                f"Transient failure on '{target}' ({classification.reason.value}): {error}",
                classification,
                context=error_context,
            )
        logger.error(f"Non-retryable error on '{target}' ({classification.reason.value}): {error}")
        return RemoteCallError(
            f"Remote call to '{target}' failed ({classification.reason.value}): {error}",
            classification,
            context=error_context,
        )

    async def execute_batch(
        self,
        operations: Sequence[RemoteOperation[T]],
        policy: Optional[RetryPolicy] = None,
        target: str = "default",
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ) -> List[BatchOutcome[T]]:
        """Runs many operations with bounded concurrency, each under ``execute``.

        Failures do not stop the batch; each outcome records its own error.
        """
        semaphore = asyncio.Semaphore(max(1, concurrency))
        total = len(operations)

        async def run_one(index: int, operation: RemoteOperation[T]) -> BatchOutcome[T]:
            async with semaphore:
                try:
                    value = await self.execute(
                        operation, policy=policy, target=target, context=f"operation {index + 1}/{total}"
                    )
                except Exception as e:
                    return BatchOutcome(success=False, error=e)
                return BatchOutcome(success=True, value=value)

        return list(await asyncio.gather(*(run_one(i, op) for i, op in enumerate(operations))))
