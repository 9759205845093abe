"""Per-target circuit breaker.

Fails fast after repeated failures so a struggling endpoint is not hammered.
State lives only for the current process.

    CLOSED --(threshold consecutive failures)--> OPEN
    OPEN --(cooldown elapsed)--> HALF_OPEN
    HALF_OPEN --(probe succeeds)--> CLOSED
    HALF_OPEN --(probe fails)--> OPEN (cooldown restarts, optionally longer)
"""

import logging
import time
from typing import Callable, Dict, Optional

from hypercli.domain.models.resilience import CircuitSnapshot, CircuitState

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_COOLDOWN_MS = 60000


class CircuitBreaker:
    """Failure-tracking state machine gating calls to one logical target."""

    def __init__(
        self,
        target: str = "default",
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_ms: float = DEFAULT_COOLDOWN_MS,
        backoff_factor: float = 1.0,
        max_cooldown_ms: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the breaker in the CLOSED state.

        Args:
            target: Name of the guarded target (for logs and errors).
            failure_threshold: Consecutive failures that open the breaker.
            cooldown_ms: Time the breaker stays OPEN before allowing a probe.
            backoff_factor: Multiplier applied to the cooldown each time a probe fails.
            max_cooldown_ms: Upper bound for the grown cooldown.
            clock: Monotonic clock in seconds.
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1.0")
        self.target = target
        self.failure_threshold = failure_threshold
        self.base_cooldown_ms = float(cooldown_ms)
        self.backoff_factor = backoff_factor
        self.max_cooldown_ms = float(max_cooldown_ms) if max_cooldown_ms is not None else None
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._cooldown_ms = self.base_cooldown_ms
        self._probe_in_flight = False

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _refresh(self) -> None:
        """Moves OPEN to HALF_OPEN once the cooldown has elapsed."""
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if self._now_ms() - self._opened_at >= self._cooldown_ms:
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False
                logger.info(f"Circuit '{self.target}' half-open; next call is a probe.")

    @property
    def state(self) -> CircuitState:
        self._refresh()
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def probe_in_flight(self) -> bool:
        return self._probe_in_flight

    def allow(self) -> bool:
        """Decides whether a call may proceed.

        Returns True when CLOSED, or when HALF_OPEN with no probe running (the
        caller then owns the probe). Never blocks and never counts as a failure.
        """
        self._refresh()
        if self._state is CircuitState.CLOSED:
            return True
        if self._state is CircuitState.HALF_OPEN and not self._probe_in_flight:
            self._probe_in_flight = True
            return True
        return False

    def record_success(self) -> None:
        """Reports a successful call."""
        self._refresh()
        if self._state is CircuitState.HALF_OPEN:
            logger.info(f"Circuit '{self.target}' probe succeeded; closing.")
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._cooldown_ms = self.base_cooldown_ms
        self._probe_in_flight = False

    def record_failure(self) -> None:
        """Reports a failed call."""
        self._refresh()
        if self._state is CircuitState.HALF_OPEN:
            self._cooldown_ms = self._cooldown_ms * self.backoff_factor
            if self.max_cooldown_ms is not None:
                self._cooldown_ms = min(self._cooldown_ms, self.max_cooldown_ms)
            self._open()
            logger.warning(
                f"Circuit '{self.target}' probe failed; reopening for {self._cooldown_ms:.0f}ms."
            )
            return

        self._failure_count += 1
        if self._state is CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._open()
            logger.warning(
                f"Circuit '{self.target}' opened after {self._failure_count} consecutive failures."
            )

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._now_ms()
        self._probe_in_flight = False

    def retry_in_ms(self) -> Optional[float]:
        """Milliseconds until a probe will be allowed, or None unless OPEN."""
        self._refresh()
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return None
        return max(0.0, self._opened_at + self._cooldown_ms - self._now_ms())

    def reset(self) -> None:
        """Forces the breaker back to CLOSED."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._cooldown_ms = self.base_cooldown_ms
        self._probe_in_flight = False

    def snapshot(self) -> CircuitSnapshot:
        self._refresh()
        return CircuitSnapshot(
            target=self.target,
            state=self._state,
            failure_count=self._failure_count,
            opened_at=self._opened_at,
            probe_in_flight=self._probe_in_flight,
            cooldown_ms=self._cooldown_ms,
        )


class CircuitBreakerRegistry:
    """Hands out one breaker per target so failures on one never gate another."""

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_ms: float = DEFAULT_COOLDOWN_MS,
        backoff_factor: float = 1.0,
        max_cooldown_ms: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_ms = cooldown_ms
        self.backoff_factor = backoff_factor
        self.max_cooldown_ms = max_cooldown_ms
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, target: str) -> CircuitBreaker:
        breaker = self._breakers.get(target)
        if breaker is None:
            breaker = CircuitBreaker(
                target=target,
                failure_threshold=self.failure_threshold,
                cooldown_ms=self.cooldown_ms,
                backoff_factor=self.backoff_factor,
                max_cooldown_ms=self.max_cooldown_ms,
                clock=self._clock,
            )
            self._breakers[target] = breaker
            logger.debug(f"Created circuit breaker for target '{target}'")
        return breaker

    def snapshots(self) -> Dict[str, CircuitSnapshot]:
        return {name: breaker.snapshot() for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
