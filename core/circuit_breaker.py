"""
Per-model circuit breaker.

Every (service, provider, model) triple gets its own breaker so one
throttled Polly engine or overloaded Anthropic model stops receiving
traffic without affecting the other tiers.

    CLOSED     failures counted; opens at failure_threshold
    OPEN       every request rejected until recovery_timeout has elapsed
               since the last failure (checked lazily on the next request)
    HALF_OPEN  half_open_max_calls trial requests admitted; a success
               closes the breaker, a failure reopens it and restarts the timer

A success in any state resets the consecutive failure count.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout: float = 60.0  # seconds after the last failure
    half_open_max_calls: int = 1
    timeout: Optional[float] = None  # per-call timeout used by call()
    excluded_exceptions: tuple = ()  # never counted as failures


@dataclass
class CircuitBreakerStats:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0  # consecutive
    half_open_calls: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    state_changed_at: float = 0.0
    total_calls: int = 0
    total_failures: int = 0
    total_successes: int = 0
    rejected_calls: int = 0


class CircuitBreakerOpen(Exception):
    """The breaker refused a request."""

    def __init__(self, service_name: str, retry_after: float):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(f"{service_name} is unavailable (circuit open), next trial in {retry_after:.1f}s")


class CircuitBreaker:
    """
    Usage:
        breaker = CircuitBreaker("audio:polly:generative", CircuitBreakerConfig(failure_threshold=3))

        await breaker.before_call()          # raises CircuitBreakerOpen
        try:
            response = await provider.invoke(params)
        except Exception as e:
            await breaker.record_failure(e)
            raise
        await breaker.record_success()

    call(), `async with breaker:` and `@breaker` wrap the same sequence.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = asyncio.Lock()
        self.stats = CircuitBreakerStats(state_changed_at=clock())

    @property
    def state(self) -> CircuitState:
        return self.stats.state

    @property
    def is_closed(self) -> bool:
        return self.state is CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state is CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self.state is CircuitState.HALF_OPEN

    # ------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------

    def _seconds_until_trial(self) -> float:
        last = self.stats.last_failure_time
        if last is None:
            return 0.0
        return max(0.0, self.config.recovery_timeout - (self._clock() - last))

    def _move(self, state: CircuitState):
        previous = self.stats.state
        if previous is state:
            return
        self.stats.state = state
        self.stats.state_changed_at = self._clock()
        self.stats.half_open_calls = 0
        log = logger.warning if state is CircuitState.OPEN else logger.info
        log(f"Circuit breaker {self.name}: {previous.value} -> {state.value}")

    def _gate(self, consume: bool) -> Optional[float]:
        """
        Decide whether a request may proceed. Returns None when admitted,
        otherwise the seconds until the next trial. Must hold the lock.
        """
        if self.stats.state is CircuitState.OPEN:
            wait = self._seconds_until_trial()
            if wait > 0:
                return wait
            self._move(CircuitState.HALF_OPEN)

        if self.stats.state is CircuitState.HALF_OPEN:
            if self.stats.half_open_calls >= self.config.half_open_max_calls:
                return self.config.recovery_timeout
            if consume:
                self.stats.half_open_calls += 1

        return None

    async def allows_request(self) -> bool:
        """Gate check without taking the half-open trial slot."""
        async with self._lock:
            return self._gate(consume=False) is None

    async def before_call(self):
        async with self._lock:
            self.stats.total_calls += 1
            wait = self._gate(consume=True)
            if wait is not None:
                self.stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, wait)

    # ------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------

    async def record_success(self):
        async with self._lock:
            self.stats.total_successes += 1
            self.stats.last_success_time = self._clock()
            self.stats.failure_count = 0
            self._move(CircuitState.CLOSED)

    async def record_failure(self, error: Optional[BaseException] = None):
        if isinstance(error, self.config.excluded_exceptions):
            return

        async with self._lock:
            stats = self.stats
            stats.failure_count += 1
            stats.total_failures += 1
            stats.last_failure_time = self._clock()

            if stats.state is CircuitState.HALF_OPEN or stats.failure_count >= self.config.failure_threshold:
                self._move(CircuitState.OPEN)

            logger.debug(
                f"Circuit breaker {self.name} recorded failure "
                f"{stats.failure_count}/{self.config.failure_threshold}: {error}"
            )

    # ------------------------------------------------------------
    # Wrappers
    # ------------------------------------------------------------

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Run an async callable behind the breaker (honours config.timeout)."""
        await self.before_call()
        try:
            coro = func(*args, **kwargs)
            if self.config.timeout is not None:
                result = await asyncio.wait_for(coro, timeout=self.config.timeout)
            else:
                result = await coro
        except Exception as e:
            await self.record_failure(e)
            raise
        await self.record_success()
        return result

    async def __aenter__(self):
        await self.before_call()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            await self.record_success()
        elif issubclass(exc_type, Exception):
            await self.record_failure(exc_val)
        return False

    def __call__(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def guarded(*args, **kwargs) -> T:
            return await self.call(func, *args, **kwargs)

        return guarded

    # ------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------

    def reset(self):
        self.stats = CircuitBreakerStats(state_changed_at=self._clock())
        logger.info(f"Circuit breaker {self.name} reset")

    def force_open(self):
        self.stats.last_failure_time = self._clock()
        self._move(CircuitState.OPEN)

    def get_status(self) -> dict[str, Any]:
        stats = self.stats
        return {
            "model": self.name,
            "state": stats.state.value,
            "failure_count": stats.failure_count,
            "threshold": self.config.failure_threshold,
            "timeout": self.config.recovery_timeout,
            "retry_after": self._seconds_until_trial() if stats.state is CircuitState.OPEN else 0.0,
            "total_calls": stats.total_calls,
            "total_failures": stats.total_failures,
            "total_successes": stats.total_successes,
            "rejected_calls": stats.rejected_calls,
            "last_failure": stats.last_failure_time,
            "last_success": stats.last_success_time,
            "state_changed_at": stats.state_changed_at,
        }
