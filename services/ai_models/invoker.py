"""
Invoker: resilient provider calls.

Wraps one provider call with the model's circuit breaker, a linear-backoff
retry policy and performance tracking. The provider does the actual work;
the invoker only decides whether, when and how often to ask.

Retry timeline for max_retries=3, retry_delay=1.0 (every attempt failing):

    attempt 1 -> fail -> sleep 1.0
    attempt 2 -> fail -> sleep 2.0
    attempt 3 -> fail -> raise the attempt's own error

An open breaker raises CircuitBreakerOpen immediately and is never retried.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from services.providers.base import (
    ModelKey,
    ModelProvider,
    ProviderError,
    ServiceCategory,
    ServiceModelConfig,
)

from .breakers import CircuitBreakerRegistry
from .performance import PerformanceTracker

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ServiceCategory, ServiceModelConfig], ModelProvider]
ResponseValidator = Callable[[Any], bool]


class MalformedResponseError(ProviderError):
    """Provider answered, but the response failed structural validation."""


class Invoker:
    """Executes provider calls with breaker gating, retries and metrics."""

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        performance: PerformanceTracker,
        provider_factory: ProviderFactory,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.breakers = breakers
        self.performance = performance
        self.provider_factory = provider_factory
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._clock = clock

    async def call(
        self,
        service: ServiceCategory,
        model_config: ServiceModelConfig,
        params: dict[str, Any],
        *,
        provider: Optional[ModelProvider] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        validate: Optional[ResponseValidator] = None,
    ) -> Any:
        """
        Invoke a model with retries.

        Args:
            service: Service category of the model
            model_config: The tier being called
            params: Provider-specific request parameters
            provider: Provider instance (built from the factory when omitted)
            max_retries: Total attempts (defaults to the invoker's setting)
            retry_delay: Base delay; attempt n waits delay * n before the next
            timeout: Per-attempt timeout in seconds
            validate: Optional response check; False counts as a failure

        Returns:
            The provider's response from the first successful attempt

        Raises:
            CircuitBreakerOpen: The model's breaker rejected the call
            Exception: The last attempt's error once attempts are exhausted
        """
        service = ServiceCategory(service)
        key = ModelKey.for_config(service, model_config)
        provider = provider or self.provider_factory(service, model_config)
        breaker = await self.breakers.get_or_create(key)

        attempts = max_retries if max_retries is not None else self.max_retries
        delay = retry_delay if retry_delay is not None else self.retry_delay

        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_not_exception_type(CircuitBreakerOpen),
            before_sleep=self._log_retry(key),
            reraise=True,
        )

        response = None
        async for attempt in retrying:
            with attempt:
                response = await self._attempt(key, breaker, provider, params, timeout, validate)
        return response

    async def _attempt(
        self,
        key: ModelKey,
        breaker: CircuitBreaker,
        provider: ModelProvider,
        params: dict[str, Any],
        timeout: Optional[float],
        validate: Optional[ResponseValidator],
    ) -> Any:
        await breaker.before_call()

        start = self._clock()
        try:
            if timeout is not None:
                response = await asyncio.wait_for(provider.invoke(params), timeout=timeout)
            else:
                response = await provider.invoke(params)

            if validate is not None and not validate(response):
                raise MalformedResponseError(
                    f"Malformed response from {key}",
                    error_code="MALFORMED_RESPONSE",
                    provider=key.provider,
                )
        except Exception as e:
            self.performance.record(key, False, self._clock() - start)
            await breaker.record_failure(e)
            raise

        duration = self._clock() - start
        self.performance.record(key, True, duration)
        await breaker.record_success()
        logger.debug(f"Model call succeeded: {key} ({duration:.2f}s)")
        return response

    @staticmethod
    def _log_retry(key: ModelKey) -> Callable[[RetryCallState], None]:
        def log(retry_state: RetryCallState):
            error = retry_state.outcome.exception() if retry_state.outcome else None
            wait = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"Model call attempt {retry_state.attempt_number} failed for {key}: {error}. "
                f"Retrying in {wait:.1f}s"
            )

        return log
