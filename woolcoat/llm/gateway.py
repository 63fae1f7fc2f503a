"""
Model gateway.

Module: woolcoat/llm/gateway.py

Single entry point the agent core uses to talk to a language model. Wraps a
primary adapter with retry and exponential backoff, a circuit breaker, and an
optional fallback adapter. Adapter failures never escape: callers receive a
``GatewayResponse`` whose status is ``fail`` with the error detail attached.
"""

import inspect
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple, Union

import anyio
from pydantic import BaseModel

from .base import LLMAdapter, LLMMessage

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]

UNAVAILABLE_MESSAGE = "AI service temporarily unavailable"


class _ConsumerError(Exception):
    """Carries an exception raised by a stream consumer past provider error handling."""

    def __init__(self, error: Exception) -> None:
        super().__init__(str(error))
        self.error = error


class GatewayStatus(str, Enum):
    """Outcome of a gateway call."""

    SUCCESS = "success"
    FAIL = "fail"


class GatewayResponse(BaseModel):
    """Result of one gateway call."""

    status: GatewayStatus
    content: str = ""
    error_msg: Optional[str] = None
    cost_time_ms: int = 0
    model: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == GatewayStatus.SUCCESS


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker for the primary provider.

    Opens after ``failure_threshold`` consecutive failures and lets a single
    trial call through once ``reset_seconds`` have elapsed.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_seconds = reset_seconds
        self._clock = clock
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if self._clock() - self._opened_at >= self.reset_seconds:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def allow_request(self) -> bool:
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        self._failures = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self._failures += 1
        state = self.state
        if state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
            if state != CircuitState.OPEN:
                logger.error(f"Circuit opened after {self._failures} consecutive LLM failures")
            self._opened_at = self._clock()


class LLMGateway:
    """
    Resilient front for LLM adapters.

    Example:
        gateway = LLMGateway(OpenAIAdapter(model="qwen-plus"), fallback=OllamaAdapter())
        response = await gateway.generate([LLMMessage.user("hi")], temperature=0.1)
        if response.success:
            print(response.content)
    """

    def __init__(
        self,
        primary: LLMAdapter,
        fallback: Optional[LLMAdapter] = None,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            primary: Adapter tried first
            fallback: Adapter used when the primary is exhausted or its circuit is open
            max_retries: Extra attempts against the primary per call
            retry_backoff: Base delay in seconds, doubled on each retry
            breaker: Circuit breaker guarding the primary
        """
        self.primary = primary
        self.fallback = fallback
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.breaker = breaker or CircuitBreaker()

    async def generate(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> GatewayResponse:
        """
        Generate text for a list of messages.

        Args:
            messages: Ordered role-tagged messages
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            Gateway response; status ``fail`` when every provider failed
        """
        start = time.perf_counter()
        errors: List[str] = []

        async def call(adapter: LLMAdapter) -> str:
            response = await adapter.complete(
                messages, temperature=temperature, max_tokens=max_tokens
            )
            return response.content

        content, model = await self._with_resilience(call, errors, retry_allowed=lambda: True)
        return self._finish(content, model, errors, start)

    async def generate_stream(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        on_chunk: Optional[ChunkCallback] = None,
        max_tokens: Optional[int] = None,
    ) -> GatewayResponse:
        """
        Generate text incrementally, feeding each chunk to ``on_chunk``.

        Retries and fallback apply only while no chunk has been delivered,
        so a consumer never sees output from two different attempts.

        Args:
            messages: Ordered role-tagged messages
            temperature: Sampling temperature
            on_chunk: Sync or async callable receiving each text chunk
            max_tokens: Maximum tokens to generate

        Returns:
            Gateway response carrying the accumulated text

        Raises:
            Exception: Whatever ``on_chunk`` raised; consumer errors are not provider failures
        """
        start = time.perf_counter()
        errors: List[str] = []
        delivered: List[str] = []

        async def call(adapter: LLMAdapter) -> str:
            async for chunk in adapter.stream_complete(
                messages, temperature=temperature, max_tokens=max_tokens
            ):
                delivered.append(chunk)
                if on_chunk is not None:
                    try:
                        result = on_chunk(chunk)
                        if inspect.isawaitable(result):
                            await result
                    except Exception as e:
                        raise _ConsumerError(e) from e
            return "".join(delivered)

        try:
            content, model = await self._with_resilience(
                call, errors, retry_allowed=lambda: not delivered
            )
        except _ConsumerError as e:
            # The consumer stopped reading; the provider is not at fault
            logger.warning(f"Stream consumer failed after {len(delivered)} chunks: {e.error}")
            raise e.error
        if content is None and delivered:
            # Partial output already reached the consumer
            return GatewayResponse(
                status=GatewayStatus.FAIL,
                content="".join(delivered),
                error_msg=errors[-1] if errors else UNAVAILABLE_MESSAGE,
                cost_time_ms=self._elapsed_ms(start),
            )
        return self._finish(content, model, errors, start)

    async def _with_resilience(
        self,
        call: Callable[[LLMAdapter], Awaitable[str]],
        errors: List[str],
        retry_allowed: Callable[[], bool],
    ) -> Tuple[Optional[str], Optional[str]]:
        if self.breaker.allow_request():
            for attempt in range(self.max_retries + 1):
                try:
                    content = await call(self.primary)
                    self.breaker.record_success()
                    return content, self.primary.model
                except _ConsumerError:
                    raise
                except Exception as e:
                    errors.append(f"{self.primary.provider}: {e}")
                    self.breaker.record_failure()
                    if not retry_allowed() or not self.breaker.allow_request():
                        break
                    if attempt < self.max_retries:
                        delay = self.retry_backoff * (2.0**attempt)
                        logger.warning(
                            f"LLM call failed (attempt {attempt + 1}/{self.max_retries + 1}), "
                            f"retrying in {delay:.2f}s: {e}"
                        )
                        if delay > 0:
                            await anyio.sleep(delay)
        else:
            logger.error(f"Circuit open for provider {self.primary.provider}, skipping primary")
            errors.append(f"{self.primary.provider}: circuit open")

        if self.fallback is not None and retry_allowed():
            logger.warning(f"Switching to fallback provider {self.fallback.provider}")
            try:
                return await call(self.fallback), self.fallback.model
            except _ConsumerError:
                raise
            except Exception as e:
                errors.append(f"{self.fallback.provider}: {e}")

        return None, None

    def _finish(
        self,
        content: Optional[str],
        model: Optional[str],
        errors: List[str],
        start: float,
    ) -> GatewayResponse:
        if content is not None:
            return GatewayResponse(
                status=GatewayStatus.SUCCESS,
                content=content,
                cost_time_ms=self._elapsed_ms(start),
                model=model,
            )

        detail = "; ".join(errors) if errors else "no provider available"
        logger.error(f"LLM gateway call failed: {detail}")
        return GatewayResponse(
            status=GatewayStatus.FAIL,
            content=UNAVAILABLE_MESSAGE,
            error_msg=detail,
            cost_time_ms=self._elapsed_ms(start),
        )

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.perf_counter() - start) * 1000)

    async def aclose(self) -> None:
        """Close underlying adapters."""
        await self.primary.aclose()
        if self.fallback is not None:
            await self.fallback.aclose()

    def __repr__(self) -> str:
        fallback = self.fallback.provider if self.fallback else None
        return f"LLMGateway(primary={self.primary.provider}, fallback={fallback})"
