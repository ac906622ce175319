"""
Retry and fallback combinators.

Retry/backoff (with_retry) and ordered fallback (first_success) are kept
independent: a strategy may wrap its own call in with_retry, and
first_success only sees whether the strategy as a whole produced a value.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

import httpx

from storyframe.providers.exceptions import ErrorKind, PipelineError, UpstreamTransient, classify_http_error

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """
    Exponential backoff policy.

    delay(retry) = min(base_delay * 2 ** (retry - 1 + exponent_offset), max_delay)

    Attributes:
        max_retries: Retries allowed after the first attempt
        base_delay: Delay unit in seconds
        max_delay: Upper bound for any single delay
        warmup_delay: Flat delay before the very first attempt (0 = none)
        retry_on: Transient kinds that are eligible for retry
        exponent_offset: Shift applied to the exponent (1 makes the first retry wait base * 2)
    """
    max_retries: int
    base_delay: float
    max_delay: Optional[float] = None
    warmup_delay: float = 0.0
    retry_on: Tuple[ErrorKind, ...] = (ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT, ErrorKind.NETWORK, ErrorKind.SERVER)
    exponent_offset: int = 0

    def delay_for(self, retry: int) -> float:
        """Delay before retry number `retry` (1-based)."""
        delay = self.base_delay * (2 ** (retry - 1 + self.exponent_offset))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def is_retryable(self, error: PipelineError) -> bool:
        return isinstance(error, UpstreamTransient) and error.kind in self.retry_on


@dataclass
class RetryStats:
    """What happened while running a call under a RetryPolicy."""
    attempts: int = 0
    delays: List[float] = field(default_factory=list)
    errors: List[PipelineError] = field(default_factory=list)

    @property
    def retries(self) -> int:
        return max(self.attempts - 1, 0)


async def with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
    label: str = "call",
    stats: Optional[RetryStats] = None,
) -> T:
    """
    Run `call` under `policy`.

    httpx and pipeline errors are normalised with classify_http_error.
    Non-retryable errors and the error of the final attempt are raised;
    any other exception propagates untouched on the first attempt.
    """
    stats = stats if stats is not None else RetryStats()

    if policy.warmup_delay > 0:
        await sleep(policy.warmup_delay)

    retry = 0
    while True:
        stats.attempts += 1
        try:
            return await call()
        except (httpx.HTTPError, PipelineError) as exc:
            error = classify_http_error(exc)
            stats.errors.append(error)

            if not policy.is_retryable(error) or retry >= policy.max_retries:
                if retry and policy.is_retryable(error):
                    logger.warning(f"[RETRY] {label}: giving up after {stats.retries} retries: {error.message}")
                if error is exc:
                    raise
                raise error from exc

            retry += 1
            delay = policy.delay_for(retry)
            stats.delays.append(delay)
            kind = error.kind.value if isinstance(error, UpstreamTransient) else "error"
            logger.info(f"[RETRY] {label}: {kind} error, retry {retry}/{policy.max_retries} in {delay:.1f}s")
            await sleep(delay)


Strategy = Callable[[Any], Awaitable[T]]


async def first_success(strategies: Sequence[Tuple[str, Strategy]], value: Any) -> Tuple[str, T]:
    """
    Run named strategies in order and return (name, output) of the first that succeeds.

    A strategy fails by raising. If every strategy fails, the last error is raised.
    """
    if not strategies:
        raise ValueError("first_success requires at least one strategy")

    last_error: Optional[Exception] = None
    for name, strategy in strategies:
        try:
            return name, await strategy(value)
        except Exception as exc:
            logger.warning(f"[FALLBACK] strategy '{name}' failed: {exc}")
            last_error = exc

    raise last_error
