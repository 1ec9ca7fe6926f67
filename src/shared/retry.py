"""
Bounded retry with a fixed interval.

Used at startup to wait for the store to become reachable. The policy is a
plain value so tests can run it with a zero interval.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration: total attempts and the pause between them."""
    max_attempts: int = 5
    interval: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call ``func`` until it succeeds or the policy runs out of attempts.

    Args:
        func: Zero-argument coroutine function to call
        policy: Attempt budget and fixed delay
        retry_on: Exception types that trigger another attempt
        operation: Name used in log events
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The first successful result

    Raises:
        The last exception raised by ``func`` once attempts are exhausted
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func()
        except retry_on as e:
            remaining = policy.max_attempts - attempt
            if remaining == 0:
                logger.error(
                    f"{operation} failed after all retries",
                    attempts=policy.max_attempts,
                    error=str(e)
                )
                raise
            logger.warning(
                f"{operation} failed, retrying in {policy.interval}s",
                attempt=attempt,
                remaining=remaining,
                error=str(e)
            )
            await sleep(policy.interval)

    raise RuntimeError("unreachable")  # pragma: no cover
