"""Optimistic read-modify-write with exponential backoff."""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

import structlog

from quotapool.errors import TransientError
from quotapool.storage.interface import ConflictError


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_retries: int = 4
    initial_delay: float = 0.01
    exponential_base: float = 5.0
    jitter: bool = True
    max_delay: float = 60.0

    def delay(self, attempt: int) -> float:
        delay = min(
            self.initial_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay

    async def wait(self, attempt: int) -> None:
        await asyncio.sleep(self.delay(attempt))


class RetryExhaustedError(TransientError):
    """Raised when every attempt of a compare-and-swap hit a conflict."""

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        super().__init__(f"gave up after {attempts} conflicting attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


async def compare_and_swap(
    read: Callable[[], Awaitable[T]],
    write: Callable[[T], Awaitable[T]],
    mutate: Callable[[T], Optional[T]],
    policy: Optional[RetryPolicy] = None,
    description: str = "object"
) -> Tuple[T, bool]:
    """Read, mutate and conditionally write an object until the write wins.

    ``mutate`` receives a fresh copy on every attempt and returns the object
    to write, or ``None`` when there is nothing to change. ``write`` must
    reject a stale version with :class:`ConflictError`, which restarts the
    cycle from ``read`` after a backoff.

    Returns the stored object and whether a write happened.
    """
    policy = policy or RetryPolicy()
    last_error: Optional[ConflictError] = None

    for attempt in range(policy.max_retries + 1):
        current = await read()
        desired = mutate(current)
        if desired is None:
            return current, False

        try:
            return await write(desired), True
        except ConflictError as e:
            last_error = e
            logger.debug(
                "write_conflict",
                target=description,
                attempt=attempt + 1,
                error=str(e)
            )

        if attempt < policy.max_retries:
            await policy.wait(attempt)

    logger.warning(
        "write_retries_exhausted",
        target=description,
        attempts=policy.max_retries + 1
    )
    raise RetryExhaustedError(policy.max_retries + 1, last_error)
