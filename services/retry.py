"""Bounded retry with linear backoff, shared by the fetcher and the store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(RuntimeError):
    """Raised once every attempt of an operation has failed."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException]) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"{operation} failed after {attempts} attempts: {detail}")


@dataclass(frozen=True)
class RetryPolicy:
    """``max_retries`` extra attempts, waiting ``backoff_seconds * (attempt - 1)`` before each."""

    max_retries: int = 3
    backoff_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def wait_before(self, attempt: int) -> float:
        """Seconds to sleep before the 1-based ``attempt``."""
        if attempt < 1:
            raise ValueError(f"Attempts are numbered from 1, got {attempt}")
        return self.backoff_seconds * (attempt - 1)


def run_with_retry(
    operation: Callable[[], T],
    *,
    policy: RetryPolicy,
    description: str,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[T, int]:
    """Call ``operation`` until it succeeds or the policy is spent.

    Returns the result and the number of attempts used. Exceptions outside
    ``retry_on`` propagate immediately; exhaustion raises
    :class:`RetryExhaustedError` carrying the last error.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, policy.max_attempts + 1):
        wait = policy.wait_before(attempt)
        if wait > 0:
            logger.info(
                "Waiting before retrying %s",
                description,
                extra={
                    "operation": description,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "wait_seconds": wait,
                },
            )
            sleep(wait)

        try:
            result = operation()
        except retry_on as exc:
            last_error = exc
            final = attempt >= policy.max_attempts
            logger.log(
                logging.ERROR if final else logging.WARNING,
                "Attempt at %s failed: %s",
                description,
                exc,
                extra={
                    "operation": description,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "outcome": "exhausted" if final else "retrying",
                    "wait_seconds": None if final else policy.wait_before(attempt + 1),
                },
            )
            continue

        logger.debug(
            "Attempt at %s succeeded",
            description,
            extra={"operation": description, "attempt": attempt, "outcome": "success"},
        )
        return result, attempt

    raise RetryExhaustedError(description, policy.max_attempts, last_error)
