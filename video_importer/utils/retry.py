"""Bounded retry helpers for network-mutating importer operations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from video_importer.errors import (
    AssetValidationError,
    OperationFailedError,
    PipelineStateError,
)
from video_importer.logging import get_logger

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3

AsyncFactory = Callable[[], Awaitable[T]]
Classifier = Callable[[Exception], bool]
ResultCheck = Callable[[T], bool]

logger = get_logger("utils.retry")


def retry_transient(error: Exception) -> bool:
    """Retry everything except input and ordering errors, which never heal."""

    return not isinstance(error, (AssetValidationError, PipelineStateError))


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and retryable classification for :func:`with_retry`."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    is_retryable: Classifier = field(default=retry_transient)
    delay_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")


async def with_retry(
    async_fn: AsyncFactory[T],
    *,
    operation: str,
    policy: RetryPolicy,
    accept: ResultCheck[T] | None = None,
) -> T:
    """Execute ``async_fn`` until it succeeds or ``policy.max_attempts`` is spent.

    A raised exception or a result rejected by ``accept`` counts as a failed
    attempt. Exceptions the policy does not classify as retryable propagate
    unchanged. Once the budget is exhausted an :class:`OperationFailedError`
    naming ``operation`` is raised, chained to the last error observed.
    """

    last_error: Exception | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await async_fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not policy.is_retryable(exc):
                raise
            last_error = exc
            logger.debug(
                "Attempt %d/%d of %s failed: %s",
                attempt,
                policy.max_attempts,
                operation,
                exc,
            )
        else:
            if accept is None or accept(result):
                return result
            last_error = None
            logger.debug(
                "Attempt %d/%d of %s returned an unusable result",
                attempt,
                policy.max_attempts,
                operation,
            )
        if policy.delay_seconds > 0 and attempt < policy.max_attempts:
            await asyncio.sleep(policy.delay_seconds)

    error = OperationFailedError(
        operation, attempts=policy.max_attempts, last_error=last_error
    )
    if last_error is not None:
        raise error from last_error
    raise error


class RetryExecutor:
    """Apply one :class:`RetryPolicy` uniformly to many operations."""

    def __init__(self, policy: RetryPolicy | None = None) -> None:
        self._policy = policy or RetryPolicy()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(
        self,
        async_fn: AsyncFactory[T],
        *,
        operation: str,
        accept: ResultCheck[T] | None = None,
    ) -> T:
        return await with_retry(
            async_fn, operation=operation, policy=self._policy, accept=accept
        )


__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "RetryExecutor",
    "RetryPolicy",
    "retry_transient",
    "with_retry",
]
