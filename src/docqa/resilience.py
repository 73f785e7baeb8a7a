"""Timeouts and bounded retries for the blocking network calls."""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import openai
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 4xx statuses the OpenAI SDK itself treats as retryable.
_RETRYABLE_CLIENT_STATUSES = frozenset({408, 409, 429})


def is_permanent_error(exc: BaseException) -> bool:
    """Return ``True`` for failures a retry cannot fix (auth, bad request, …)."""
    return (
        isinstance(exc, openai.APIStatusError)
        and exc.status_code < 500
        and exc.status_code not in _RETRYABLE_CLIENT_STATUSES
    )


class CallTimeout(Exception):
    """Raised by :class:`TimedCaller` when a call exceeds its deadline."""


class TimedCaller:
    """Run blocking calls on worker threads and stop waiting after a deadline.

    The worker thread of a stalled call keeps running until the underlying
    client gives up, but the caller is released as soon as the deadline
    passes.  Each stalled call therefore holds one of *max_workers* threads
    until then; size the pool for the expected request concurrency plus
    stalls, and give the underlying client its own timeout so workers are
    eventually returned.  Once the pool is exhausted new calls queue and
    time out without running.
    """

    def __init__(self, timeout_seconds: float, *, max_workers: int = 32, name: str = "call") -> None:
        self.timeout_seconds = timeout_seconds
        self._name = name
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=f"docqa-{name}"
        )

    def __call__(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        future = self._executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.timeout_seconds)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise CallTimeout(
                f"{self._name} call exceeded {self.timeout_seconds:.1f}s timeout"
            ) from exc

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


def build_retrying(
    attempts: int,
    retry_on: type[BaseException] | tuple[type[BaseException], ...],
    *,
    label: str,
    backoff_seconds: float = 0.5,
    max_backoff_seconds: float = 8.0,
) -> Retrying:
    """Return a tenacity ``Retrying`` with exponential backoff.

    The last exception is re-raised unchanged once *attempts* are used up.
    """
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff_seconds, max=max_backoff_seconds),
        retry=retry_if_exception_type(retry_on),
        reraise=True,
        before_sleep=lambda state: logger.warning(
            "%s failed (attempt %d/%d): %s",
            label,
            state.attempt_number,
            attempts,
            state.outcome.exception() if state.outcome else "unknown error",
        ),
    )
