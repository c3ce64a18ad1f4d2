"""Pause-then-single-retry wrapper for reviewer and enrichment calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from core.errors import AuditCancelledError, RetryableReviewerError, ReviewerError
from pipelines.audit.cancellation import AbortCoordinator, CancellationToken, run_cancellable

logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[CancellationToken], Awaitable[T]]
RetryListener = Callable[[str, BaseException], None]

_RETRYABLE_ERROR_HINTS = (
    "429",
    "rate limit",
    "too many requests",
    "timeout",
    "timed out",
    "connecttimeout",
    "readtimeout",
    "temporarily unavailable",
    "stalled",
    "stall",
    "etimedout",
)


def _is_retryable_error(error_text: str) -> bool:
    normalized = error_text.strip().lower()
    if not normalized:
        return False
    return any(token in normalized for token in _RETRYABLE_ERROR_HINTS)


def is_retryable(exc: BaseException) -> bool:
    """Timeout/stall-shaped failures are retryable; explicit reviewer errors are not."""
    if isinstance(exc, (RetryableReviewerError, asyncio.TimeoutError, TimeoutError)):
        return True
    if isinstance(exc, ReviewerError):
        return False
    return _is_retryable_error(str(exc))


class RetryWithPause:
    """Run an operation once; on a retryable failure pause, wait and retry once.

    At most two attempts are made per ``run`` call. Externally caused
    cancellation always propagates without a retry.
    """

    def __init__(
        self,
        coordinator: AbortCoordinator,
        *,
        attempt_timeout: float | None = None,
        on_retry: Optional[RetryListener] = None,
    ) -> None:
        self._coordinator = coordinator
        self._attempt_timeout = attempt_timeout
        self._on_retry = on_retry

    @property
    def coordinator(self) -> AbortCoordinator:
        return self._coordinator

    async def run(
        self,
        operation: Operation[T],
        *,
        retry_on_any: bool = False,
        label: str = "operation",
    ) -> T:
        pause = self._coordinator.pause_controller
        try:
            return await self._attempt(operation, label)
        except AuditCancelledError as exc:
            if not exc.pause_triggered or pause is None:
                raise
            failure: BaseException = exc
        except Exception as exc:
            if pause is None or not (retry_on_any or is_retryable(exc)):
                raise
            failure = exc

        if not isinstance(failure, AuditCancelledError):
            logger.warning("%s failed, pausing before retry: %s", label, failure)
            pause.pause(reason=f"{label}: {failure}")
        if self._on_retry is not None:
            self._on_retry(label, failure)

        await pause.wait_while_paused(self._coordinator.session_token)
        return await self._attempt(operation, label)

    async def _attempt(self, operation: Operation[T], label: str) -> T:
        with self._coordinator.attempt() as token:
            call = run_cancellable(token, operation(token))
            if self._attempt_timeout is None:
                return await call
            try:
                return await asyncio.wait_for(call, timeout=self._attempt_timeout)
            except asyncio.TimeoutError as exc:
                raise RetryableReviewerError(
                    f"{label} stalled after {self._attempt_timeout:g}s"
                ) from exc


__all__ = ["RetryWithPause", "is_retryable"]
