"""Cooperative cancellation: token tree, pause controller and per-attempt scopes."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

from core.errors import AuditCancelledError, CancelReason

logger = logging.getLogger(__name__)

T = TypeVar("T")
PauseListener = Callable[[Optional[str]], None]


class CancellationToken:
    """Node in a cancellation tree.

    Cancelling a token cancels all of its attached children with the same
    reason. A child created from an already-cancelled parent starts cancelled.
    """

    def __init__(self, parent: "CancellationToken | None" = None) -> None:
        self._event = asyncio.Event()
        self._reason: CancelReason | None = None
        self._children: set[CancellationToken] = set()
        self._parent: CancellationToken | None = None
        if parent is not None:
            self._parent = parent
            parent._children.add(self)
            if parent.cancelled:
                self.cancel(parent.reason or CancelReason.EXTERNAL)

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> CancelReason | None:
        return self._reason

    @property
    def child_count(self) -> int:
        return len(self._children)

    def cancel(self, reason: CancelReason = CancelReason.EXTERNAL) -> bool:
        if self._reason is not None:
            return False
        self._reason = CancelReason(reason)
        self._event.set()
        for child in list(self._children):
            child.cancel(self._reason)
        return True

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def detach(self) -> None:
        if self._parent is not None:
            self._parent._children.discard(self)
            self._parent = None

    def raise_if_cancelled(self) -> None:
        if self._reason is not None:
            raise AuditCancelledError(self._reason)

    async def wait(self) -> CancelReason:
        await self._event.wait()
        return self._reason or CancelReason.EXTERNAL


class PauseController:
    """Session-wide pause flag with listeners and a resumable wait."""

    def __init__(self) -> None:
        self._paused = False
        self._reason: str | None = None
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._listeners: list[PauseListener] = []
        self._resume_listeners: list[Callable[[], None]] = []
        self.pause_count = 0
        self.resume_count = 0

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def pause(self, reason: str | None = None) -> bool:
        if self._paused:
            return False
        self._paused = True
        self._reason = reason
        self._resumed.clear()
        self.pause_count += 1
        logger.info("Session paused: %s", reason or "requested")
        for listener in list(self._listeners):
            listener(reason)
        return True

    def resume(self) -> bool:
        if not self._paused:
            return False
        self._paused = False
        self._reason = None
        self.resume_count += 1
        self._resumed.set()
        logger.info("Session resumed")
        for listener in list(self._resume_listeners):
            listener()
        return True

    def add_listener(self, listener: PauseListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: PauseListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            logger.debug("Pause listener already removed")

    def add_resume_listener(self, listener: Callable[[], None]) -> None:
        self._resume_listeners.append(listener)

    def remove_resume_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._resume_listeners:
            self._resume_listeners.remove(listener)

    async def wait_while_paused(self, token: CancellationToken | None = None) -> None:
        while self._paused:
            if token is None:
                await self._resumed.wait()
            else:
                await run_cancellable(token, self._resumed.wait())


class AbortCoordinator:
    """Derives one cancellation token per operation attempt."""

    def __init__(
        self,
        session_token: CancellationToken,
        pause_controller: PauseController | None = None,
    ) -> None:
        self.session_token = session_token
        self.pause_controller = pause_controller

    @contextmanager
    def attempt(self) -> Iterator[CancellationToken]:
        self.session_token.raise_if_cancelled()
        token = self.session_token.child()
        pause = self.pause_controller

        def on_pause(_reason: str | None) -> None:
            token.cancel(CancelReason.PAUSE)

        if pause is not None:
            pause.add_listener(on_pause)
            if pause.paused:
                token.cancel(CancelReason.PAUSE)
        try:
            yield token
        finally:
            if pause is not None:
                pause.remove_listener(on_pause)
            token.detach()


async def run_cancellable(token: CancellationToken, awaitable: Awaitable[T]) -> T:
    """Await ``awaitable`` unless ``token`` fires first.

    On cancellation the in-flight task is cancelled and awaited before
    ``AuditCancelledError`` is raised.
    """
    if token.cancelled:
        close = getattr(awaitable, "close", None)
        if callable(close):
            close()
        token.raise_if_cancelled()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise AuditCancelledError(token.reason or CancelReason.EXTERNAL)


__all__ = [
    "AbortCoordinator",
    "CancellationToken",
    "PauseController",
    "run_cancellable",
]
