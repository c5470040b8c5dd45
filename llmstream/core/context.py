"""
llmstream - Call Context

Explicit per-call handle threaded through every entry point:

- Deadline (absolute, monotonic clock); nested deadlines keep the earliest
- Cooperative cancellation, propagated from parent to children
- Observer handle for tracing (no-op by default)
- Request id for log correlation

Nothing in the core looks these up ambiently; whoever needs them receives the
context as an argument.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Awaitable, List, Optional, TypeVar

from .errors import CallCancelledError, CancellationError, DeadlineExceededError
from ..observability.tracing import NoopObserver, Observer


T = TypeVar("T")


class CallContext:
    """
    Deadline and cancellation scope for one call.

    Usage:
        ctx = CallContext()
        child = ctx.with_timeout(5.0)
        try:
            response = await child.bound(adapter.send_message(request, child))
        finally:
            child.cancel()  # release the child handle
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        observer: Optional[Observer] = None,
        request_id: str = "",
        parent: Optional[CallContext] = None,
    ):
        self._parent = parent
        self._children: List[CallContext] = []
        self._cancelled = False
        self._event = asyncio.Event()

        if parent is not None:
            if parent.deadline is not None and (deadline is None or parent.deadline < deadline):
                deadline = parent.deadline
            observer = observer or parent.observer
            request_id = request_id or parent.request_id
            if parent.cancelled:
                self._cancelled = True
                self._event.set()
            else:
                parent._children.append(self)

        self.deadline = deadline
        self.observer: Observer = observer or NoopObserver()
        self.request_id = request_id or f"req_{uuid.uuid4().hex[:12]}"

    @classmethod
    def background(cls, observer: Optional[Observer] = None) -> CallContext:
        """Root context with no deadline."""
        return cls(observer=observer)

    # ============================================================
    # Derivation
    # ============================================================

    def with_timeout(self, seconds: float) -> CallContext:
        """Child context whose deadline is now + seconds, or the parent's if earlier."""
        return CallContext(deadline=time.monotonic() + seconds, parent=self)

    def with_cancel(self) -> CallContext:
        """Child context that can be cancelled independently of this one."""
        return CallContext(parent=self)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        self._event.set()
        for child in list(self._children):
            child.cancel()
        self._children.clear()
        if self._parent is not None and self in self._parent._children:
            self._parent._children.remove(self)

    # ============================================================
    # State
    # ============================================================

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, None when there is no deadline."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def error(self) -> Optional[CancellationError]:
        """The cancellation condition in effect, if any."""
        if self.expired():
            return DeadlineExceededError()
        if self._cancelled:
            return CallCancelledError()
        return None

    def check(self) -> None:
        """Raise the cancellation condition if the context is done."""
        err = self.error()
        if err is not None:
            raise err

    # ============================================================
    # Waiting
    # ============================================================

    async def bound(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` but give up with DeadlineExceededError at the deadline."""
        try:
            self.check()
        except CancellationError:
            _discard(awaitable)
            raise

        remaining = self.remaining()
        if remaining is None:
            return await awaitable

        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError:
            if self.remaining() is not None and self.remaining() <= 0.001:
                raise DeadlineExceededError() from None
            raise

    async def sleep(self, seconds: float) -> None:
        """Wait ``seconds``, aborting early on cancellation or at the deadline."""
        self.check()

        remaining = self.remaining()
        cut_by_deadline = remaining is not None and remaining <= seconds
        wait = remaining if cut_by_deadline else seconds

        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(wait, 0))
        except asyncio.TimeoutError:
            pass

        if self._cancelled:
            raise CallCancelledError()
        if cut_by_deadline:
            raise DeadlineExceededError()


def _discard(awaitable: Any) -> None:
    # Avoid "coroutine was never awaited" warnings for calls that never start
    close = getattr(awaitable, "close", None)
    if asyncio.iscoroutine(awaitable) and close is not None:
        close()
