"""
Cooperative Cancellation

A token shared by every read of one fetch run. Cancelling it wakes anything
waiting on it, aborts guarded awaits, and cascades to child tokens.
"""

import asyncio
from typing import Awaitable, List, Optional, TypeVar

from pos_dashboard.errors import FetchCancelled

T = TypeVar("T")


class CancellationToken:
    """
    One-shot cancellation signal.

    Example:
        token = CancellationToken()
        rows = await token.guard(session.execute(query))
        ...
        token.cancel("superseded")
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self._children: List["CancellationToken"] = []
        self.reason: Optional[str] = None

        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = "cancelled") -> bool:
        """Signal cancellation; returns False if already cancelled"""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)
        return True

    def child(self) -> "CancellationToken":
        """Token cancelled whenever this one is, but cancellable on its own"""
        return CancellationToken(parent=self)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise FetchCancelled(self.reason or "cancelled")

    async def wait(self) -> None:
        """Block until cancelled"""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token is cancelled first.

        On cancellation the underlying work is cancelled too, and
        FetchCancelled is raised.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()

        if work.done() and not work.cancelled():
            # Completed work wins a tie with cancellation
            return work.result()
        raise FetchCancelled(self.reason or "cancelled")
