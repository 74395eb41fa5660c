"""Cooperative cancellation signal shared by the pipeline stages."""

import asyncio
from typing import List, Optional
from core.errors import OcrCancelledError


class CancellationSignal:
    """One-shot cancellation flag.

    Stages call ``raise_if_cancelled()`` after every await; orchestration code
    can ``await wait()`` to race the signal against work in progress.
    Must be created and cancelled on the event loop thread.
    """

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None
        self._waiters: List[asyncio.Future] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "Operation cancelled") -> None:
        """Request cancellation. Repeated calls are no-ops."""
        if self._cancelled:
            return
        self._cancelled = True
        self.reason = reason

        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(reason)
        self._waiters.clear()

    async def wait(self) -> str:
        """Block until cancelled and return the reason."""
        if self._cancelled:
            return self.reason
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OcrCancelledError(self.reason)

