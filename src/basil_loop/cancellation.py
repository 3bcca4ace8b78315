"""Per-session cooperative cancellation."""

from __future__ import annotations

import asyncio


class CancelToken:
    """Stop flag owned by a single session.

    The caller (a stop button, a signal handler) calls :meth:`cancel`; the
    orchestrator and the completion client poll :attr:`cancelled` at every
    suspension point and can await :meth:`wait` to interrupt a pending read.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds unless cancelled first.

        Returns:
            bool: ``True`` if the token was cancelled before or during the
            delay.
        """
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
