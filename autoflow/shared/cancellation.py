"""Cooperative cancellation token passed into every handler call."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """Signals cancellation of one execution instance.

    Cancellation is cooperative: handlers check `cancelled` or await
    `wait()`; the engine stops scheduling further nodes once set.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Set the token. The first reason given is kept."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()
