"""Cooperative cancellation for one conversational turn."""

import asyncio

from .errors import Cancelled


class CancellationToken:
    """Flag passed into every suspending call of a turn.

    Holders check it at each suspension point; nothing is interrupted
    preemptively.
    """

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled("Turn cancelled")

    async def sleep(self, seconds: float, sleep=asyncio.sleep) -> None:
        """Wait, checking the flag on both sides of the suspension."""
        self.raise_if_cancelled()
        await sleep(seconds)
        self.raise_if_cancelled()


def check(token: CancellationToken | None) -> None:
    """Raise Cancelled if *token* is set; a missing token never cancels."""
    if token is not None:
        token.raise_if_cancelled()
