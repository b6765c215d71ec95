"""Cancellation token tied to the inbound connection.

A token is created per request and passed explicitly to every outbound call.
When the client disconnects (or the resolution deadline passes) the token fires
and any awaitable running under ``guard`` is cancelled, which makes httpx drop
the upstream connection instead of finishing the transfer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from starlette.requests import Request

from recordings.errors import RequestCancelled

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "client disconnected") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelled(f"Request cancelled: {self.reason}")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""

        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:  # the task failed while being torn down
            LOGGER.debug("Cancelled operation raised during teardown", exc_info=True)
        raise RequestCancelled(f"Request cancelled: {self.reason}")


async def watch_disconnect(
    request: Request,
    token: CancellationToken,
    *,
    poll_interval: float = 0.1,
) -> None:
    """Cancel ``token`` once the client behind ``request`` goes away."""

    while not token.cancelled:
        if await request.is_disconnected():
            LOGGER.info("Client disconnected; cancelling upstream work")
            token.cancel("client disconnected")
            return
        try:
            await asyncio.wait_for(token.wait(), timeout=poll_interval)
        except asyncio.TimeoutError:
            continue


def cancel_after(token: CancellationToken, seconds: float) -> asyncio.TimerHandle:
    loop = asyncio.get_running_loop()
    return loop.call_later(seconds, token.cancel, "timed out")
