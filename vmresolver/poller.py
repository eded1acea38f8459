"""Fixed-interval poll loop with overlap protection.

A background ticker sleeps for ``interval`` seconds and then calls
:meth:`PollLoop.tick`. Each tick launches the fetch as its own task, so
cancelling the ticker never cancels a fetch that is already in flight.
A tick that fires while a fetch is still outstanding is dropped, not
queued.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class PollLoop:
    """Runs ``fetch()`` every *interval* seconds and reports the outcome.

    Args:
        fetch:     Coroutine function returning the fetched value.
        interval:  Seconds between ticks.
        on_result: Called with the fetch result.
        on_error:  Called with the exception when a fetch fails.

    Results of fetches issued before the most recent :meth:`cancel` are
    stale: they are logged and dropped without reaching either callback.
    A stale fetch no longer holds the overlap guard.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        interval: float,
        on_result: Callable[[Any], None],
        on_error: Callable[[BaseException], None],
    ) -> None:
        self.fetch = fetch
        self.interval = interval
        self._on_result = on_result
        self._on_error = on_error
        self._ticker: asyncio.Task | None = None
        self._cancelled: list[asyncio.Task] = []
        self._fetch_task: asyncio.Task | None = None
        self._fetches: set[asyncio.Task] = set()
        self._in_flight_since: str | None = None
        self._generation = 0
        self._skipped = 0

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Start the background ticker; a no-op if it is already running."""
        if self.running:
            logger.warning("Poll loop is already running")
            return
        self._ticker = asyncio.create_task(self._run())
        logger.debug("Poll loop started (interval=%.3fs)", self.interval)

    def cancel(self) -> None:
        """Stop ticking and mark any in-flight fetch as stale.

        The overlap guard is released too, so a restarted loop can poll
        while a stale fetch is still hanging.
        """
        self._generation += 1
        self._in_flight_since = None
        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done():
            ticker.cancel()
            self._cancelled.append(ticker)
            logger.debug("Poll loop cancelled")

    async def wait_cancelled(self) -> None:
        """Wait for cancelled ticker tasks to finish unwinding."""
        while self._cancelled:
            ticker = self._cancelled.pop()
            try:
                await ticker
            except asyncio.CancelledError:
                pass

    async def wait_for_fetch(self) -> None:
        """Wait for the outstanding fetch, if any, and its callbacks to finish."""
        task = self._fetch_task
        if task is not None and not task.done():
            await task

    @property
    def running(self) -> bool:
        """Whether the ticker task is alive."""
        return self._ticker is not None and not self._ticker.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight_since is not None

    @property
    def in_flight_since(self) -> str | None:
        """ISO timestamp of when the outstanding fetch was issued, or None."""
        return self._in_flight_since

    @property
    def skipped_ticks(self) -> int:
        """Ticks dropped because a fetch was still outstanding."""
        return self._skipped

    # ------------------------------------------------------------------ #
    # Polling
    # ------------------------------------------------------------------ #

    def tick(self) -> bool:
        """Run one poll cycle unless a fetch is already outstanding.

        Returns:
            ``True`` if a fetch was launched, ``False`` if the tick was skipped.
        """
        if self._in_flight_since is not None:
            self._skipped += 1
            logger.debug(
                "Previous poll (issued %s) still running, skipping tick",
                self._in_flight_since,
            )
            return False

        self._in_flight_since = datetime.now(timezone.utc).isoformat()
        self._fetch_task = asyncio.create_task(self._poll(self._generation))
        self._fetches.add(self._fetch_task)
        self._fetch_task.add_done_callback(self._fetches.discard)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()

    async def _poll(self, generation: int) -> None:
        try:
            result = await self.fetch()
        except Exception as exc:
            outcome, value = self._on_error, exc
        else:
            outcome, value = self._on_result, result
        finally:
            if generation == self._generation:
                self._in_flight_since = None

        if generation != self._generation:
            logger.debug("Discarding outcome of stale poll")
            return
        outcome(value)
