"""PollingMailSource: periodic "received since checkpoint" queries."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from .interface import ItemCallback, MailboxClient, MailSource
from .models import MailItem

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(UTC)


async def _join(task: asyncio.Task[None]) -> None:
    await task


class PollingMailSource(MailSource):
    """Poll the mailbox on an interval and emit items newer than a checkpoint.

    Each tick fetches at most *retrieve_count* items with ``received_at``
    after the checkpoint, emits them, then advances the checkpoint to the
    time the tick started.  Items that the mailbox only makes visible after
    that instant but stamps with an earlier ``received_at`` (clock skew)
    are missed; this is an accepted, bounded gap.

    The next tick is scheduled only once the current one has finished, so
    fetches never overlap.
    """

    def __init__(
        self,
        client: MailboxClient,
        folder: str,
        on_item: ItemCallback,
        *,
        interval_seconds: float,
        retrieve_count: int,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._client = client
        self._folder = folder
        self._on_item = on_item
        self._interval = interval_seconds
        self._retrieve_count = retrieve_count
        self._now = now

        self._lock = threading.Lock()
        self._running = False
        self._halted = False
        self._wakeup = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None

        self._checkpoint: datetime | None = None
        self._last_poll_time: datetime | None = None
        self._polls_failed: int = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def checkpoint(self) -> datetime | None:
        return self._checkpoint

    @property
    def last_poll_time(self) -> datetime | None:
        return self._last_poll_time

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, checkpoint: datetime | None = None) -> None:
        """Start ticking from *checkpoint* (default: now)."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._halted = False

        self._checkpoint = checkpoint if checkpoint is not None else self._now()
        self._wakeup = asyncio.Event()
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._run_loop(), name=f"poll-{self._folder}")
        logger.info(
            "polling_started",
            folder=self._folder,
            interval_seconds=self._interval,
            checkpoint=self._checkpoint.isoformat(),
        )

    async def stop(self) -> None:
        """Stop ticking; an in-flight fetch is allowed to complete.

        May be awaited from a different thread (and event loop) than the one
        that called :meth:`start`.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._halted = True

        loop = self._loop
        task, self._task = self._task, None
        if loop is None or task is None:
            return
        try:
            loop.call_soon_threadsafe(self._wakeup.set)
        except RuntimeError:
            logger.warning("event_loop_closed", folder=self._folder)
            return

        if asyncio.get_running_loop() is loop:
            await task
        else:
            await asyncio.wrap_future(asyncio.run_coroutine_threadsafe(_join(task), loop))
        logger.info("polling_stopped", folder=self._folder)

    async def health_check(self) -> dict[str, object]:
        return {
            "mode": "polling",
            "folder": self._folder,
            "checkpoint": self._checkpoint.isoformat() if self._checkpoint else None,
            "last_poll_time": (
                self._last_poll_time.isoformat() if self._last_poll_time else None
            ),
            "polls_failed": self._polls_failed,
        }

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        while self.running:
            try:
                await self.tick()
            except Exception:
                self._polls_failed += 1
                logger.exception("poll_tick_failed", folder=self._folder)
            if not self.running:
                break
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._interval)
            except TimeoutError:
                pass

    async def tick(self) -> int:
        """Run one poll cycle and return the number of items emitted."""
        if self._checkpoint is None:
            self._checkpoint = self._now()
        checkpoint = self._checkpoint
        tick_time = self._now()

        try:
            items = await self._client.poll_since(
                self._folder, checkpoint, self._retrieve_count
            )
        except Exception as exc:
            self._polls_failed += 1
            logger.warning(
                "poll_failed",
                folder=self._folder,
                checkpoint=checkpoint.isoformat(),
                error=str(exc),
            )
            return 0

        if self._halted:
            return 0

        emitted = 0
        for item in items:
            if item.received_at <= checkpoint:
                continue
            if self._halted:
                return emitted
            self._emit(item)
            emitted += 1

        self._checkpoint = tick_time
        self._last_poll_time = tick_time
        logger.debug(
            "poll_complete",
            folder=self._folder,
            fetched=len(items),
            emitted=emitted,
            checkpoint=tick_time.isoformat(),
        )
        return emitted

    def _emit(self, item: MailItem) -> None:
        try:
            self._on_item(item)
        except Exception:
            logger.exception("item_handler_failed", item_id=item.id)
