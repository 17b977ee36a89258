"""ChatDispatcher: non-blocking handoff of chat messages to the bot core."""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections.abc import Awaitable, Callable

import structlog

from .models import ChatMessage

logger = structlog.get_logger()

Receive = Callable[[ChatMessage], "Awaitable[None] | None"]


class ChatDispatcher:
    """Bounded queue drained by a single consumer task.

    :meth:`submit` never waits: when the bot core falls behind and the
    queue is full, the message is dropped and logged.  Messages reach
    ``receive`` in submission order.  A failing ``receive`` is logged and
    the consumer moves on to the next message.
    """

    def __init__(self, receive: Receive, *, maxsize: int = 1000) -> None:
        self._receive = receive
        self._maxsize = maxsize
        self._queue: asyncio.Queue[ChatMessage | None] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task[None] | None = None
        self._lock = threading.Lock()
        self._running = False

        self._delivered: int = 0
        self._dropped: int = 0
        self._failed: int = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def delivered(self) -> int:
        return self._delivered

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def failed(self) -> int:
        return self._failed

    async def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._task = asyncio.create_task(self._consume(), name="chat-dispatcher")

    async def stop(self) -> None:
        """Stop the consumer; queued messages not yet delivered are discarded."""
        with self._lock:
            if not self._running:
                return
            self._running = False

        task, self._task = self._task, None
        if task is None:
            return
        discarded = self._drain()
        self._queue.put_nowait(None)
        await task
        if discarded:
            logger.warning("dispatch_discarded_on_stop", count=discarded)

    def submit(self, message: ChatMessage) -> bool:
        """Queue *message* for the bot core; ``False`` if stopped or full."""
        if not self.running:
            logger.debug("dispatch_not_running", conversation_key=message.conversation_key)
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                "dispatch_queue_full",
                conversation_key=message.conversation_key,
                maxsize=self._maxsize,
            )
            return False
        return True

    async def _consume(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                break
            await self._deliver(message)

    async def _deliver(self, message: ChatMessage) -> None:
        try:
            result = self._receive(message)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._failed += 1
            logger.exception(
                "bot_receive_failed",
                conversation_key=message.conversation_key,
            )
            return
        self._delivered += 1

    def _drain(self) -> int:
        drained = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            drained += 1
