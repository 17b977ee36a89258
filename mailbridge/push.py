"""Push notification mail source and its reconnect state machine.

:class:`ConnectionManager` owns the subscription lifecycle::

    Disconnected --open--> Connecting --opened--> Connected
    Connected --disconnect(no error) while desired--> Connecting (reopen)
    Connected --disconnect(error) or not desired--> Disconnected (terminal)

:class:`PushMailSource` turns notification batches (item ids) into full
mail items, one batch at a time.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable, Sequence

import structlog

from .config import RetryConfig
from .interface import ItemCallback, MailboxClient, MailSource, Subscription
from .models import ConnectionState
from .retry import with_retry

logger = structlog.get_logger()

NEW_MAIL_EVENTS: tuple[str, ...] = ("new_mail",)

TerminalCallback = Callable[[BaseException | None], None]
"""Called once the subscription is lost for good while still wanted."""


class SubscriptionAbandoned(Exception):
    """Raised inside an open attempt once the subscription is no longer wanted."""


class ConnectionManager:
    """Open, reopen and close a push subscription.

    ``desired_running`` is written by :meth:`open` / :meth:`close` and read
    by :meth:`handle_disconnect` under the same lock, so a disconnect that
    races with :meth:`close` can never trigger a reopen.  The same flag is
    checked before every open attempt, so a retrying reopen gives up as soon
    as :meth:`close` runs.

    *on_terminal* fires when the subscription ends while still wanted (an
    error disconnect or a reopen that ran out of attempts), never after
    :meth:`close`.
    """

    def __init__(
        self,
        open_subscription: Callable[[], Awaitable[Subscription]],
        *,
        retry: RetryConfig,
        name: str = "subscription",
        on_terminal: TerminalCallback | None = None,
    ) -> None:
        self._open_subscription = open_subscription
        self._on_terminal = on_terminal
        self._retry = retry
        self._name = name
        self._lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._desired_running = False
        self._subscription: Subscription | None = None
        self._reconnects: int = 0

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def desired_running(self) -> bool:
        with self._lock:
            return self._desired_running

    @property
    def reconnects(self) -> int:
        return self._reconnects

    def _set_state(self, state: ConnectionState) -> None:
        # Caller holds the lock.
        if state is not self._state:
            logger.info(
                "connection_state_changed",
                subscription=self._name,
                old=self._state.value,
                new=state.value,
            )
            self._state = state

    async def open(self) -> None:
        """Open the subscription.  A no-op unless currently disconnected.

        Raises the last error if every attempt fails; the manager is then
        left :attr:`~ConnectionState.DISCONNECTED`.
        """
        with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                return
            self._desired_running = True
            self._set_state(ConnectionState.CONNECTING)

        await self._connect()

    async def handle_disconnect(self, error: BaseException | None) -> None:
        """React to the subscription dropping."""
        with self._lock:
            if self._state is not ConnectionState.CONNECTED:
                logger.debug(
                    "disconnect_ignored",
                    subscription=self._name,
                    state=self._state.value,
                )
                return
            self._subscription = None
            wanted = self._desired_running
            reopen = error is None and wanted
            if reopen:
                self._set_state(ConnectionState.CONNECTING)
            else:
                self._set_state(ConnectionState.DISCONNECTED)

        if not reopen:
            logger.warning(
                "subscription_closed",
                subscription=self._name,
                error=str(error) if error else None,
            )
            if wanted:
                self._notify_terminal(error)
            return

        self._reconnects += 1
        logger.info("subscription_reopening", subscription=self._name)
        try:
            await self._connect()
        except Exception as exc:
            # Already logged and moved to Disconnected; terminal for this run.
            if self.desired_running:
                self._notify_terminal(exc)

    async def close(self) -> None:
        """Stop for good: no reopen happens after this returns."""
        with self._lock:
            self._desired_running = False
            subscription, self._subscription = self._subscription, None
            self._set_state(ConnectionState.DISCONNECTED)

        if subscription is not None:
            await self._close_quietly(subscription)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        """Open with retry and land in Connected (or Disconnected on failure)."""
        @with_retry(
            self._retry,
            operation=f"open_{self._name}",
            abort_if=lambda: not self.desired_running,
        )
        async def _attempt() -> Subscription:
            if not self.desired_running:
                raise SubscriptionAbandoned(self._name)
            return await self._open_subscription()

        try:
            subscription = await _attempt()
        except Exception as exc:
            with self._lock:
                self._set_state(ConnectionState.DISCONNECTED)
                wanted = self._desired_running
            if wanted:
                logger.error(
                    "subscription_open_failed", subscription=self._name, error=str(exc)
                )
            else:
                logger.info("subscription_open_abandoned", subscription=self._name)
            raise

        with self._lock:
            if self._desired_running and self._state is ConnectionState.CONNECTING:
                self._subscription = subscription
                self._set_state(ConnectionState.CONNECTED)
                return
        # close() ran while we were opening.
        await self._close_quietly(subscription)

    def _notify_terminal(self, error: BaseException | None) -> None:
        if self._on_terminal is None:
            return
        try:
            self._on_terminal(error)
        except Exception:
            logger.exception("terminal_callback_failed", subscription=self._name)

    async def _close_quietly(self, subscription: Subscription) -> None:
        try:
            await subscription.close()
        except Exception as exc:
            logger.warning("subscription_close_failed", subscription=self._name, error=str(exc))


class PushMailSource(MailSource):
    """Subscribe to new-mail notifications and resolve them to mail items.

    Collaborator callbacks may arrive on any thread and are marshalled onto
    the event loop that called :meth:`start`.  Notification batches are
    handled strictly one at a time by a single worker task.
    """

    def __init__(
        self,
        client: MailboxClient,
        folder: str,
        on_item: ItemCallback,
        *,
        retry: RetryConfig,
        event_kinds: Sequence[str] = NEW_MAIL_EVENTS,
        on_terminal: TerminalCallback | None = None,
    ) -> None:
        self._client = client
        self._folder = folder
        self._on_item = on_item
        self._event_kinds = tuple(event_kinds)
        self.connection = ConnectionManager(
            self._subscribe,
            retry=retry,
            name=f"push-{folder}",
            on_terminal=on_terminal,
        )

        self._lock = threading.Lock()
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[list[str] | None] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()

        self._notifications_received: int = 0
        self._resolve_failures: int = 0

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the worker and open the subscription.

        Raises if the subscription cannot be opened; the source is then
        left stopped.
        """
        with self._lock:
            if self._running:
                return
            self._running = True
            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue()

        self._worker = asyncio.create_task(self._run_worker(), name=f"push-{self._folder}")
        try:
            await self.connection.open()
        except Exception:
            await self.stop()
            raise
        logger.info("push_started", folder=self._folder, events=list(self._event_kinds))

    async def stop(self) -> None:
        """Close the subscription and stop the worker."""
        with self._lock:
            if not self._running:
                return
            self._running = False

        await self.connection.close()

        self._queue.put_nowait(None)
        worker, self._worker = self._worker, None
        if worker is not None:
            await worker

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        logger.info("push_stopped", folder=self._folder)

    async def health_check(self) -> dict[str, object]:
        return {
            "mode": "push",
            "folder": self._folder,
            "connection_state": self.connection.state.value,
            "reconnects": self.connection.reconnects,
            "notifications_received": self._notifications_received,
            "resolve_failures": self._resolve_failures,
        }

    # ------------------------------------------------------------------
    # Collaborator callbacks (any thread)
    # ------------------------------------------------------------------

    async def _subscribe(self) -> Subscription:
        return await self._client.subscribe(
            self._folder,
            self._event_kinds,
            self._on_notification,
            self._on_disconnect,
        )

    def _on_notification(self, ids: Sequence[str]) -> None:
        if not self.running or self._loop is None:
            return
        batch = list(ids)
        self._call_on_loop(self._queue.put_nowait, batch)

    def _on_disconnect(self, error: BaseException | None) -> None:
        if not self.connection.desired_running:
            logger.debug("disconnect_after_stop", folder=self._folder)
            return
        self._call_on_loop(self._spawn_disconnect, error)

    def _call_on_loop(self, callback: Callable[..., object], *args: object) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.warning("event_loop_closed", folder=self._folder)

    def _spawn_disconnect(self, error: BaseException | None) -> None:
        task = asyncio.create_task(self.connection.handle_disconnect(error))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run_worker(self) -> None:
        while True:
            batch = await self._queue.get()
            if batch is None:
                break
            await self._handle_batch(batch)

    async def _handle_batch(self, ids: list[str]) -> None:
        self._notifications_received += 1
        if not ids or not self.running:
            return
        try:
            items = await self._client.resolve(ids)
        except Exception as exc:
            self._resolve_failures += 1
            logger.warning("resolve_failed", folder=self._folder, ids=ids, error=str(exc))
            return

        logger.debug("notification_resolved", folder=self._folder, count=len(items))
        for item in items:
            if not self.running:
                return
            try:
                self._on_item(item)
            except Exception:
                logger.exception("item_handler_failed", item_id=item.id)
