"""ExchangeAdapter: wires a mailbox to the bot core and runs the bridge.

The host creates one adapter per mailbox and calls::

    await adapter.run()     # connect and start watching
    await adapter.send(conversation_key, ["line 1", "line 2"])
    await adapter.close()

Nothing raised by the mailbox collaborator escapes these calls; failures
are logged and reflected in :attr:`ExchangeAdapter.status`.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

import structlog

from .cache import ConversationCache
from .config import BridgeConfig
from .dispatch import ChatDispatcher, Receive
from .interface import Connect, MailboxClient, MailSource
from .models import AdapterStatus, MailItem
from .normalizer import MessageNormalizer
from .polling import PollingMailSource
from .push import PushMailSource
from .replies import ReplyDispatcher
from .retry import with_retry

logger = structlog.get_logger()


class ExchangeAdapter:
    """Bridge between one mailbox and the bot core.

    ``run()`` builds the pipeline::

        MailSource -> ConversationCache (dedup) -> MessageNormalizer
                   -> ChatDispatcher -> receive()

    and ``send()`` goes through :class:`ReplyDispatcher`.
    """

    def __init__(
        self,
        config: BridgeConfig,
        connect: Connect,
        receive: Receive,
        *,
        adapter_id: str = "exchange",
    ) -> None:
        self.config = config
        self.adapter_id = adapter_id
        self.status: AdapterStatus = AdapterStatus.STARTING
        self.start_time: float = time.monotonic()

        self._connect = connect
        self._log = logger.bind(adapter_id=adapter_id)

        self.cache = ConversationCache(
            config.max_cached_messages,
            config.cache_window_seconds,
        )
        self.dispatcher = ChatDispatcher(receive, maxsize=config.dispatch_queue_size)
        self.normalizer: MessageNormalizer | None = None
        self.source: MailSource | None = None
        self.replies: ReplyDispatcher | None = None
        self._client: MailboxClient | None = None

        self._messages_ingested: int = 0
        self._duplicates_skipped: int = 0
        self._messages_skipped: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect to the mailbox and start watching it.

        Returns once the source is running (or the adapter gave up).
        """
        if self.status is AdapterStatus.RUNNING:
            return

        mailbox = self.config.mailbox
        if not mailbox.is_configured:
            self.status = AdapterStatus.DISABLED
            self._log.warning(
                "adapter_disabled_missing_config",
                email_set=bool(mailbox.email),
                password_set=mailbox.password is not None,
            )
            return

        if self.source is not None:
            # Left over from a run that degraded after starting.
            await self.source.stop()

        self.status = AdapterStatus.STARTING
        self.start_time = time.monotonic()
        self._log.info("adapter_starting", mailbox=mailbox.email, push=mailbox.use_push)

        try:
            self._client = await self._connect_with_retry()
        except Exception as exc:
            self.status = AdapterStatus.DEGRADED
            self._log.error("mailbox_connect_failed", mailbox=mailbox.email, error=str(exc))
            return

        assert mailbox.email is not None
        self.normalizer = MessageNormalizer.from_options(
            bot_name=self.config.bot_name,
            bot_address=mailbox.email,
            trim_signature=self.config.trim_signature,
            allow_implicit_command=self.config.allow_implicit_command,
        )
        self.replies = ReplyDispatcher(
            self._client,
            self.cache,
            separator=self.config.reply_separator,
        )
        self.source = self._build_source(self._client)

        await self.dispatcher.start()
        try:
            await self.source.start()
        except Exception as exc:
            self.status = AdapterStatus.DEGRADED
            self._log.error("mail_source_start_failed", error=str(exc))
            await self.dispatcher.stop()
            return

        self.status = AdapterStatus.RUNNING
        self._log.info("adapter_running", mailbox=mailbox.email)

    async def close(self) -> None:
        """Stop watching the mailbox; safe to call repeatedly."""
        if self.status in (AdapterStatus.STOPPED, AdapterStatus.DISABLED):
            return
        self.status = AdapterStatus.STOPPING
        if self.source is not None:
            await self.source.stop()
        await self.dispatcher.stop()
        self.status = AdapterStatus.STOPPED
        self._log.info("adapter_stopped")

    async def _connect_with_retry(self) -> MailboxClient:
        mailbox = self.config.mailbox
        assert mailbox.email is not None and mailbox.password is not None

        @with_retry(self.config.retry, operation="connect")
        async def _connect() -> MailboxClient:
            return await self._connect(
                mailbox.email,
                mailbox.password.get_secret_value(),
                mailbox.url,
            )

        return await _connect()

    def _build_source(self, client: MailboxClient) -> MailSource:
        mailbox = self.config.mailbox
        if mailbox.use_push:
            return PushMailSource(
                client,
                mailbox.folder,
                self._on_item,
                retry=self.config.retry,
                on_terminal=self._on_source_lost,
            )
        return PollingMailSource(
            client,
            mailbox.folder,
            self._on_item,
            interval_seconds=self.config.poll_interval_seconds,
            retrieve_count=self.config.retrieve_count,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def _on_item(self, item: MailItem) -> None:
        """Dedup, normalize and hand one mail item to the bot core."""
        if not self.cache.insert(item):
            self._duplicates_skipped += 1
            self._log.debug("duplicate_mail_skipped", item_id=item.id)
            return

        assert self.normalizer is not None
        message = self.normalizer.normalize(item)
        if message is None:
            self._messages_skipped += 1
            return

        if self.dispatcher.submit(message):
            self._messages_ingested += 1

    def _on_source_lost(self, error: BaseException | None) -> None:
        """The push subscription ended for good; stop reporting ready."""
        if self.status is not AdapterStatus.RUNNING:
            return
        self.status = AdapterStatus.DEGRADED
        self._log.error(
            "mail_source_lost",
            mailbox=self.config.mailbox.email,
            error=str(error) if error else None,
        )

    # ------------------------------------------------------------------
    # Bot core -> mailbox
    # ------------------------------------------------------------------

    async def send(self, conversation_key: str, lines: str | Sequence[str]) -> bool:
        """Reply to the mail thread identified by *conversation_key*."""
        if self.replies is None or self.status is not AdapterStatus.RUNNING:
            self._log.warning(
                "send_while_not_running",
                conversation_key=conversation_key,
                status=self.status.value,
            )
            return False
        return await self.replies.send(conversation_key, lines)

    async def send_new(self, to: str, subject: str, lines: str | Sequence[str]) -> bool:
        """Start a new mail thread with *to*."""
        if self.replies is None or self.status is not AdapterStatus.RUNNING:
            self._log.warning("send_while_not_running", recipient=to, status=self.status.value)
            return False
        return await self.replies.compose(to, subject, lines)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, object]:
        details: dict[str, object] = {
            "mailbox": self.config.mailbox.email,
            "messages_ingested": self._messages_ingested,
            "duplicates_skipped": self._duplicates_skipped,
            "messages_skipped": self._messages_skipped,
            "cached_conversations": len(self.cache),
            "dispatch_pending": self.dispatcher.pending,
            "dispatch_dropped": self.dispatcher.dropped,
        }
        if self.replies is not None:
            details["replies_sent"] = self.replies.replies_sent
            details["reply_misses"] = self.replies.misses
        if self.source is not None:
            details.update(await self.source.health_check())
        return details
