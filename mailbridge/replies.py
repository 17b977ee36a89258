"""ReplyDispatcher: route bot responses back to the originating mail thread."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from .cache import ConversationCache
from .interface import MailboxClient

logger = structlog.get_logger()


def _as_lines(lines: str | Sequence[str]) -> Sequence[str]:
    if isinstance(lines, str):
        return [lines] if lines else []
    return lines


class ReplyDispatcher:
    """Resolve a conversation key to its mail item and reply-all to it.

    A key that is unknown or past the cache window is a logged miss, never
    an error: the bot core sees a silent no-op and the mailbox is not
    contacted.
    """

    def __init__(
        self,
        client: MailboxClient,
        cache: ConversationCache,
        *,
        separator: str = "\n",
    ) -> None:
        self._client = client
        self._cache = cache
        self._separator = separator
        self._replies_sent: int = 0
        self._misses: int = 0

    @property
    def replies_sent(self) -> int:
        return self._replies_sent

    @property
    def misses(self) -> int:
        return self._misses

    async def send(self, conversation_key: str, lines: str | Sequence[str]) -> bool:
        """Reply to the thread behind *conversation_key*.

        Returns ``True`` only when a reply was handed to the mailbox.  A bare
        string is treated as a single line.
        """
        lines = _as_lines(lines)
        if not lines:
            return False

        original = self._cache.lookup(conversation_key)
        if original is None:
            self._misses += 1
            logger.warning("reply_correlation_miss", conversation_key=conversation_key)
            return False

        body = self._separator.join(lines)
        try:
            await self._client.reply_all(original, body)
        except Exception as exc:
            logger.error(
                "reply_failed",
                conversation_key=conversation_key,
                recipient=original.sender.address,
                error=str(exc),
            )
            return False

        self._replies_sent += 1
        logger.info(
            "reply_sent",
            conversation_key=conversation_key,
            recipient=original.sender.address,
            lines=len(lines),
        )
        return True

    async def compose(self, to: str, subject: str, lines: str | Sequence[str]) -> bool:
        """Send a new mail to *to* when there is no thread to reply to."""
        lines = _as_lines(lines)
        if not lines:
            return False

        body = self._separator.join(lines)
        try:
            await self._client.compose_and_send(to, subject, body)
        except Exception as exc:
            logger.error("compose_failed", recipient=to, error=str(exc))
            return False

        logger.info("mail_composed", recipient=to, lines=len(lines))
        return True
