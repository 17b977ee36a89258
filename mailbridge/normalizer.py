"""MessageNormalizer: turns a MailItem into the bot core's ChatMessage.

Normalization is pure data transformation, no I/O.  The body is passed
through an ordered list of independent steps; each step receives the
original item (for recipients, sender, ...) and the body produced so far.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

import structlog

from .models import ChatMessage, MailItem

logger = structlog.get_logger()

NormalizationStep = Callable[[MailItem, str], str]


def strip_signature(item: MailItem, body: str) -> str:
    """Keep only the first paragraph of *body*.

    The body is cut at the first blank (whitespace-only) line that follows
    some content, so ``"Hello\\n\\nThanks,\\nBob"`` becomes ``"Hello"``.
    """
    kept: list[str] = []
    for line in body.splitlines():
        if line.strip():
            kept.append(line)
        elif kept:
            break
    return "\n".join(kept).strip()


class ImplicitCommand:
    """Address a mail sent solely to the bot's mailbox to the bot by name.

    When the only recipient is *bot_address* and the body does not already
    start with *bot_name* (case-insensitive), ``"<bot_name>, "`` is
    prepended so the bot core treats the mail as a command.
    """

    def __init__(self, bot_name: str, bot_address: str) -> None:
        self._bot_name = bot_name
        self._bot_address = bot_address.strip().lower()

    def __call__(self, item: MailItem, body: str) -> str:
        if not body or not self._addressed_solely_to_bot(item):
            return body
        if body.lower().startswith(self._bot_name.lower()):
            return body
        return f"{self._bot_name}, {body}"

    def _addressed_solely_to_bot(self, item: MailItem) -> bool:
        if len(item.recipients) != 1:
            return False
        return item.recipients[0].address.strip().lower() == self._bot_address


class MessageNormalizer:
    """Apply normalization steps and build a :class:`ChatMessage`.

    Use :meth:`from_options` to get the standard step list, or pass a
    custom list of steps directly.
    """

    def __init__(self, steps: Sequence[NormalizationStep] = ()) -> None:
        self._steps = list(steps)

    @classmethod
    def from_options(
        cls,
        *,
        bot_name: str,
        bot_address: str,
        trim_signature: bool = True,
        allow_implicit_command: bool = True,
    ) -> MessageNormalizer:
        steps: list[NormalizationStep] = []
        if trim_signature:
            steps.append(strip_signature)
        if allow_implicit_command:
            steps.append(ImplicitCommand(bot_name, bot_address))
        return cls(steps)

    @property
    def steps(self) -> list[NormalizationStep]:
        return list(self._steps)

    def normalize(self, item: MailItem) -> ChatMessage | None:
        """Return the chat message for *item*, or ``None`` if its body ends up empty."""
        body = item.body.strip()
        for step in self._steps:
            body = step(item, body).strip()

        if not body:
            logger.debug("message_skipped_empty_body", conversation_key=item.id)
            return None

        return ChatMessage(
            conversation_key=item.id,
            sender_id=item.sender.address,
            sender_name=item.sender.name or item.sender.address,
            body=body,
            received_at=item.received_at,
        )

