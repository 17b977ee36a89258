"""Capability interfaces at the bridge's boundaries.

The mailbox service client is supplied by the host; the bridge only
depends on the small async surface described by :class:`MailboxClient`.
:class:`MailSource` is the ABC both detection strategies implement.
"""

from __future__ import annotations

import abc
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Protocol

from .models import MailItem

NotificationCallback = Callable[[Sequence[str]], None]
DisconnectCallback = Callable[[BaseException | None], None]
ItemCallback = Callable[[MailItem], None]


class Subscription(Protocol):
    """Handle for an open push subscription."""

    async def close(self) -> None: ...


class MailboxClient(Protocol):
    """Async client for the hosted mailbox service.

    ``subscribe`` callbacks may be invoked from any thread; the push
    source marshals them onto its own event loop.
    """

    async def poll_since(
        self, folder: str, since: datetime, limit: int
    ) -> list[MailItem]: ...

    async def subscribe(
        self,
        folder: str,
        event_kinds: Sequence[str],
        on_notification: NotificationCallback,
        on_disconnect: DisconnectCallback,
    ) -> Subscription: ...

    async def resolve(self, ids: Sequence[str]) -> list[MailItem]: ...

    async def reply_all(self, original: MailItem, body: str) -> None: ...

    async def compose_and_send(self, to: str, subject: str, body: str) -> None: ...


Connect = Callable[[str, str, "str | None"], Awaitable[MailboxClient]]
"""``connect(address, password, url)`` returns a logged-in client."""


class MailSource(abc.ABC):
    """Abstract strategy for detecting new mail.

    Concrete sources emit every observed :class:`MailItem` through the
    ``on_item`` callback given at construction.  Emission is
    at-least-once; deduplication is the conversation cache's job.
    """

    @abc.abstractmethod
    async def start(self) -> None:
        """Begin watching the mailbox.  Calling it twice is a no-op."""

    @abc.abstractmethod
    async def stop(self) -> None:
        """Stop watching.  No item is emitted after this returns."""

    @property
    @abc.abstractmethod
    def running(self) -> bool:
        """Whether the source has been started and not yet stopped."""

    async def health_check(self) -> dict[str, object]:
        """Return source-specific health details.

        Override to include connection state, last poll time, etc.
        """
        return {}
