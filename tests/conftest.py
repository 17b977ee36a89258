"""Shared test fixtures for the mailbridge test suite."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from mailbridge.config import BridgeConfig, MailboxConfig, RetryConfig
from mailbridge.models import MailAddress, MailItem

BOT_ADDRESS = "bot@example.com"
T0 = datetime(2025, 6, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSubscription:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeMailboxClient:
    """In-memory mailbox collaborator recording every call.

    ``subscribe`` keeps the callbacks so tests can fire notifications and
    disconnects the way the real service would.
    """

    def __init__(self) -> None:
        self.poll_since = AsyncMock(return_value=[])
        self.resolve = AsyncMock(return_value=[])
        self.reply_all = AsyncMock()
        self.compose_and_send = AsyncMock()
        self.subscriptions: list[FakeSubscription] = []
        self.subscribe_calls: list[tuple[str, tuple[str, ...]]] = []
        self.subscribe_error: BaseException | None = None
        self.on_notification = None
        self.on_disconnect = None

    async def subscribe(self, folder, event_kinds, on_notification, on_disconnect):
        self.subscribe_calls.append((folder, tuple(event_kinds)))
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.on_notification = on_notification
        self.on_disconnect = on_disconnect
        sub = FakeSubscription()
        self.subscriptions.append(sub)
        return sub

    def notify(self, ids: Sequence[str]) -> None:
        assert self.on_notification is not None
        self.on_notification(list(ids))

    def disconnect(self, error: BaseException | None = None) -> None:
        assert self.on_disconnect is not None
        self.on_disconnect(error)


def make_item(
    item_id: str = "item-1",
    *,
    body: str = "Hello",
    sender: str = "alice@example.com",
    sender_name: str = "Alice",
    recipients: Sequence[str] = (BOT_ADDRESS,),
    received_at: datetime | None = None,
    subject: str = "Test Subject",
) -> MailItem:
    return MailItem(
        id=item_id,
        subject=subject,
        body=body,
        sender=MailAddress(address=sender, name=sender_name),
        recipients=[MailAddress(address=r) for r in recipients],
        received_at=received_at or T0,
    )


@pytest.fixture
def item_factory():
    """Factory to create MailItem instances with overrides."""
    return make_item


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailbox_client() -> FakeMailboxClient:
    return FakeMailboxClient()


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=2,
        initial_wait_seconds=0.0,
        max_wait_seconds=0.0,
        multiplier=1.0,
    )


@pytest.fixture
def mailbox_config() -> MailboxConfig:
    return MailboxConfig(
        email=BOT_ADDRESS,
        password="testpass",
        folder="Inbox",
        use_push=True,
    )


@pytest.fixture
def bridge_config(mailbox_config: MailboxConfig, retry_config: RetryConfig) -> BridgeConfig:
    return BridgeConfig(
        bot_name="Bot",
        poll_interval_seconds=0.01,
        retrieve_count=10,
        max_cached_messages=100,
        cache_window_seconds=3600.0,
        mailbox=mailbox_config,
        retry=retry_config,
    )


@pytest.fixture
def later():
    """``later(n)``: T0 plus *n* minutes."""

    def _later(minutes: float) -> datetime:
        return T0 + timedelta(minutes=minutes)

    return _later
