"""Data models shared by the mail sources, cache, normalizer and adapter."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class MailAddress(BaseModel):
    """A mailbox address with an optional display name."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(description="SMTP address (e.g. alice@example.com)")
    name: str = Field(default="", description="Display name, empty if unknown")


class MailItem(BaseModel):
    """A single message retrieved from the mailbox service.

    Immutable once observed.  ``id`` is the mailbox service's opaque item
    identifier and doubles as the conversation key.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Opaque identifier, unique per mailbox")
    subject: str = Field(default="", description="Subject line")
    body: str = Field(default="", description="Plain-text body")
    sender: MailAddress = Field(description="Originating address")
    recipients: list[MailAddress] = Field(
        default_factory=list,
        description="To recipients of the message",
    )
    received_at: AwareDatetime = Field(
        description="When the mailbox received the item; naive timestamps are rejected",
    )


class ChatMessage(BaseModel):
    """Canonical chat message handed to the bot core."""

    model_config = ConfigDict(frozen=True)

    conversation_key: str = Field(description="Key used to correlate replies (the mail item id)")
    sender_id: str = Field(description="Sender address")
    sender_name: str = Field(description="Sender display name")
    body: str = Field(description="Normalized message text")
    received_at: AwareDatetime = Field(description="When the originating mail was received")


@dataclass(frozen=True)
class CacheEntry:
    """One remembered mail item, owned by :class:`~mailbridge.cache.ConversationCache`."""

    conversation_key: str
    item: MailItem
    inserted_at: float


class ConnectionState(str, Enum):
    """Lifecycle state of a push subscription."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class AdapterStatus(str, Enum):
    """Runtime status of an :class:`~mailbridge.adapter.ExchangeAdapter`."""

    DISABLED = "disabled"
    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"


class HealthStatus(BaseModel):
    """Response model for the ``/health`` endpoint."""

    adapter_id: str = Field(description="Identifier of the adapter instance")
    status: AdapterStatus = Field(description="Current adapter status")
    uptime_seconds: float = Field(description="Seconds since the adapter started")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Adapter-specific details (connection state, counters, cache size)",
    )
