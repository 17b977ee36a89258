"""Mailbox-to-chat-bot bridge.

Public API re-exported here for convenience::

    from mailbridge import BridgeConfig, ExchangeAdapter
"""

from .adapter import ExchangeAdapter
from .cache import ConversationCache
from .config import BridgeConfig, MailboxConfig, RetryConfig
from .dispatch import ChatDispatcher
from .health import create_health_app, create_health_router
from .interface import MailboxClient, MailSource, Subscription
from .logging import setup_logging
from .models import (
    AdapterStatus,
    CacheEntry,
    ChatMessage,
    ConnectionState,
    HealthStatus,
    MailAddress,
    MailItem,
)
from .normalizer import ImplicitCommand, MessageNormalizer, strip_signature
from .polling import PollingMailSource
from .push import ConnectionManager, PushMailSource, SubscriptionAbandoned
from .replies import ReplyDispatcher
from .retry import with_retry

__all__ = [
    "AdapterStatus",
    "BridgeConfig",
    "CacheEntry",
    "ChatDispatcher",
    "ChatMessage",
    "ConnectionManager",
    "ConnectionState",
    "ConversationCache",
    "ExchangeAdapter",
    "HealthStatus",
    "ImplicitCommand",
    "MailAddress",
    "MailItem",
    "MailSource",
    "MailboxClient",
    "MailboxConfig",
    "MessageNormalizer",
    "PollingMailSource",
    "PushMailSource",
    "ReplyDispatcher",
    "RetryConfig",
    "Subscription",
    "SubscriptionAbandoned",
    "create_health_app",
    "create_health_router",
    "setup_logging",
    "strip_signature",
    "with_retry",
]
