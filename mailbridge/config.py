"""Bridge configuration loaded from environment variables.

Uses pydantic-settings so every option can be set through the same
``MMBOT_EXCHANGE_*`` variables the bot host already exports.
"""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class MailboxConfig(BaseSettings):
    """Mailbox account and connection settings."""

    model_config = {"env_prefix": "MMBOT_EXCHANGE_"}

    email: str | None = Field(
        default=None,
        description="Bot mailbox address (required to enable the adapter)",
    )
    password: SecretStr | None = Field(
        default=None,
        description="Mailbox credential (required to enable the adapter)",
    )
    url: str | None = Field(
        default=None,
        description="Mailbox service URL; resolved by discovery when unset",
    )
    folder: str = Field(default="Inbox", description="Folder to watch for new mail")
    use_push: bool = Field(
        default=True,
        description="Use push notifications instead of polling",
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.email) and self.password is not None and bool(
            self.password.get_secret_value()
        )


class RetryConfig(BaseSettings):
    """Retry / backoff settings for connect and subscription open, driven by Tenacity."""

    model_config = {"env_prefix": "MMBOT_EXCHANGE_RETRY_"}

    max_attempts: int = Field(default=3, gt=0, description="Maximum attempts per operation")
    initial_wait_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, gt=0, description="Exponential backoff multiplier")


class BridgeConfig(BaseSettings):
    """Root configuration for the mailbox bridge.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "MMBOT_EXCHANGE_"}

    bot_name: str = Field(default="mmbot", description="Name the bot answers to")
    trim_signature: bool = Field(
        default=True,
        description="Cut message bodies at the first blank line",
    )
    allow_implicit_command: bool = Field(
        default=True,
        description="Address mail sent only to the bot to the bot by name",
    )
    poll_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Seconds between poll cycles (polling mode)",
    )
    retrieve_count: int = Field(
        default=10,
        gt=0,
        description="Maximum mail items fetched per poll cycle",
    )
    max_cached_messages: int = Field(
        default=100,
        gt=0,
        description="Capacity of the conversation cache",
    )
    cache_window_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Age after which a conversation can no longer be replied to",
    )
    reply_separator: str = Field(
        default="\n",
        description="Separator used to join reply lines into one mail body",
    )
    dispatch_queue_size: int = Field(
        default=1000,
        gt=0,
        description="Maximum chat messages waiting for the bot core",
    )

    mailbox: MailboxConfig = Field(default_factory=MailboxConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
