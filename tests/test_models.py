"""Tests for mailbridge.models."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from mailbridge.models import AdapterStatus, ChatMessage, ConnectionState, MailAddress, MailItem


class TestMailItem:
    def test_naive_received_at_rejected(self):
        with pytest.raises(ValidationError):
            MailItem(
                id="m1",
                sender=MailAddress(address="alice@example.com"),
                received_at=datetime(2030, 1, 1),
            )

    def test_aware_received_at_accepted(self, later):
        item = MailItem(
            id="m1", sender=MailAddress(address="alice@example.com"), received_at=later(0)
        )
        assert item.received_at == later(0)
        assert item.subject == ""
        assert item.recipients == []

    def test_frozen(self, item_factory):
        item = item_factory("m1")
        with pytest.raises(ValidationError):
            item.body = "changed"


class TestChatMessage:
    def test_naive_received_at_rejected(self):
        with pytest.raises(ValidationError):
            ChatMessage(
                conversation_key="m1",
                sender_id="alice@example.com",
                sender_name="Alice",
                body="hi",
                received_at=datetime(2030, 1, 1),
            )


class TestEnums:
    def test_values(self):
        assert ConnectionState.CONNECTED.value == "connected"
        assert AdapterStatus.DEGRADED.value == "degraded"
