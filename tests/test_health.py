"""Tests for mailbridge.health."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import FastAPI

from mailbridge.adapter import ExchangeAdapter
from mailbridge.health import create_health_app, create_health_router
from mailbridge.models import AdapterStatus


@pytest.fixture
def adapter(bridge_config, mailbox_client) -> ExchangeAdapter:
    return ExchangeAdapter(
        bridge_config,
        AsyncMock(return_value=mailbox_client),
        lambda message: None,
        adapter_id="exchange-test",
    )


@pytest.fixture
def health_app(adapter: ExchangeAdapter):
    return create_health_app(adapter)


async def _get(app, path: str) -> httpx.Response:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        return await client.get(path)


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_health_starting(self, health_app, adapter):
        resp = await _get(health_app, "/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["adapter_id"] == "exchange-test"
        assert data["status"] == "starting"
        assert "uptime_seconds" in data
        assert data["details"]["cached_conversations"] == 0

    @pytest.mark.asyncio
    async def test_health_running_includes_source_details(self, health_app, adapter):
        await adapter.run()
        try:
            resp = await _get(health_app, "/health")
        finally:
            await adapter.close()
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "running"
        assert data["details"]["mode"] == "push"
        assert data["details"]["connection_state"] == "connected"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [AdapterStatus.DEGRADED, AdapterStatus.DISABLED, AdapterStatus.STOPPED],
    )
    async def test_health_unhealthy_returns_503(self, health_app, adapter, status):
        adapter.status = status
        resp = await _get(health_app, "/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == status.value

    @pytest.mark.asyncio
    async def test_ready_when_running(self, health_app, adapter):
        adapter.status = AdapterStatus.RUNNING
        resp = await _get(health_app, "/ready")
        assert resp.status_code == 200
        assert resp.json() == {"ready": True, "status": "running"}

    @pytest.mark.asyncio
    async def test_ready_when_not_running(self, health_app, adapter):
        for status in (AdapterStatus.STARTING, AdapterStatus.DEGRADED, AdapterStatus.STOPPED):
            adapter.status = status
            resp = await _get(health_app, "/ready")
            assert resp.status_code == 503
            assert resp.json()["ready"] is False

    @pytest.mark.asyncio
    async def test_lost_subscription_fails_probes(self, health_app, adapter, mailbox_client):
        await adapter.run()
        mailbox_client.disconnect(OSError("reset"))
        for _ in range(20):
            await asyncio.sleep(0)
        try:
            health = await _get(health_app, "/health")
            ready = await _get(health_app, "/ready")
        finally:
            await adapter.close()

        assert health.status_code == 503
        assert health.json()["details"]["connection_state"] == "disconnected"
        assert ready.status_code == 503
        assert ready.json() == {"ready": False, "status": "degraded"}


class TestHealthRouter:
    @pytest.mark.asyncio
    async def test_mounts_under_prefix(self, adapter):
        app = FastAPI()
        app.include_router(create_health_router(adapter, prefix="/exchange"))

        resp = await _get(app, "/exchange/health")
        assert resp.status_code == 200
        assert resp.json()["adapter_id"] == "exchange-test"

        assert (await _get(app, "/health")).status_code == 404
