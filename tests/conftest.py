"""Shared fixtures: a fresh store + hub + app per test, sync and async HTTP clients."""

from __future__ import annotations

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from main import create_app
from services.broadcast_hub import BroadcastHub
from services.event_store import EventStore


@pytest.fixture
def store() -> EventStore:
    return EventStore()


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub()


@pytest.fixture
def app(store, hub):
    return create_app(store=store, hub=hub)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest_asyncio.fixture
async def http(app):
    """HTTPX async client against the app (no network)."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://hq.test") as c:
        yield c
