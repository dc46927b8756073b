"""
Pytest configuration and shared fixtures.

This module provides fixtures for:
- A fake asyncpg pool wired into ``db.pool``
- FastAPI test client (lifespan does not run, so nothing connects)
- Auth headers for the indexer and admin keys
- Accepted starlette WebSockets with a controllable peer
"""

import json
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient, ASGITransport

# Set testing environment before importing app modules
os.environ["TESTING"] = "true"
os.environ["LOG_LEVEL"] = "ERROR"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENABLE_JOBS"] = "false"
os.environ["INDEXER_API_KEY"] = "test-indexer-key"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["DATABASE_URL"] = ""
os.environ["REDIS_URL"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["DISCORD_XP_WEBHOOK_URL"] = ""
os.environ["DISCORD_CLIENT_ID"] = "test-client-id"
os.environ["PUBLIC_API_URL"] = "http://test"


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────

class FakeTransaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeConnection:
    """Connection whose query methods are AsyncMocks returning empty results."""

    def __init__(self):
        self.fetch = AsyncMock(return_value=[])
        self.fetchrow = AsyncMock(return_value=None)
        self.fetchval = AsyncMock(return_value=None)
        self.execute = AsyncMock(return_value="INSERT 0 1")
        self.executemany = AsyncMock(return_value=None)

    def transaction(self):
        return FakeTransaction()


class FakePool(FakeConnection):
    def __init__(self):
        super().__init__()
        self.conn = FakeConnection()

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


@pytest.fixture
def mock_pool(monkeypatch):
    """Fake pool installed as ``db.pool``; ``mock_pool.conn`` is the acquired connection."""
    from gorillionaire.core.database import db

    pool = FakePool()
    monkeypatch.setattr(db, "pool", pool)
    monkeypatch.setattr(db, "redis", None)
    return pool


@pytest.fixture
def no_db(monkeypatch):
    from gorillionaire.core.database import db

    monkeypatch.setattr(db, "pool", None)
    monkeypatch.setattr(db, "redis", None)


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI Test Client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create FastAPI app for testing."""
    # Import here to ensure env vars are set first
    from gorillionaire.main import app as fastapi_app
    return fastapi_app


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing API endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def indexer_headers():
    return {"X-API-Key": "test-indexer-key"}


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": "test-admin-key"}


# ─────────────────────────────────────────────────────────────────────────────
# Helper Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_transfer():
    """Transfer payload as the indexer posts it."""
    return {
        "fromAddress": "0x1111111111111111111111111111111111111111",
        "toAddress": "0x2222222222222222222222222222222222222222",
        "amount": "1500000000000000000000000",
        "transactionHash": "0xabc123",
        "blockNumber": 1234567,
        "blockTimestamp": 1700000000,
        "tokenSymbol": "CHOG",
        "tokenName": "Chog",
        "tokenDecimals": 18,
        "tokenAddress": "0xE0590015A873bF326bd645c3E1266d4db41C4E6B",
    }


@pytest.fixture
def sample_signal_row():
    """A ``generated_signals`` row."""
    from datetime import datetime
    from gorillionaire.core.timezone import UTC

    return {
        "id": 42,
        "created_at": datetime(2025, 3, 1, 12, 0, tzinfo=UTC),
        "token": "CHOG",
        "action": "BUY",
        "quantity": "3000.00",
        "confidence": 8.5,
        "signal_text": "BUY CHOG 3000.00 with a Confidence Score of 8.50",
        "events": "Transfer event: 10 CHOG moved\n\nSpike event: CHOG had 40 transfers\n",
    }


# ─────────────────────────────────────────────────────────────────────────────
# WebSocket Fixtures
# ─────────────────────────────────────────────────────────────────────────────

class PeerTransport:
    """ASGI receive/send pair for a starlette WebSocket; ``gone`` makes sends fail like a dropped peer."""

    def __init__(self):
        self.sent = []
        self.gone = False

    async def receive(self):
        return {"type": "websocket.connect"}

    async def send(self, message):
        if self.gone:
            raise OSError("peer gone")
        self.sent.append(message)

    def texts(self):
        return [json.loads(m["text"]) for m in self.sent if m["type"] == "websocket.send"]


@pytest.fixture
def accepted_socket():
    """Factory returning ``(websocket, transport)`` for an accepted starlette WebSocket."""
    from starlette.websockets import WebSocket

    async def factory(path="/events/token/Chog"):
        transport = PeerTransport()
        scope = {"type": "websocket", "path": path, "headers": [], "query_string": b""}
        websocket = WebSocket(scope, receive=transport.receive, send=transport.send)
        await websocket.accept()
        return websocket, transport

    return factory
