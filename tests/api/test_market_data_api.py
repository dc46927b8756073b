"""
API tests for token prices and holder data.
"""

import json
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from gorillionaire.clients.blockvision import BlockVisionError
from gorillionaire.core.timezone import UTC


def price_row(symbol="CHOG", price=0.0123, **overrides):
    row = {
        "id": 7,
        "token_symbol": symbol,
        "price": price,
        "timestamp": datetime(2025, 3, 1, 12, 0, tzinfo=UTC),
        "block_number": 0,
        "address": "0xpool",
    }
    row.update(overrides)
    return row


@pytest.fixture
def balances(monkeypatch):
    from gorillionaire.services.market import market_service

    client = MagicMock()
    client.retrieve_account_tokens = AsyncMock()
    monkeypatch.setattr(market_service, "client", client)
    return client.retrieve_account_tokens


class TestPrices:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_latest_one_per_symbol(self, client, mock_pool):
        mock_pool.fetch.return_value = [price_row("CHOG", 0.0123), price_row("WMON", 2.5, id=8)]

        response = await client.get("/events/prices/latest")

        assert response.status_code == 200
        data = response.json()["data"]
        assert [item["symbol"] for item in data] == ["CHOG", "WMON"]
        assert data[1]["price"]["price"] == 2.5
        assert "DISTINCT ON (token_symbol)" in mock_pool.fetch.await_args.args[0]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_history_for_symbol(self, client, mock_pool):
        mock_pool.fetch.return_value = [price_row()]

        response = await client.get("/events/prices", params={"symbol": "chog"})

        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "CHOG"
        assert body["data"][0]["timestamp"].startswith("2025-03-01T12:00:00")
        assert mock_pool.fetch.await_args.args[1:] == ("CHOG", 100)

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_history_limit_is_capped(self, client, mock_pool):
        await client.get("/events/prices", params={"symbol": "DAK", "limit": 50000})
        assert mock_pool.fetch.await_args.args[1:] == ("DAK", 1000)

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_history_needs_symbol(self, client, mock_pool):
        response = await client.get("/events/prices")

        assert response.status_code == 400
        assert response.json() == {"error": "Symbol is required"}
        mock_pool.fetch.assert_not_awaited()


class TestHolders:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_latest_snapshot(self, client, mock_pool):
        mock_pool.fetchrow.return_value = {
            "token_name": "CHOG",
            "contract_address": "0xE0590015A873bF326bd645c3E1266d4db41C4E6B",
            "holders": json.dumps({"data": [{"holder": "0x1", "amount": "100"}], "total": 1}),
            "fetched_at": datetime(2025, 3, 1, tzinfo=UTC),
        }

        response = await client.get("/token/holders/0xE0590015A873bF326bd645c3E1266d4db41C4E6B")

        assert response.status_code == 200
        body = response.json()
        assert body["tokenName"] == "CHOG"
        assert body["holders"]["data"][0]["holder"] == "0x1"
        assert mock_pool.fetchrow.await_args.args[1] == "0xe0590015a873bf326bd645c3e1266d4db41c4e6b"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_no_snapshot_yet(self, client, mock_pool):
        response = await client.get("/token/holders/0xabc")

        assert response.status_code == 404
        assert response.json() == {"error": "No holder data for this token"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_user_balances(self, client, no_db, balances):
        balances.return_value = {"data": [{"symbol": "CHOG", "balance": "12.5"}]}

        response = await client.get("/token/holders/user/0xwallet")

        assert response.status_code == 200
        assert response.json() == {"code": 0, "result": {"data": [{"symbol": "CHOG", "balance": "12.5"}]}}
        balances.assert_awaited_once_with("0xwallet")

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_user_balances_upstream_down(self, client, no_db, balances):
        balances.side_effect = BlockVisionError("boom", status=500)

        response = await client.get("/token/holders/user/0xwallet")

        assert response.status_code == 502
        assert response.json() == {"error": "Failed to fetch token balances"}
