"""
API tests for generated signals and user reactions.
"""

from datetime import datetime

import asyncpg
import pytest

from gorillionaire.core.timezone import UTC


def reaction_row(**overrides):
    row = {
        "id": 1,
        "user_address": "0xabc",
        "signal_id": "42",
        "choice": "No",
        "created_at": datetime(2025, 3, 1, tzinfo=UTC),
        "symbol": "CHOG",
        "action_type": "Buy",
        "price_at_signal": 0.0123,
    }
    row.update(overrides)
    return row


class TestGeneratedSignals:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list_splits_buy_and_sell(self, client, mock_pool, sample_signal_row):
        mock_pool.fetch.side_effect = [[sample_signal_row], []]
        mock_pool.fetchval.side_effect = [1, 0]

        response = await client.get("/signals/generated-signals")

        assert response.status_code == 200
        data = response.json()
        signal = data["buySignals"][0]
        assert signal["id"] == "42"
        assert signal["type"] == "Buy"
        assert signal["confidenceScore"] == "8.50"
        assert signal["level"] == "Conservative"
        assert signal["events"] == ["Transfer event: 10 CHOG moved", "Spike event: CHOG had 40 transfers"]
        assert data["sellSignals"] == []
        assert data["pagination"]["buy"] == {"total": 1, "page": 1, "limit": 5, "pages": 1}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list_attaches_user_choice(self, client, mock_pool, sample_signal_row):
        mock_pool.fetch.side_effect = [[sample_signal_row], [], [reaction_row()]]
        mock_pool.fetchval.side_effect = [1, 0]

        response = await client.get("/signals/generated-signals", params={"userAddress": "0xABC"})

        signal = response.json()["buySignals"][0]
        assert signal["userSignal"]["choice"] == "No"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_get_unknown_signal(self, client, mock_pool):
        response = await client.get("/signals/generated-signals/not-a-number")
        assert response.status_code == 404
        assert response.json() == {"error": "Signal not found"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_get_signal_with_reactions(self, client, mock_pool, sample_signal_row):
        mock_pool.fetchrow.return_value = sample_signal_row
        mock_pool.fetch.return_value = [reaction_row(choice="Yes")]

        response = await client.get("/signals/generated-signals/42")

        assert response.status_code == 200
        data = response.json()
        assert data["signal"]["token"] == "CHOG"
        assert data["userSignals"][0]["choice"] == "Yes"


class TestUserSignal:
    """POST /signals/generated-signals/user-signal"""

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_missing_fields_listed(self, client, mock_pool):
        response = await client.post(
            "/signals/generated-signals/user-signal", json={"userAddress": "0xabc"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: signalId, choice"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_invalid_choice(self, client, mock_pool):
        response = await client.post(
            "/signals/generated-signals/user-signal",
            json={"userAddress": "0xabc", "signalId": "42", "choice": "Maybe"},
        )
        assert response.status_code == 400
        assert "Invalid choice" in response.json()["error"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_refusal_awards_points(self, client, mock_pool):
        mock_pool.fetchval.return_value = 1
        mock_pool.conn.fetchval.side_effect = [1, 80]
        mock_pool.conn.fetchrow.return_value = reaction_row()

        response = await client.post(
            "/signals/generated-signals/user-signal",
            json={"userAddress": "0xABC", "signalId": "42", "choice": "No"},
            headers={"Authorization": "Bearer good-token"},
        )

        assert response.status_code == 200
        assert response.json()["choice"] == "No"
        activity = [
            call.args for call in mock_pool.conn.execute.await_args_list
            if "INSERT INTO activities" in call.args[0]
        ]
        assert activity[0][1:5] == ("0xabc", "Signal Refused", 5, "42")

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_refusal_requires_user_activity(self, client, mock_pool):
        mock_pool.fetchval.return_value = 1
        mock_pool.conn.fetchval.return_value = None

        response = await client.post(
            "/signals/generated-signals/user-signal",
            json={"userAddress": "0xabc", "signalId": "42", "choice": "No"},
            headers={"Authorization": "Bearer good-token"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "User activity not found"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_duplicate_reaction_rejected(self, client, mock_pool):
        mock_pool.fetchval.return_value = 1
        mock_pool.conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        response = await client.post(
            "/signals/generated-signals/user-signal",
            json={"userAddress": "0xabc", "signalId": "42", "choice": "Yes"},
            headers={"Authorization": "Bearer good-token"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "User signal already exists"}
        mock_pool.conn.execute.assert_not_awaited()


class TestUserSignalV2:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_create(self, client, mock_pool):
        mock_pool.fetchrow.return_value = reaction_row(choice="Yes")

        response = await client.post("/signals/v2/user-signal", json={
            "userAddress": "0xABC",
            "signalId": "42",
            "choice": "Yes",
            "symbol": "chog",
            "actionType": "Buy",
            "priceAtSignal": 0.0123,
        })

        assert response.status_code == 201
        assert response.json()["symbol"] == "CHOG"
        args = mock_pool.fetchrow.await_args.args
        assert args[1:6] == ("0xabc", "42", "Yes", "CHOG", "Buy")

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_invalid_action_type(self, client, mock_pool):
        response = await client.post("/signals/v2/user-signal", json={
            "userAddress": "0xabc",
            "signalId": "42",
            "choice": "Yes",
            "symbol": "CHOG",
            "actionType": "Hold",
            "priceAtSignal": 1.0,
        })
        assert response.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list(self, client, mock_pool):
        mock_pool.fetch.return_value = [reaction_row(), reaction_row(id=2, signal_id="43")]

        response = await client.get("/signals/v2/user-signal/0xABC")

        assert response.status_code == 200
        assert [s["signalId"] for s in response.json()["userSignals"]] == ["42", "43"]
        assert mock_pool.fetch.await_args.args[1] == "0xabc"
