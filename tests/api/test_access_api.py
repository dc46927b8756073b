"""
API tests for V2 access codes.

Errors on these routes use the ``{"success": false, "message": ...}`` body.
"""

from datetime import datetime, timedelta

import asyncpg
import pytest

from gorillionaire.core.timezone import UTC, utc_now


def code_row(**overrides):
    row = {
        "code": "GORILLA",
        "max_redeems": 5,
        "current_redeems": 0,
        "is_active": True,
        "created_by": "admin",
        "expires_at": None,
        "created_at": datetime(2025, 1, 1, tzinfo=UTC),
    }
    row.update(overrides)
    return row


class TestVerifyAccessCode:
    """POST /access/verify"""

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_missing_address_rejected(self, client, mock_pool):
        response = await client.post("/access/verify", json={"code": "GORILLA"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Code and address are required"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_blank_code_grants_direct_access(self, client, mock_pool):
        response = await client.post("/access/verify", json={"code": "  ", "address": "0xABC"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "V2 access granted", "v2Enabled": True}
        insert_args = mock_pool.conn.execute.await_args.args
        assert "INSERT INTO user_activity" in insert_args[0]
        assert insert_args[1] == "0xabc"
        assert insert_args[3] == "DIRECT_ACCESS"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unknown_code_rejected(self, client, mock_pool):
        mock_pool.conn.fetchrow.return_value = None

        response = await client.post("/access/verify", json={"code": "nope", "address": "0xabc"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid access code"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_exhausted_code_rejected(self, client, mock_pool):
        mock_pool.conn.fetchrow.return_value = code_row(max_redeems=1, current_redeems=1)

        response = await client.post("/access/verify", json={"code": "gorilla", "address": "0xabc"})

        assert response.status_code == 400
        assert response.json()["message"] == "Access code has reached maximum redemptions or is expired"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_expired_code_rejected(self, client, mock_pool):
        mock_pool.conn.fetchrow.return_value = code_row(expires_at=utc_now() - timedelta(days=1))

        response = await client.post("/access/verify", json={"code": "gorilla", "address": "0xabc"})

        assert response.status_code == 400
        assert response.json()["message"] == "Access code has reached maximum redemptions or is expired"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_second_redemption_by_same_address_rejected(self, client, mock_pool):
        mock_pool.conn.fetchrow.return_value = code_row()
        mock_pool.conn.fetchval.return_value = 1

        response = await client.post("/access/verify", json={"code": "gorilla", "address": "0xabc"})

        assert response.status_code == 400
        assert response.json()["message"] == "You have already redeemed this access code"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_redeem_awards_points_once(self, client, mock_pool):
        # code lookup, then the user row inside _enable_v2
        mock_pool.conn.fetchrow.side_effect = [code_row(), {"v2_enabled": False}]
        # not yet redeemed, then the new points total
        mock_pool.conn.fetchval.side_effect = [None, 150]

        response = await client.post("/access/verify", json={"code": "gorilla", "address": "0xABC"})

        assert response.status_code == 200
        assert response.json()["message"] == "Access code redeemed successfully"
        statements = [call.args for call in mock_pool.conn.execute.await_args_list]
        activity = [args for args in statements if "INSERT INTO activities" in args[0]]
        assert len(activity) == 1
        assert activity[0][1:4] == ("0xabc", "V2 Access Granted", 100)
        redemption = [args for args in statements if "access_code_redemptions" in args[0]]
        assert redemption[0][1:3] == ("GORILLA", "0xabc")


class TestAccessStatus:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unknown_user_has_no_access(self, client, mock_pool):
        response = await client.get("/access/status/0xabc")
        assert response.status_code == 200
        assert response.json() == {"success": True, "v2Enabled": False}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_database_down_returns_503(self, client, no_db):
        response = await client.get("/access/status/0xabc")
        assert response.status_code == 503
        assert response.json() == {"error": "Database not connected"}


class TestAccessAdmin:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_missing_admin_key_rejected(self, client, mock_pool):
        response = await client.get("/access/admin/codes")
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Unauthorized"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list_codes(self, client, mock_pool, admin_headers):
        mock_pool.fetch.return_value = [code_row(current_redeems=2)]

        response = await client.get("/access/admin/codes", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["accessCodes"][0]["code"] == "GORILLA"
        assert data["accessCodes"][0]["currentRedeems"] == 2
        assert data["accessCodes"][0]["canRedeem"] is True

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_create_code_uppercases(self, client, mock_pool, admin_headers):
        mock_pool.fetchrow.return_value = code_row(code="NEWCODE", max_redeems=10)

        response = await client.post(
            "/access/admin/create",
            json={"code": "newcode", "maxRedeems": 10, "createdBy": "ops"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["accessCode"]["maxRedeems"] == 10
        args = mock_pool.fetchrow.await_args.args
        assert args[1:4] == ("NEWCODE", 10, "ops")

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_create_duplicate_code(self, client, mock_pool, admin_headers):
        mock_pool.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        response = await client.post(
            "/access/admin/create", json={"code": "GORILLA", "createdBy": "ops"}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Access code already exists"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_deactivate_unknown_code(self, client, mock_pool, admin_headers):
        response = await client.put("/access/admin/deactivate/missing", headers=admin_headers)
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Access code not found"}

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_deactivate_code(self, client, mock_pool, admin_headers):
        mock_pool.fetchrow.return_value = code_row(is_active=False)

        response = await client.put("/access/admin/deactivate/gorilla", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["accessCode"]["isActive"] is False
        assert response.json()["accessCode"]["canRedeem"] is False
