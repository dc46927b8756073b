"""V2 access codes and the per-wallet V2 flag."""

from datetime import datetime
from typing import Any, Dict, List, Optional

import asyncpg

from gorillionaire.core.database import require_pool
from gorillionaire.core.errors import NotFoundError, ValidationError
from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import utc_now
from gorillionaire.models import V2_ACCESS_GRANTED, AccessCode, ActivityType, iso
from gorillionaire.services.activity import activity_service, award_points

logger = Logger("AccessService")

DIRECT_ACCESS = "DIRECT_ACCESS"
V2_ACCESS_POINTS = 100


class AccessService:

    async def _enable_v2(self, conn, address: str, code_used: str, now: datetime) -> bool:
        """Turn V2 on for ``address``. Returns True when it was not already on."""
        user = await conn.fetchrow(
            "SELECT v2_enabled FROM user_activity WHERE address = $1 FOR UPDATE", address
        )
        if user is None:
            await conn.execute("""
                INSERT INTO user_activity (address, points, streak, v2_enabled, v2_enabled_at, v2_access_code_used)
                VALUES ($1, 0, 0, TRUE, $2, $3)
            """, address, now, code_used)
            return True
        if user["v2_enabled"]:
            return False
        await conn.execute("""
            UPDATE user_activity
            SET v2_enabled = TRUE, v2_enabled_at = $2, v2_access_code_used = $3, updated_at = NOW()
            WHERE address = $1
        """, address, now, code_used)
        return True

    async def verify(self, code: str, address: str) -> Dict[str, Any]:
        address = address.lower()
        now = utc_now()
        pool = require_pool()

        if code.strip() == "":
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await self._enable_v2(conn, address, DIRECT_ACCESS, now)
            return {"success": True, "message": "V2 access granted", "v2Enabled": True}

        code = code.strip().upper()
        awarded = False
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT * FROM access_codes WHERE code = $1 AND is_active = TRUE FOR UPDATE", code
                )
                if not row:
                    raise ValidationError("Invalid access code")

                access_code = AccessCode.from_record(row)
                if not access_code.can_redeem():
                    raise ValidationError("Access code has reached maximum redemptions or is expired")

                redeemed = await conn.fetchval(
                    "SELECT 1 FROM access_code_redemptions WHERE code = $1 AND address = $2", code, address
                )
                if redeemed:
                    raise ValidationError("You have already redeemed this access code")

                await conn.execute(
                    "INSERT INTO access_code_redemptions (code, address, redeemed_at) VALUES ($1, $2, $3)",
                    code, address, now,
                )
                await conn.execute("""
                    UPDATE access_codes SET current_redeems = current_redeems + 1, updated_at = NOW()
                    WHERE code = $1
                """, code)

                if await self._enable_v2(conn, address, code, now):
                    await award_points(conn, address, V2_ACCESS_GRANTED, V2_ACCESS_POINTS, ActivityType.OTHER)
                    awarded = True

        if awarded:
            logger.info(f"V2 access granted to {address} with code {code}")
            await activity_service.invalidate_weekly_cache()
        return {"success": True, "message": "Access code redeemed successfully", "v2Enabled": True}

    async def status(self, address: str) -> Dict[str, Any]:
        pool = require_pool()
        user = await pool.fetchrow("""
            SELECT v2_enabled, v2_enabled_at, v2_access_code_used
            FROM user_activity WHERE address = $1
        """, address.lower())
        if not user:
            return {"success": True, "v2Enabled": False}
        return {
            "success": True,
            "v2Enabled": bool(user["v2_enabled"]),
            "enabledAt": iso(user["v2_enabled_at"]),
            "accessCodeUsed": user["v2_access_code_used"],
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Admin
    # ─────────────────────────────────────────────────────────────────────────

    async def create_code(
        self, code: str, created_by: str, max_redeems: int = 1, expires_at: Optional[datetime] = None
    ) -> AccessCode:
        pool = require_pool()
        try:
            row = await pool.fetchrow("""
                INSERT INTO access_codes (code, max_redeems, created_by, expires_at)
                VALUES ($1, $2, $3, $4)
                RETURNING *
            """, code.strip().upper(), max_redeems or 1, created_by, expires_at)
        except asyncpg.UniqueViolationError:
            raise ValidationError("Access code already exists")
        return AccessCode.from_record(row)

    async def list_codes(self) -> List[AccessCode]:
        pool = require_pool()
        rows = await pool.fetch("SELECT * FROM access_codes ORDER BY created_at DESC")
        return [AccessCode.from_record(row) for row in rows]

    async def deactivate(self, code: str) -> AccessCode:
        pool = require_pool()
        row = await pool.fetchrow("""
            UPDATE access_codes SET is_active = FALSE, updated_at = NOW()
            WHERE code = $1
            RETURNING *
        """, code.strip().upper())
        if not row:
            raise NotFoundError("Access code not found")
        return AccessCode.from_record(row)


access_service = AccessService()
