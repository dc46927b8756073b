import secrets
from typing import Any, Dict

import asyncpg

from gorillionaire.core.database import require_pool
from gorillionaire.core.errors import NotFoundError, ValidationError
from gorillionaire.core.logger import Logger
from gorillionaire.clients.notifier import discord_xp_webhook
from gorillionaire.models import REFERRAL_BONUS, ActivityType, iso, normalize_page, total_pages
from gorillionaire.services.activity import activity_service, award_points

logger = Logger("ReferralService")

REFERRAL_POINTS = 100
REWARDED_REFERRALS = 3
ELIGIBILITY_MAX_ACTIVITIES = 3


def generate_referral_code() -> str:
    """8 upper-case hex characters."""
    return secrets.token_hex(4).upper()


def referral_points(already_referred: int) -> int:
    """Only a referrer's first few referrals earn points."""
    return REFERRAL_POINTS if already_referred < REWARDED_REFERRALS else 0


def _referred_user_json(row) -> Dict[str, Any]:
    return {
        "address": row["address"],
        "joinedAt": iso(row["joined_at"]),
        "pointsEarned": row["points_earned"],
        "totalPoints": row["total_points"] or 0,
        "nadName": row["nad_name"],
        "nadAvatar": row["nad_avatar"],
    }


REFERRED_USERS_QUERY = """
    SELECT ru.address, ru.joined_at, ru.points_earned,
           u.points AS total_points, u.nad_name, u.nad_avatar
    FROM referred_users ru
    LEFT JOIN user_activity u ON u.address = ru.address
    WHERE ru.referral_id = $1
    ORDER BY ru.joined_at DESC
"""


class ReferralService:

    async def generate_code(self, address: str) -> Dict[str, str]:
        address = address.lower()
        pool = require_pool()
        existing = await pool.fetchval(
            "SELECT referral_code FROM referrals WHERE referrer_address = $1", address
        )
        if existing:
            return {"referralCode": existing, "message": "Referral code already exists"}

        # Retry on the unlikely code collision
        for _ in range(5):
            code = generate_referral_code()
            try:
                await pool.execute(
                    "INSERT INTO referrals (referrer_address, referral_code) VALUES ($1, $2)", address, code
                )
                return {"referralCode": code, "message": "Referral code generated successfully"}
            except asyncpg.UniqueViolationError:
                existing = await pool.fetchval(
                    "SELECT referral_code FROM referrals WHERE referrer_address = $1", address
                )
                if existing:
                    return {"referralCode": existing, "message": "Referral code already exists"}
        raise RuntimeError("Could not allocate a unique referral code")

    async def stats(self, address: str) -> Dict[str, Any]:
        pool = require_pool()
        referral = await pool.fetchrow(
            "SELECT * FROM referrals WHERE referrer_address = $1", address.lower()
        )
        if not referral:
            return {"referralCode": None, "totalReferred": 0, "totalPointsEarned": 0, "referredUsers": []}

        rows = await pool.fetch(REFERRED_USERS_QUERY, referral["id"])
        return {
            "referralCode": referral["referral_code"],
            "totalReferred": len(rows),
            "totalPointsEarned": referral["total_points_earned"],
            "referredUsers": [_referred_user_json(row) for row in rows],
        }

    async def list_referrals(self, address: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit)
        pool = require_pool()
        referral_id = await pool.fetchval(
            "SELECT id FROM referrals WHERE referrer_address = $1", address.lower()
        )
        if referral_id is None:
            return {"referrals": [], "pagination": {"total": 0, "page": page, "limit": limit, "totalPages": 0}}

        total = await pool.fetchval("SELECT COUNT(*) FROM referred_users WHERE referral_id = $1", referral_id)
        rows = await pool.fetch(REFERRED_USERS_QUERY + " LIMIT $2 OFFSET $3", referral_id, limit, offset)
        return {
            "referrals": [_referred_user_json(row) for row in rows],
            "pagination": {"total": total, "page": page, "limit": limit, "totalPages": total_pages(total, limit)},
        }

    async def process(self, referral_code: str, new_user_address: str) -> Dict[str, Any]:
        new_user_address = new_user_address.lower()
        pool = require_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                referral = await conn.fetchrow(
                    "SELECT * FROM referrals WHERE referral_code = $1 FOR UPDATE", referral_code.strip().upper()
                )
                if not referral:
                    raise NotFoundError("Invalid referral code")
                if referral["referrer_address"] == new_user_address:
                    raise ValidationError("Cannot refer yourself")

                already = await conn.fetchval(
                    "SELECT 1 FROM referred_users WHERE address = $1", new_user_address
                )
                if already:
                    raise ValidationError("User already has a referrer")

                count = await conn.fetchval(
                    "SELECT COUNT(*) FROM referred_users WHERE referral_id = $1", referral["id"]
                )
                points = referral_points(count)

                try:
                    await conn.execute("""
                        INSERT INTO referred_users (referral_id, address, points_earned)
                        VALUES ($1, $2, $3)
                    """, referral["id"], new_user_address, points)
                except asyncpg.UniqueViolationError:
                    raise ValidationError("User already has a referrer")

                await conn.execute(
                    "UPDATE referrals SET total_points_earned = total_points_earned + $2 WHERE id = $1",
                    referral["id"], points,
                )

                referrer = referral["referrer_address"]
                has_activity = await conn.fetchval("SELECT 1 FROM user_activity WHERE address = $1", referrer)
                if has_activity:
                    await award_points(
                        conn, referrer, REFERRAL_BONUS, points, ActivityType.REFERRAL,
                        referral_id=str(referral["id"]), referred_user_address=new_user_address,
                    )

        if has_activity:
            await activity_service.invalidate_weekly_cache()
            await discord_xp_webhook.report_points(referrer, points, REFERRAL_BONUS)

        logger.info(f"Referral processed: {referrer} -> {new_user_address} (+{points})")
        return {
            "message": "Referral processed successfully",
            "referrerAddress": referrer,
            "pointsAwarded": points,
        }

    async def check_referrer(self, address: str) -> Dict[str, Any]:
        pool = require_pool()
        row = await pool.fetchrow("""
            SELECT r.referrer_address, ru.joined_at
            FROM referred_users ru JOIN referrals r ON r.id = ru.referral_id
            WHERE ru.address = $1
        """, address.lower())
        if not row:
            return {"hasReferrer": False, "referrerAddress": None, "joinedAt": None}
        return {"hasReferrer": True, "referrerAddress": row["referrer_address"], "joinedAt": iso(row["joined_at"])}

    async def check_eligibility(self, address: str) -> Dict[str, Any]:
        address = address.lower()
        pool = require_pool()
        has_referrer = bool(await pool.fetchval("SELECT 1 FROM referred_users WHERE address = $1", address))
        activities = await pool.fetchval("SELECT COUNT(*) FROM activities WHERE address = $1", address)
        return {
            "hasReferrer": has_referrer,
            "activitiesCount": activities,
            "isEligible": not has_referrer and activities < ELIGIBILITY_MAX_ACTIVITIES,
        }


referral_service = ReferralService()
