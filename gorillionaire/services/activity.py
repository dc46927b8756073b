"""
User activity, points and leaderboards.

Every point award goes through ``award_points`` so the activity log and the
running total on ``user_activity`` never drift apart, and so the weekly
leaderboard cache is dropped whenever points move.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from gorillionaire.core.database import get_cache, require_pool
from gorillionaire.core.errors import NotFoundError
from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import end_of_week, start_of_week, utc_now
from gorillionaire.clients.notifier import discord_xp_webhook
from gorillionaire.models import (
    ACCOUNT_CONNECTED,
    STREAK_EXTENDED,
    ActivityType,
    activity_to_json,
    iso,
    normalize_page,
    total_pages,
    user_to_json,
)

logger = Logger("ActivityService")

NEW_USER_POINTS = 50
STREAK_BONUS_POINTS = 10
WEEKLY_CACHE_PREFIX = "leaderboard:weekly:"
WEEKLY_CACHE_TTL = 7 * 24 * 3600


def next_streak(last_sign_in: Optional[datetime], streak: int, now: datetime) -> Tuple[int, int]:
    """
    Streak after signing in at ``now``. Returns ``(streak, bonus_points)``.

    More than 48h since the previous sign-in resets to 1, between 24h and 48h
    extends it and earns the bonus, anything newer leaves it alone.
    """
    if last_sign_in is None:
        return 1, 0
    elapsed = now - last_sign_in
    if elapsed > timedelta(hours=48):
        return 1, 0
    if elapsed > timedelta(hours=24):
        return streak + 1, STREAK_BONUS_POINTS
    return streak, 0


async def award_points(
    conn,
    address: str,
    name: str,
    points: int,
    activity_type: ActivityType = ActivityType.OTHER,
    signal_id: str = None,
    referral_id: str = None,
    referred_user_address: str = None,
) -> int:
    """Log an activity and add its points. Returns the user's new total."""
    await conn.execute("""
        INSERT INTO activities (address, name, points, signal_id, referral_id, referred_user_address, activity_type)
        VALUES ($1, $2, $3, $4, $5, $6, $7)
    """, address, name, points, signal_id, referral_id, referred_user_address, activity_type.value)
    total = await conn.fetchval("""
        UPDATE user_activity SET points = points + $2, updated_at = NOW()
        WHERE address = $1
        RETURNING points
    """, address, points)
    return total or 0


class ActivityService:

    # ─────────────────────────────────────────────────────────────────────────
    # Sign-in & points
    # ─────────────────────────────────────────────────────────────────────────

    async def is_token_valid(self, address: str, access_token: str) -> bool:
        if not address or not access_token:
            return False
        pool = require_pool()
        found = await pool.fetchval("""
            SELECT 1 FROM user_auth
            WHERE LOWER(user_address) = $1 AND access_token = $2
        """, address.lower(), access_token)
        return bool(found)

    async def sign_in(self, address: str, now: datetime = None) -> str:
        """Create or refresh a user on sign-in. Returns a status message."""
        address = address.lower()
        now = now or utc_now()
        pool = require_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                user = await conn.fetchrow(
                    "SELECT * FROM user_activity WHERE address = $1 FOR UPDATE", address
                )
                if not user:
                    await conn.execute("""
                        INSERT INTO user_activity (address, points, last_sign_in, streak)
                        VALUES ($1, 0, $2, 1)
                    """, address, now)
                    await award_points(conn, address, ACCOUNT_CONNECTED, NEW_USER_POINTS, ActivityType.SIGNIN)
                    awarded, message = NEW_USER_POINTS, "User activity created"
                else:
                    streak, bonus = next_streak(user["last_sign_in"], user["streak"], now)
                    await conn.execute("""
                        UPDATE user_activity SET last_sign_in = $2, streak = $3, updated_at = NOW()
                        WHERE address = $1
                    """, address, now, streak)
                    if bonus:
                        await award_points(conn, address, STREAK_EXTENDED, bonus, ActivityType.STREAK)
                    awarded, message = bonus, "User activity updated"

        if awarded:
            await self.invalidate_weekly_cache()
            reason = ACCOUNT_CONNECTED if message == "User activity created" else STREAK_EXTENDED
            await discord_xp_webhook.report_points(address, awarded, reason)
        return message

    async def get_points(self, address: str) -> Dict[str, Any]:
        pool = require_pool()
        user = await pool.fetchrow(
            "SELECT points, last_sign_in, is_rewarded FROM user_activity WHERE address = $1",
            address.lower(),
        )
        if not user:
            return {"points": 0}

        if user["is_rewarded"]:
            next_reward = user["last_sign_in"] + timedelta(hours=24)
        else:
            next_reward = utc_now()
        return {
            "points": user["points"],
            "lastSignIn": iso(user["last_sign_in"]),
            "nextRewardAvailable": iso(next_reward),
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Leaderboards
    # ─────────────────────────────────────────────────────────────────────────

    async def referral_totals(self, addresses: List[str], since: datetime = None) -> Dict[str, Dict[str, int]]:
        if not addresses:
            return {}
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT r.referrer_address,
                   COUNT(ru.address) AS total_referred,
                   COALESCE(SUM(ru.points_earned), 0) AS total_points
            FROM referrals r
            LEFT JOIN referred_users ru
                ON ru.referral_id = r.id AND ($2::timestamptz IS NULL OR ru.joined_at >= $2)
            WHERE r.referrer_address = ANY($1::text[])
            GROUP BY r.referrer_address
        """, addresses, since)
        return {
            row["referrer_address"]: {
                "totalReferred": row["total_referred"],
                "totalReferralPoints": int(row["total_points"]),
            }
            for row in rows
        }

    async def leaderboard(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit)
        pool = require_pool()
        users = await pool.fetch("""
            SELECT * FROM user_activity
            ORDER BY points DESC, created_at ASC
            LIMIT $1 OFFSET $2
        """, limit, offset)
        total = await pool.fetchval("SELECT COUNT(*) FROM user_activity")

        referrals = await self.referral_totals([u["address"] for u in users])
        ranked = []
        for index, user in enumerate(users):
            entry = user_to_json(user)
            entry["rank"] = offset + index + 1
            entry.update(referrals.get(user["address"], {"totalReferred": 0, "totalReferralPoints": 0}))
            ranked.append(entry)

        return {
            "users": ranked,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": total_pages(total, limit),
                "hasMore": offset + len(users) < total,
            },
        }

    async def standings_between(self, start: datetime, end: datetime = None) -> List[Dict[str, Any]]:
        """Users ranked by points earned from ``start`` (up to ``end`` when given)."""
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT u.address, u.created_at, u.streak, u.nad_name, u.nad_avatar,
                   SUM(a.points) AS weekly_points,
                   COUNT(*) AS weekly_activities
            FROM activities a
            JOIN user_activity u ON u.address = a.address
            WHERE a.date >= $1 AND ($2::timestamptz IS NULL OR a.date <= $2) AND a.name <> $3
            GROUP BY u.address, u.created_at, u.streak, u.nad_name, u.nad_avatar
            HAVING SUM(a.points) > 0
            ORDER BY weekly_points DESC, u.created_at ASC
        """, start, end, ACCOUNT_CONNECTED)

        return [
            {
                "address": row["address"],
                "createdAt": iso(row["created_at"]),
                "streak": row["streak"],
                "nadName": row["nad_name"],
                "nadAvatar": row["nad_avatar"],
                "weeklyPoints": int(row["weekly_points"]),
                "weeklyActivities": row["weekly_activities"],
            }
            for row in rows
        ]

    async def _weekly_standings(self, week_start: datetime) -> List[Dict[str, Any]]:
        cache = get_cache()
        cache_key = f"{WEEKLY_CACHE_PREFIX}{week_start.date().isoformat()}"
        cached = await cache.get_json(cache_key)
        if cached is not None:
            return cached

        standings = await self.standings_between(week_start)
        await cache.set_json(cache_key, standings, ttl=WEEKLY_CACHE_TTL)
        return standings

    async def invalidate_weekly_cache(self):
        await get_cache().delete(f"{WEEKLY_CACHE_PREFIX}{start_of_week().date().isoformat()}")

    async def weekly_leaderboard(self, page: int = 1, limit: int = 10, now: datetime = None) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit)
        week_start = start_of_week(now)
        standings = await self._weekly_standings(week_start)

        total = len(standings)
        page_users = standings[offset:offset + limit]
        referrals = await self.referral_totals([u["address"] for u in page_users], since=week_start)

        ranked = []
        for index, user in enumerate(page_users):
            entry = dict(user)
            entry["rank"] = offset + index + 1
            entry["points"] = user["weeklyPoints"]
            entry.update(referrals.get(user["address"], {"totalReferred": 0, "totalReferralPoints": 0}))
            ranked.append(entry)

        return {
            "users": ranked,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": total_pages(total, limit),
                "hasMore": offset + len(ranked) < total,
            },
            "weekStart": iso(week_start),
            "weekEnd": iso(end_of_week(now)),
            "totalWeeklyPoints": sum(u["weeklyPoints"] for u in standings),
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Profile
    # ─────────────────────────────────────────────────────────────────────────

    async def _get_user(self, address: str):
        pool = require_pool()
        user = await pool.fetchrow("SELECT * FROM user_activity WHERE address = $1", address.lower())
        if not user:
            raise NotFoundError("User not found")
        return user

    async def get_me(self, address: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit)
        user = await self._get_user(address)
        pool = require_pool()

        activities = await pool.fetch("""
            SELECT * FROM activities WHERE address = $1
            ORDER BY date DESC, id DESC
            LIMIT $2 OFFSET $3
        """, user["address"], limit, offset)
        total = await pool.fetchval("SELECT COUNT(*) FROM activities WHERE address = $1", user["address"])
        ahead = await pool.fetchval("""
            SELECT COUNT(*) FROM user_activity
            WHERE points > $1 OR (points = $1 AND created_at < $2)
        """, user["points"], user["created_at"])

        profile = user_to_json(user)
        profile.update({
            "activitiesList": [activity_to_json(a) for a in activities],
            "rank": ahead + 1,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": total_pages(total, limit),
            },
        })
        return {"userActivity": profile}

    async def get_quests(self, address: str) -> List[Dict[str, Any]]:
        await self._get_user(address)
        pool = require_pool()
        rows = await pool.fetch("SELECT * FROM quests ORDER BY quest_requirement ASC, id ASC")
        return [
            {
                "id": row["id"],
                "questName": row["quest_name"],
                "questDescription": row["quest_description"],
                "questImage": row["quest_image"],
                "questType": row["quest_type"],
                "badgeAwarded": row["badge_awarded"],
                "questRequirement": row["quest_requirement"],
                "questRewardType": row["quest_reward_type"],
                "questRewardAmount": row["quest_reward_amount"],
            }
            for row in rows
        ]

    async def get_badges(self, address: str) -> List[Dict[str, Any]]:
        user = await self._get_user(address)
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT ub.*, b.badge_name, b.badge_description, b.badge_image, b.badge_type
            FROM user_badges ub
            JOIN badges b ON b.id = ub.badge_id
            WHERE ub.address = $1
            ORDER BY ub.created_at DESC
        """, user["address"])
        return [
            {
                "id": row["id"],
                "badgeId": row["badge_id"],
                "badgeName": row["badge_name"],
                "badgeDescription": row["badge_description"],
                "badgeImage": row["badge_image"],
                "badgeType": row["badge_type"],
                "isUnlocked": row["is_unlocked"],
                "isClaimed": row["is_claimed"],
                "unlockedAt": iso(row["unlocked_at"]),
                "claimedAt": iso(row["claimed_at"]),
                "claimedTxHash": row["claimed_tx_hash"],
                "unlockedTxHash": row["unlocked_tx_hash"],
            }
            for row in rows
        ]


activity_service = ActivityService()
