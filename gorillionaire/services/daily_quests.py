"""
Daily quests.

Each UTC day a user gets a fresh row per active daily quest, created lazily on
the first read. Quests are laddered: today's trades fill the first quest up to
its requirement, the surplus flows into the second, and so on.
"""

from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List

from gorillionaire.core.database import require_pool
from gorillionaire.core.errors import NotFoundError, ValidationError
from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import UTC, utc_now
from gorillionaire.clients.notifier import discord_xp_webhook
from gorillionaire.models import (
    DAILY_QUEST_COMPLETED,
    TRADE_ACTIVITIES,
    ActivityType,
    RewardType,
    daily_quest_to_json,
    normalize_page,
    total_pages,
)
from gorillionaire.services.activity import activity_service, award_points

logger = Logger("DailyQuestService")

QUEST_COLUMNS = """
    udq.*, dq.quest_name, dq.quest_description, dq.quest_image, dq.quest_type,
    dq.quest_requirement, dq.quest_reward_type, dq.quest_reward_amount, dq.quest_level
"""


def ladder_progress(requirements: List[int], trades: int) -> List[int]:
    """Split ``trades`` across quests in order, each capped at its requirement."""
    progress = []
    remaining = trades
    for requirement in requirements:
        filled = min(max(remaining, 0), requirement)
        progress.append(filled)
        remaining -= requirement
    return progress


def progress_percentage(progress: int, requirement: int) -> int:
    if requirement <= 0:
        return 0
    return round(min(progress / requirement * 100, 100))


def day_bounds(day: date):
    start = datetime.combine(day, time.min).replace(tzinfo=UTC)
    return start, start + timedelta(days=1)


class DailyQuestService:

    async def _require_user(self, conn, address: str):
        user = await conn.fetchrow("SELECT * FROM user_activity WHERE address = $1", address)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def get_daily_quests(self, address: str, now: datetime = None) -> Dict[str, Any]:
        address = address.lower()
        now = now or utc_now()
        today = now.date()
        day_start, day_end = day_bounds(today)
        pool = require_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                await self._require_user(conn, address)

                # First read of the day hands out today's quests
                await conn.execute("""
                    INSERT INTO user_daily_quests (quest_id, address, quest_date, quest_order)
                    SELECT id, $1::text, $2::date, ROW_NUMBER() OVER (ORDER BY quest_order, id)
                    FROM daily_quests
                    WHERE is_active
                      AND NOT EXISTS (
                          SELECT 1 FROM user_daily_quests WHERE address = $1 AND quest_date = $2
                      )
                    ON CONFLICT (address, quest_id, quest_date) DO NOTHING
                """, address, today)

                rows = await conn.fetch(f"""
                    SELECT {QUEST_COLUMNS}
                    FROM user_daily_quests udq
                    JOIN daily_quests dq ON dq.id = udq.quest_id
                    WHERE udq.address = $1 AND udq.quest_date = $2
                    ORDER BY udq.quest_order, udq.id
                """, address, today)

                trades = await conn.fetchval("""
                    SELECT COUNT(*) FROM activities
                    WHERE address = $1 AND name = ANY($2::text[]) AND date >= $3 AND date < $4
                """, address, list(TRADE_ACTIVITIES), day_start, day_end) or 0

                progress = ladder_progress([row["quest_requirement"] for row in rows], trades)
                quests = []
                for row, current in zip(rows, progress):
                    quest = dict(row)
                    if current != row["current_progress"]:
                        completes = current >= row["quest_requirement"] and not row["is_completed"]
                        await conn.execute("""
                            UPDATE user_daily_quests
                            SET current_progress = $2,
                                last_progress_update = $3,
                                is_completed = is_completed OR $4,
                                completed_at = CASE WHEN $4 THEN $3 ELSE completed_at END
                            WHERE id = $1
                        """, row["id"], current, now, completes)
                        quest["current_progress"] = current
                        if completes:
                            quest["is_completed"] = True
                            quest["completed_at"] = now

                    data = daily_quest_to_json(quest)
                    data["progressPercentage"] = progress_percentage(current, row["quest_requirement"])
                    quests.append(data)

        return {"quests": quests, "todayTransactionCount": trades}

    async def claim(self, address: str, quest_id: int, now: datetime = None) -> Dict[str, Any]:
        address = address.lower()
        now = now or utc_now()
        pool = require_pool()
        awarded = 0

        async with pool.acquire() as conn:
            async with conn.transaction():
                quest = await conn.fetchrow(f"""
                    SELECT {QUEST_COLUMNS}
                    FROM user_daily_quests udq
                    JOIN daily_quests dq ON dq.id = udq.quest_id
                    WHERE udq.quest_id = $1 AND udq.address = $2 AND udq.quest_date = $3
                    FOR UPDATE OF udq
                """, quest_id, address, now.date())
                if not quest:
                    raise NotFoundError("Daily quest not found")
                if not quest["is_completed"]:
                    raise ValidationError("Quest is not completed yet")
                if quest["claimed_at"]:
                    raise ValidationError("Quest reward already claimed")

                user = await conn.fetchrow(
                    "SELECT points FROM user_activity WHERE address = $1 FOR UPDATE", address
                )
                if not user:
                    raise NotFoundError("User activity not found")

                await conn.execute(
                    "UPDATE user_daily_quests SET claimed_at = $2 WHERE id = $1", quest["id"], now
                )

                total = user["points"]
                reward = quest["quest_reward_amount"]
                if quest["quest_reward_type"] == RewardType.POINTS.value and reward:
                    reason = f"{DAILY_QUEST_COMPLETED}: {quest['quest_name']}"
                    total = await award_points(conn, address, reason, reward, ActivityType.QUEST)
                    awarded = reward

        if awarded:
            logger.info(f"🎯 {address} claimed {awarded} points for {quest['quest_name']}")
            await activity_service.invalidate_weekly_cache()
            await discord_xp_webhook.report_points(address, awarded, reason)

        return {
            "message": "Quest reward claimed successfully",
            "rewardPoints": reward,
            "newTotalPoints": total,
        }

    async def reset(self, address: str, now: datetime = None) -> int:
        """Drop today's quests for ``address`` so the next read hands them out again."""
        now = now or utc_now()
        pool = require_pool()
        status = await pool.execute(
            "DELETE FROM user_daily_quests WHERE address = $1 AND quest_date = $2",
            address.lower(), now.date(),
        )
        return int(status.split()[-1])

    async def completed(self, address: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit)
        address = address.lower()
        pool = require_pool()
        await self._require_user(pool, address)

        rows = await pool.fetch(f"""
            SELECT {QUEST_COLUMNS}
            FROM user_daily_quests udq
            JOIN daily_quests dq ON dq.id = udq.quest_id
            WHERE udq.address = $1 AND udq.is_completed
            ORDER BY udq.completed_at DESC, udq.id DESC
            LIMIT $2 OFFSET $3
        """, address, limit, offset)
        total = await pool.fetchval(
            "SELECT COUNT(*) FROM user_daily_quests WHERE address = $1 AND is_completed", address
        )
        return {
            "quests": [daily_quest_to_json(row) for row in rows],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": total_pages(total, limit),
            },
        }


daily_quest_service = DailyQuestService()
