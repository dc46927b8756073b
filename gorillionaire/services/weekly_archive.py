"""
Weekly leaderboard archive.

Once a week has closed (Sunday 23:59:59.999 UTC) its standings are frozen into
``weekly_leaderboards`` along with a raffle draw weighted by each player's
share of the week's points. Weeks are keyed by ISO ``(year, week_number)`` and
archived at most once.
"""

import json
import random
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from gorillionaire.core.database import require_pool
from gorillionaire.core.errors import NotFoundError
from gorillionaire.core.logger import Logger
from gorillionaire.core.sentry import capture_exception
from gorillionaire.core.timezone import end_of_week, iso_week, start_of_week, utc_now
from gorillionaire.models import iso, jsonb, normalize_page, total_pages
from gorillionaire.services.activity import ActivityService, activity_service

logger = Logger("WeeklyArchive")

RAFFLE_WINNERS = 5
RAFFLE_PRIZE_MON = 50
BACKFILL_WEEKS = 52


def build_entries(standings: List[Dict[str, Any]], referrals: Dict[str, Dict[str, int]]) -> Tuple[List[Dict[str, Any]], int]:
    """Rank rows with referral stats and raffle odds. Returns ``(entries, total_points)``."""
    total = sum(user["weeklyPoints"] for user in standings)
    entries = []
    for index, user in enumerate(standings):
        referral = referrals.get(user["address"], {"totalReferred": 0, "totalReferralPoints": 0})
        chance = user["weeklyPoints"] / total * 100 if total > 0 else 0
        entries.append({
            "rank": index + 1,
            "address": user["address"],
            "weeklyPoints": user["weeklyPoints"],
            "weeklyActivities": user["weeklyActivities"],
            "totalReferred": referral["totalReferred"],
            "totalReferralPoints": referral["totalReferralPoints"],
            "createdAt": user["createdAt"],
            "nadName": user["nadName"],
            "nadAvatar": user["nadAvatar"],
            "winningChances": round(chance, 2),
        })
    return entries, total


def draw_raffle(entries: List[Dict[str, Any]], count: int = RAFFLE_WINNERS, rng: random.Random = None) -> List[Dict[str, Any]]:
    """Draw up to ``count`` distinct winners, weighted by ``winningChances``."""
    rng = rng or random.SystemRandom()
    candidates = [entry for entry in entries if entry["winningChances"] > 0]
    winners = []
    while candidates and len(winners) < count:
        pick = rng.choices(candidates, weights=[c["winningChances"] for c in candidates])[0]
        candidates.remove(pick)
        winners.append({
            "address": pick["address"],
            "rank": pick["rank"],
            "weeklyPoints": pick["weeklyPoints"],
            "prizeAmount": RAFFLE_PRIZE_MON,
        })
    return winners


def archive_to_json(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "weekStart": iso(row["week_start"]),
        "weekEnd": iso(row["week_end"]),
        "weekNumber": row["week_number"],
        "year": row["year"],
        "totalWeeklyPoints": row["total_weekly_points"],
        "totalParticipants": row["total_participants"],
        "isCompleted": row["is_completed"],
        "completedAt": iso(row["completed_at"]),
        "leaderboard": jsonb(row["leaderboard"]),
        "raffleWinners": jsonb(row["raffle_winners"]),
    }


class WeeklyArchiveService:
    def __init__(self, activity: ActivityService = None, rng: random.Random = None):
        self.activity = activity or activity_service
        self.rng = rng

    async def archive_week(self, when: datetime) -> Optional[Dict[str, Any]]:
        """Archive the week containing ``when``. Returns None when there is nothing to store."""
        week_start = start_of_week(when)
        week_end = end_of_week(when)
        week_number, year = iso_week(week_start)
        pool = require_pool()

        exists = await pool.fetchval(
            "SELECT 1 FROM weekly_leaderboards WHERE year = $1 AND week_number = $2", year, week_number
        )
        if exists:
            logger.info(f"Week {week_number} ({year}) already archived")
            return None

        standings = await self.activity.standings_between(week_start, week_end)
        if not standings:
            logger.info(f"No weekly activity for week {week_number} ({year})")
            return None

        referrals = await self.activity.referral_totals([u["address"] for u in standings], since=week_start)
        entries, total = build_entries(standings, referrals)
        winners = draw_raffle(entries, rng=self.rng)

        row = await pool.fetchrow("""
            INSERT INTO weekly_leaderboards (
                week_start, week_end, week_number, year, total_weekly_points,
                total_participants, leaderboard, raffle_winners
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8::jsonb)
            ON CONFLICT (year, week_number) DO NOTHING
            RETURNING *
        """, week_start, week_end, week_number, year, total, len(entries),
            json.dumps(entries), json.dumps(winners))
        if row is None:
            # Archived concurrently
            return None

        logger.info(f"🏆 Archived week {week_number} ({year}) with {len(entries)} participants")
        return archive_to_json(row)

    async def archive_past_weeks(self, now: datetime = None, weeks: int = BACKFILL_WEEKS) -> int:
        """Archive every closed week in the last ``weeks`` that is not archived yet."""
        current = start_of_week(now or utc_now())
        pool = require_pool()
        rows = await pool.fetch(
            "SELECT year, week_number FROM weekly_leaderboards WHERE week_start >= $1",
            current - timedelta(weeks=weeks),
        )
        done = {(row["year"], row["week_number"]) for row in rows}

        archived = 0
        for back in range(1, weeks + 1):
            week_start = current - timedelta(weeks=back)
            week_number, year = iso_week(week_start)
            if (year, week_number) in done:
                continue
            try:
                if await self.archive_week(week_start):
                    archived += 1
            except Exception as e:
                logger.error(f"Archiving week {week_number} ({year}) failed: {e}", e)
                capture_exception(e, component="weekly_archive", week=week_number, year=year)

        logger.info(f"Archived {archived} past weeks")
        return archived

    async def list_archives(self, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit)
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT * FROM weekly_leaderboards
            ORDER BY year DESC, week_number DESC
            LIMIT $1 OFFSET $2
        """, limit, offset)
        total = await pool.fetchval("SELECT COUNT(*) FROM weekly_leaderboards")
        return {
            "leaderboards": [archive_to_json(row) for row in rows],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": total_pages(total, limit),
            },
        }

    async def get_archive(self, week_number: int, year: int) -> Dict[str, Any]:
        pool = require_pool()
        row = await pool.fetchrow(
            "SELECT * FROM weekly_leaderboards WHERE week_number = $1 AND year = $2", week_number, year
        )
        if not row:
            raise NotFoundError("Archived leaderboard not found")
        return archive_to_json(row)


weekly_archive_service = WeeklyArchiveService()
