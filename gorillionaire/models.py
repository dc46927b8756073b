"""
Record types shared by services and routes.

Rows come back from asyncpg as ``Record`` objects; the helpers here turn them
into the camelCase JSON shapes the frontend consumes.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

from gorillionaire.core.timezone import utc_now


class BadgeType(str, Enum):
    ACTIVITY = "activity"
    ACHIEVEMENT = "achievement"
    SPECIAL = "special"
    NFT = "nft"
    SOCIAL = "social"


class QuestType(str, Enum):
    ACCEPTED_SIGNALS = "acceptedSignals"
    REFUSE_SIGNALS = "refuseSignals"
    STREAK_SIGNALS = "streakSignals"


class DailyQuestType(str, Enum):
    DAILY_TRANSACTIONS = "dailyTransactions"
    DAILY_VOLUME = "dailyVolume"
    DAILY_STREAK = "dailyStreak"
    DAILY_SIGNALS = "dailySignals"


class RewardType(str, Enum):
    POINTS = "points"
    BADGE = "badge"
    NFT = "nft"
    SOCIAL = "social"


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class Choice(str, Enum):
    YES = "Yes"
    NO = "No"


class ActionType(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class ActivityType(str, Enum):
    TRADE = "trade"
    QUEST = "quest"
    REFERRAL = "referral"
    SIGNIN = "signin"
    STREAK = "streak"
    OTHER = "other"


class Impact(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# Activity names are part of the wire format and the weekly leaderboard filter
ACCOUNT_CONNECTED = "Account Connected"
STREAK_EXTENDED = "Streak Extended"
SIGNAL_REFUSED = "Signal Refused"
V2_ACCESS_GRANTED = "V2 Access Granted"
REFERRAL_BONUS = "Referral Bonus"
DAILY_QUEST_COMPLETED = "Daily Quest Completed"
# Trades logged by the trading flow, the only input to daily quest progress
TRADE_ACTIVITIES = ("Trade", "Trade (2x XP)")


class AccessCode(BaseModel):
    code: str
    max_redeems: int = 1
    current_redeems: int = 0
    is_active: bool = True
    created_by: str
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < utc_now()

    def can_redeem(self) -> bool:
        return self.is_active and not self.is_expired and self.current_redeems < self.max_redeems

    @classmethod
    def from_record(cls, row) -> "AccessCode":
        return cls(**{k: row[k] for k in cls.model_fields if k in row.keys()})


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def jsonb(value):
    # asyncpg hands JSONB back as text unless a codec is registered
    return json.loads(value) if isinstance(value, str) else value


def user_to_json(row) -> Dict[str, Any]:
    return {
        "address": row["address"],
        "points": row["points"],
        "lastSignIn": iso(row["last_sign_in"]),
        "streak": row["streak"],
        "isRewarded": row["is_rewarded"],
        "nadName": row["nad_name"],
        "nadAvatar": row["nad_avatar"],
        "v2Enabled": row["v2_enabled"],
        "createdAt": iso(row["created_at"]),
    }


def activity_to_json(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "points": row["points"],
        "date": iso(row["date"]),
        "signalId": row["signal_id"],
        "txHash": row["tx_hash"],
        "activityType": row["activity_type"],
    }


def transfer_to_json(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "tokenName": row["token_name"],
        "tokenSymbol": row["token_symbol"],
        "tokenDecimals": row["token_decimals"],
        "tokenAddress": row["token_address"],
        "fromAddress": row["from_address"],
        "toAddress": row["to_address"],
        "amount": str(row["amount"]),
        "transactionHash": row["transaction_hash"],
        "blockNumber": row["block_number"],
        "blockTimestamp": row["block_timestamp"],
        "createdAt": iso(row["created_at"]),
    }


def spike_to_json(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "tokenName": row["token_name"],
        "tokenSymbol": row["token_symbol"],
        "tokenDecimals": row["token_decimals"],
        "tokenAddress": row["token_address"],
        "thisHourTransfers": row["this_hour_transfers"],
        "previousHourTransfers": row["previous_hour_transfers"],
        "blockNumber": row["block_number"],
        "blockTimestamp": row["block_timestamp"],
        "createdAt": iso(row["created_at"]),
    }


def user_signal_to_json(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "userAddress": row["user_address"],
        "signalId": row["signal_id"],
        "choice": row["choice"],
        "createdAt": iso(row["created_at"]),
    }


def user_signal_v2_to_json(row) -> Dict[str, Any]:
    data = user_signal_to_json(row)
    data.update({
        "symbol": row["symbol"],
        "actionType": row["action_type"],
        "priceAtSignal": row["price_at_signal"],
    })
    return data


def access_code_to_json(code: AccessCode) -> Dict[str, Any]:
    return {
        "code": code.code,
        "maxRedeems": code.max_redeems,
        "currentRedeems": code.current_redeems,
        "isActive": code.is_active,
        "createdBy": code.created_by,
        "expiresAt": iso(code.expires_at),
        "createdAt": iso(code.created_at),
        "canRedeem": code.can_redeem(),
    }


def daily_quest_to_json(row) -> Dict[str, Any]:
    """A ``user_daily_quests`` row joined with its ``daily_quests`` definition."""
    return {
        "id": row["id"],
        "questId": row["quest_id"],
        "questName": row["quest_name"],
        "questDescription": row["quest_description"],
        "questImage": row["quest_image"],
        "questType": row["quest_type"],
        "questRequirement": row["quest_requirement"],
        "questRewardType": row["quest_reward_type"],
        "questRewardAmount": row["quest_reward_amount"],
        "questLevel": row["quest_level"],
        "questOrder": row["quest_order"],
        "currentProgress": row["current_progress"],
        "isCompleted": row["is_completed"],
        "completedAt": iso(row["completed_at"]),
        "claimedAt": iso(row["claimed_at"]),
        "isClaimed": row["claimed_at"] is not None,
        "isActive": row["is_active"],
        "questDate": row["quest_date"].isoformat(),
    }


def normalize_page(page: Optional[int], limit: Optional[int], default_limit: int = 10, max_limit: int = 100):
    """Clamp paging params. Returns ``(page, limit, offset)``."""
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else default_limit
    limit = min(limit, max_limit)
    return page, limit, (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit else 0
