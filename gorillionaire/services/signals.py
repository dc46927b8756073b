"""
Generated trading signals and the users' reactions to them.

Also home to the text parsing shared by the generator (reading LLM answers)
and the listing routes (decorating stored signals for the frontend).
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import asyncpg

from gorillionaire.core.database import require_pool
from gorillionaire.core.errors import NotFoundError, ValidationError
from gorillionaire.core.logger import Logger
from gorillionaire.models import (
    SIGNAL_REFUSED,
    ActivityType,
    Choice,
    iso,
    normalize_page,
    total_pages,
    user_signal_to_json,
    user_signal_v2_to_json,
)
from gorillionaire.services.activity import activity_service, award_points

logger = Logger("SignalService")

REFUSE_SIGNAL_POINTS = 5
SIGNAL_TOKENS = ("CHOG", "DAK", "YAKI")

ACTION_RE = re.compile(r"\b(BUY|SELL)\b", re.IGNORECASE)
SYMBOL_RE = re.compile(r"\b(CHOG|DAK|YAKI)\b", re.IGNORECASE)
QUANTITY_RE = re.compile(r"\b(\d+(?:\.\d+)?%?)\b")
CONFIDENCE_RE = re.compile(r"Confidence Score(?: of)? (\d+(?:\.\d+)?)", re.IGNORECASE)
STORED_CONFIDENCE_RE = re.compile(r"Confidence Score of (\d+\.\d+)")


@dataclass
class ParsedSignal:
    action: Optional[str] = None
    symbol: Optional[str] = None
    quantity: Optional[str] = None
    confidence: float = 0.0


def parse_signal_answer(text: str) -> ParsedSignal:
    """Pull action, symbol, quantity and confidence out of an LLM answer."""
    parsed = ParsedSignal()
    if not text:
        return parsed

    match = ACTION_RE.search(text)
    if match:
        parsed.action = match.group(1).upper()
    match = SYMBOL_RE.search(text)
    if match:
        parsed.symbol = match.group(1).upper()
    match = QUANTITY_RE.search(text)
    if match:
        parsed.quantity = match.group(1)
    match = CONFIDENCE_RE.search(text)
    if match:
        parsed.confidence = float(match.group(1))
    return parsed


def signal_type(signal_text: str) -> Optional[str]:
    if not signal_text:
        return None
    if signal_text.startswith("BUY"):
        return "Buy"
    if signal_text.startswith("SELL"):
        return "Sell"
    return None


def split_events(events: Optional[str]) -> List[str]:
    """Stored context blob -> one entry per non-empty line."""
    if not events:
        return []
    lines = []
    for block in events.split("\n\n"):
        for line in block.split("\n"):
            if line.strip():
                lines.append(line)
    return lines


def process_signal(row) -> Dict[str, Any]:
    text = row["signal_text"] or ""
    match = STORED_CONFIDENCE_RE.search(text)
    return {
        "id": str(row["id"]),
        "created_at": iso(row["created_at"]),
        "token": row["token"],
        "action": row["action"],
        "quantity": row["quantity"],
        "confidence": row["confidence"],
        "signal_text": text,
        "type": signal_type(text),
        "confidenceScore": match.group(1) if match else None,
        "level": "Conservative",
        "events": split_events(row["events"]),
    }


def format_signal_message(token: str, parsed: ParsedSignal, generated_at: str, page_url: str) -> str:
    is_buy = parsed.action == "BUY"
    action = "🟢 BUY" if is_buy else "🔴 SELL"
    amount_label = "Suggested Amount:" if is_buy else "Sell % of Holdings:"
    return (
        "🚨 New Trading Signal Generated 🚨\n\n"
        f"Token: {token}\n"
        f"Action: {action}\n"
        f"{amount_label} {parsed.quantity}\n"
        f"Confidence Score: {parsed.confidence}/10\n\n"
        f"Generated at: {generated_at}\n"
        f"Go to {page_url} to see the signal"
    )


def _signal_id(value: str) -> Optional[int]:
    return int(value) if value and str(value).isdigit() else None


class SignalService:

    async def save_generated(self, token: str, parsed: ParsedSignal, signal_text: str, events: str) -> Dict[str, Any]:
        pool = require_pool()
        row = await pool.fetchrow("""
            INSERT INTO generated_signals (token, action, quantity, confidence, signal_text, events)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
        """, token, parsed.action, parsed.quantity, parsed.confidence, signal_text, events)
        return process_signal(row)

    async def _list_by_prefix(self, prefix: str, limit: int, offset: int):
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT * FROM generated_signals
            WHERE signal_text LIKE $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2 OFFSET $3
        """, f"{prefix}%", limit, offset)
        total = await pool.fetchval(
            "SELECT COUNT(*) FROM generated_signals WHERE signal_text LIKE $1", f"{prefix}%"
        )
        return [process_signal(row) for row in rows], total

    async def list_generated(self, page: int = 1, limit: int = 5, user_address: str = None) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit, default_limit=5)
        buy, buy_total = await self._list_by_prefix("BUY", limit, offset)
        sell, sell_total = await self._list_by_prefix("SELL", limit, offset)

        if user_address:
            pool = require_pool()
            rows = await pool.fetch(
                "SELECT * FROM user_signals WHERE LOWER(user_address) = $1", user_address.lower()
            )
            by_signal = {row["signal_id"]: user_signal_to_json(row) for row in rows}
            for signal in buy + sell:
                signal["userSignal"] = by_signal.get(signal["id"])

        return {
            "buySignals": buy,
            "sellSignals": sell,
            "pagination": {
                "buy": {"total": buy_total, "page": page, "limit": limit, "pages": total_pages(buy_total, limit)},
                "sell": {"total": sell_total, "page": page, "limit": limit, "pages": total_pages(sell_total, limit)},
            },
        }

    async def get_signal(self, signal_id: str) -> Dict[str, Any]:
        numeric_id = _signal_id(signal_id)
        if numeric_id is None:
            raise NotFoundError("Signal not found")
        pool = require_pool()
        row = await pool.fetchrow("SELECT * FROM generated_signals WHERE id = $1", numeric_id)
        if not row:
            raise NotFoundError("Signal not found")
        reactions = await pool.fetch(
            "SELECT * FROM user_signals WHERE signal_id = $1 ORDER BY created_at", str(numeric_id)
        )
        return {"signal": process_signal(row), "userSignals": [user_signal_to_json(r) for r in reactions]}

    async def record_user_signal(self, user_address: str, signal_id: str, choice: Choice) -> Dict[str, Any]:
        address = user_address.lower()
        pool = require_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                if choice == Choice.NO:
                    exists = await conn.fetchval("SELECT 1 FROM user_activity WHERE address = $1", address)
                    if not exists:
                        raise ValidationError("User activity not found")
                try:
                    row = await conn.fetchrow("""
                        INSERT INTO user_signals (user_address, signal_id, choice)
                        VALUES ($1, $2, $3)
                        RETURNING *
                    """, address, str(signal_id), choice.value)
                except asyncpg.UniqueViolationError:
                    raise ValidationError("User signal already exists")

                if choice == Choice.NO:
                    await award_points(
                        conn, address, SIGNAL_REFUSED, REFUSE_SIGNAL_POINTS, ActivityType.OTHER,
                        signal_id=str(signal_id),
                    )

        if choice == Choice.NO:
            await activity_service.invalidate_weekly_cache()
        return user_signal_to_json(row)

    # ─────────────────────────────────────────────────────────────────────────
    # V2 reactions
    # ─────────────────────────────────────────────────────────────────────────

    async def record_user_signal_v2(
        self,
        user_address: str,
        signal_id: str,
        choice: str,
        symbol: str,
        action_type: str,
        price_at_signal: float,
    ) -> Dict[str, Any]:
        pool = require_pool()
        row = await pool.fetchrow("""
            INSERT INTO user_signals_v2 (user_address, signal_id, choice, symbol, action_type, price_at_signal)
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
        """, user_address.lower(), str(signal_id), choice, symbol.upper(), action_type, price_at_signal)
        return user_signal_v2_to_json(row)

    async def list_user_signals_v2(self, address: str) -> List[Dict[str, Any]]:
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT * FROM user_signals_v2 WHERE user_address = $1
            ORDER BY created_at DESC, id DESC
        """, address.lower())
        return [user_signal_v2_to_json(row) for row in rows]


signal_service = SignalService()
