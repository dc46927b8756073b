"""
On-chain events pushed by the indexer.

Transfers and spikes are stored once per transaction hash / event id and
forwarded live to WebSocket subscribers of the token.
"""

import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Tuple

from gorillionaire.core.database import require_pool
from gorillionaire.core.errors import ValidationError
from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import utc_now
from gorillionaire.models import Impact, normalize_page, spike_to_json, total_pages, transfer_to_json
from gorillionaire.services.realtime import ws_hub

logger = Logger("EventService")

WEI = Decimal(10) ** 18
DEFAULT_IMPACT_BASE = Decimal(1_000_000)
IMPACT_BASE_BY_TOKEN = {
    "Chog": Decimal(100_000),
    "Molandak": Decimal(10_000),
    "Moyaki": Decimal(1_000_000),
}

TRANSFER_REQUIRED = (
    "fromAddress", "toAddress", "amount", "transactionHash", "blockNumber",
    "blockTimestamp", "tokenSymbol", "tokenDecimals", "tokenAddress",
)
SPIKE_REQUIRED = (
    "tokenName", "tokenSymbol", "tokenDecimals", "tokenAddress", "thisHourTransfers",
    "previousHourTransfers", "blockNumber", "blockTimestamp",
)


def classify_impact(token_name: str, token_amount: Decimal) -> Impact:
    base = IMPACT_BASE_BY_TOKEN.get(token_name, DEFAULT_IMPACT_BASE)
    if token_amount > base * 10:
        return Impact.HIGH
    if token_amount > base * 5:
        return Impact.MEDIUM
    return Impact.LOW


def format_amount(value: Decimal) -> str:
    """Thousands separators, at most three decimals."""
    text = f"{value:,.3f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def _missing(payload: Dict[str, Any], fields: Tuple[str, ...]):
    # Zero values count as missing, as the indexer never sends them legitimately
    return [name for name in fields if not payload.get(name)]


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value}")


def build_transfer_event(transfer: Dict[str, Any]) -> Dict[str, Any]:
    token_amount = _to_decimal(transfer["amount"]) / WEI
    value = format_amount(token_amount)
    return {
        "id": transfer["id"],
        "type": "TRANSFER",
        "blockTimestamp": transfer["blockTimestamp"],
        "timestamp": utc_now().isoformat(),
        "description": f"Transferred {value} {transfer['tokenSymbol']}",
        "value": value,
        "impact": classify_impact(transfer.get("tokenName"), token_amount).value,
    }


def build_spike_event(spike: Dict[str, Any]) -> Dict[str, Any]:
    previous = spike["previousHourTransfers"]
    current = spike["thisHourTransfers"]
    if previous and current >= previous * 3:
        impact = Impact.HIGH
    elif previous and current >= previous * 2:
        impact = Impact.MEDIUM
    else:
        impact = Impact.LOW
    return {
        "id": spike["id"],
        "type": "SPIKE",
        "blockTimestamp": spike["blockTimestamp"],
        "timestamp": utc_now().isoformat(),
        "description": f"{spike['tokenSymbol']} transfers went from {previous} to {current} in the last hour",
        "value": str(current),
        "impact": impact.value,
    }


class EventService:

    # ─────────────────────────────────────────────────────────────────────────
    # Transfers
    # ─────────────────────────────────────────────────────────────────────────

    async def store_transfer(self, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Store a transfer. Returns ``(transfer, created)``."""
        missing = _missing(payload, TRANSFER_REQUIRED)
        if missing:
            logger.warn(f"Transfer rejected, missing fields: {', '.join(missing)}")
            raise ValidationError("Missing required fields")

        pool = require_pool()
        existing = await pool.fetchrow(
            "SELECT * FROM transfers WHERE transaction_hash = $1", payload["transactionHash"]
        )
        if existing:
            return transfer_to_json(existing), False

        row = await pool.fetchrow("""
            INSERT INTO transfers (
                id, token_name, token_symbol, token_decimals, token_address, from_address,
                to_address, amount, transaction_hash, block_number, block_timestamp
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            ON CONFLICT (transaction_hash) DO NOTHING
            RETURNING *
        """,
            str(uuid.uuid4()),
            payload.get("tokenName"),
            payload["tokenSymbol"],
            int(payload["tokenDecimals"]),
            payload["tokenAddress"],
            payload["fromAddress"],
            payload["toAddress"],
            _to_decimal(payload["amount"]),
            payload["transactionHash"],
            int(payload["blockNumber"]),
            int(payload["blockTimestamp"]),
        )
        if row is None:
            # Lost a race with a concurrent insert of the same hash
            existing = await pool.fetchrow(
                "SELECT * FROM transfers WHERE transaction_hash = $1", payload["transactionHash"]
            )
            return transfer_to_json(existing), False

        transfer = transfer_to_json(row)
        await ws_hub.broadcast_event(transfer["tokenName"], build_transfer_event(transfer))
        return transfer, True

    async def list_transfers(self, token_name: str, page: int = 1, limit: int = 25) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit, default_limit=25)
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT * FROM transfers WHERE token_name = $1
            ORDER BY block_timestamp DESC, created_at DESC
            LIMIT $2 OFFSET $3
        """, token_name, limit, offset)
        total = await pool.fetchval("SELECT COUNT(*) FROM transfers WHERE token_name = $1", token_name)
        return {
            "transfers": [transfer_to_json(row) for row in rows],
            "pagination": {"total": total, "page": page, "limit": limit, "pages": total_pages(total, limit)},
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Spikes
    # ─────────────────────────────────────────────────────────────────────────

    async def store_spike(self, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        missing = [
            name for name in SPIKE_REQUIRED
            if payload.get(name) is None or payload.get(name) == ""
        ]
        if missing:
            raise ValidationError("Missing required fields")

        spike_id = payload.get("id") or str(uuid.uuid4())
        pool = require_pool()
        row = await pool.fetchrow("""
            INSERT INTO spikes (
                id, token_name, token_symbol, token_decimals, token_address,
                this_hour_transfers, previous_hour_transfers, block_number, block_timestamp
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (id) DO NOTHING
            RETURNING *
        """,
            spike_id,
            payload["tokenName"],
            payload["tokenSymbol"],
            int(payload["tokenDecimals"]),
            payload["tokenAddress"],
            int(payload["thisHourTransfers"]),
            int(payload["previousHourTransfers"]),
            int(payload["blockNumber"]),
            int(payload["blockTimestamp"]),
        )
        if row is None:
            existing = await pool.fetchrow("SELECT * FROM spikes WHERE id = $1", spike_id)
            return spike_to_json(existing), False

        spike = spike_to_json(row)
        await ws_hub.broadcast_event(spike["tokenName"], build_spike_event(spike))
        return spike, True

    async def list_spikes(self, token_name: str, page: int = 1, limit: int = 25) -> Dict[str, Any]:
        page, limit, offset = normalize_page(page, limit, default_limit=25)
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT * FROM spikes WHERE token_name = $1
            ORDER BY block_timestamp DESC
            LIMIT $2 OFFSET $3
        """, token_name, limit, offset)
        total = await pool.fetchval("SELECT COUNT(*) FROM spikes WHERE token_name = $1", token_name)
        return {
            "spikes": [spike_to_json(row) for row in rows],
            "pagination": {"total": total, "page": page, "limit": limit, "pages": total_pages(total, limit)},
        }


event_service = EventService()
