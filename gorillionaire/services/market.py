"""
Read side of the collected market data: token prices from the price job,
holder snapshots from the daily holders job, and live wallet balances.
"""

from typing import Any, Dict, List

from gorillionaire.core.database import require_pool
from gorillionaire.core.errors import NotFoundError, ValidationError
from gorillionaire.clients.blockvision import BlockVisionClient, blockvision_client
from gorillionaire.models import iso, jsonb

MAX_PRICE_POINTS = 1000


def price_to_json(row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "symbol": row["token_symbol"],
        "price": row["price"],
        "timestamp": iso(row["timestamp"]),
        "blockNumber": row["block_number"],
        "address": row["address"],
    }


class MarketService:
    def __init__(self, client: BlockVisionClient = None):
        self.client = client or blockvision_client

    # ─────────────────────────────────────────────────────────────────────────
    # Prices
    # ─────────────────────────────────────────────────────────────────────────

    async def price_history(self, symbol: str, limit: int = 100) -> Dict[str, Any]:
        if not symbol:
            raise ValidationError("Symbol is required")
        limit = min(limit, MAX_PRICE_POINTS) if limit and limit > 0 else 100
        symbol = symbol.upper()

        pool = require_pool()
        rows = await pool.fetch("""
            SELECT * FROM price_data WHERE token_symbol = $1
            ORDER BY timestamp DESC, id DESC
            LIMIT $2
        """, symbol, limit)
        return {"symbol": symbol, "data": [price_to_json(row) for row in rows]}

    async def latest_prices(self) -> Dict[str, List[Dict[str, Any]]]:
        pool = require_pool()
        rows = await pool.fetch("""
            SELECT DISTINCT ON (token_symbol) *
            FROM price_data
            ORDER BY token_symbol, timestamp DESC, id DESC
        """)
        return {"data": [{"symbol": row["token_symbol"], "price": price_to_json(row)} for row in rows]}

    # ─────────────────────────────────────────────────────────────────────────
    # Holders
    # ─────────────────────────────────────────────────────────────────────────

    async def latest_holders(self, token_address: str) -> Dict[str, Any]:
        pool = require_pool()
        row = await pool.fetchrow("""
            SELECT * FROM token_holder_snapshots
            WHERE LOWER(contract_address) = $1
            ORDER BY fetched_at DESC
            LIMIT 1
        """, token_address.lower())
        if not row:
            raise NotFoundError("No holder data for this token")
        return {
            "tokenName": row["token_name"],
            "contractAddress": row["contract_address"],
            "holders": jsonb(row["holders"]),
            "fetchedAt": iso(row["fetched_at"]),
        }

    async def account_tokens(self, address: str) -> Dict[str, Any]:
        """Wallet balances in BlockVision's ``{code, result}`` envelope."""
        result = await self.client.retrieve_account_tokens(address)
        return {"code": 0, "result": result}


market_service = MarketService()
