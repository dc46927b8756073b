"""Codex GraphQL price oracle."""

from dataclasses import dataclass
from typing import Any, Dict, List
import httpx
from gorillionaire.core.config import settings
from gorillionaire.core.logger import Logger

logger = Logger("PriceOracle")

MONAD_TESTNET_ID = 10143


@dataclass(frozen=True)
class TrackedToken:
    symbol: str
    address: str
    network_id: int = MONAD_TESTNET_ID


PRICE_TOKENS = [
    TrackedToken("WMON", "0x760afe86e5de5fa0ee542fc7b7b713e1c5425701"),
    TrackedToken("YAKI", "0xfe140e1dCe99Be9F4F15d657CD9b7BF622270C50"),
    TrackedToken("DAK", "0x0F0BDEbF0F83cD1EE3974779Bcb7315f9808c714"),
    TrackedToken("CHOG", "0xE0590015A873bF326bd645c3E1266d4db41C4E6B"),
]


class PriceOracleError(Exception):
    pass


def build_price_query(tokens: List[TrackedToken]) -> str:
    inputs = ", ".join(
        f'{{address: "{token.address}", networkId: {token.network_id}}}' for token in tokens
    )
    return (
        "{ getTokenPrices(inputs: [" + inputs + "]) "
        "{ address networkId priceUsd timestamp confidence poolAddress } }"
    )


class CodexPriceOracle:
    def __init__(self, api_key: str = None, base_url: str = None, transport: httpx.AsyncBaseTransport = None):
        self.api_key = api_key if api_key is not None else settings.CODEX_API_KEY
        self.base_url = base_url or settings.CODEX_BASE_URL
        self._transport = transport

    async def get_token_prices(self, tokens: List[TrackedToken] = None) -> List[Dict[str, Any]]:
        tokens = tokens or PRICE_TOKENS
        if not self.api_key:
            raise PriceOracleError("CODEX_API_KEY not configured")

        headers = {"Content-Type": "application/json", "Authorization": self.api_key}
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            try:
                response = await client.post(
                    self.base_url, json={"query": build_price_query(tokens)}, headers=headers
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise PriceOracleError(f"Codex request failed: {e}") from e

        payload = response.json()
        if payload.get("errors"):
            raise PriceOracleError(payload["errors"][0].get("message", "Unknown GraphQL error"))

        prices = (payload.get("data") or {}).get("getTokenPrices") or []
        # Null entries come back for tokens Codex has no pool for
        return [p for p in prices if p]


price_oracle = CodexPriceOracle()
