import json
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List

from gorillionaire.core.config import settings
from gorillionaire.core.database import require_pool
from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import UTC
from gorillionaire.models import SignalAction
from gorillionaire.clients.blockvision import BlockVisionClient, BlockVisionError, blockvision_client
from gorillionaire.clients.codex import PRICE_TOKENS, CodexPriceOracle, price_oracle
from gorillionaire.services.context_ingest import ContextIngestService, context_ingest_service
from gorillionaire.services.scheduler import ScheduledJob, Scheduler, scheduler
from gorillionaire.services.signal_generator import SignalGenerator, signal_generator
from gorillionaire.services.weekly_archive import WeeklyArchiveService, weekly_archive_service

logger = Logger("Jobs")


@dataclass(frozen=True)
class HolderToken:
    contract_address: str
    token_name: str


HOLDER_TOKENS = [
    HolderToken("0xE0590015A873bF326bd645c3E1266d4db41C4E6B", "CHOG"),
    HolderToken("0xfe140e1dCe99Be9F4F15d657CD9b7BF622270C50", "MOYAKI"),
    HolderToken("0x0F0BDEbF0F83cD1EE3974779Bcb7315f9808c714", "MOLANDAK"),
]


class TokenHoldersJob(ScheduledJob):
    """Daily snapshot of the top holders of each tracked token."""

    name = "token_holders"

    def __init__(self, client: BlockVisionClient = None, daily_at: str = None):
        super().__init__(daily_at=daily_at or settings.TOKEN_HOLDERS_TIME)
        self.client = client or blockvision_client

    async def run(self):
        pool = require_pool()
        failed = []
        for token in HOLDER_TOKENS:
            try:
                holders = await self.client.retrieve_token_holders(
                    contract_address=token.contract_address,
                    token_name=token.token_name,
                    page_index="1",
                    page_size="20",
                )
            except BlockVisionError as e:
                logger.warn(f"Holders for {token.token_name} unavailable: {e}")
                failed.append(token.token_name)
                continue

            await pool.execute("""
                INSERT INTO token_holder_snapshots (token_name, contract_address, holders)
                VALUES ($1, $2, $3::jsonb)
            """, token.token_name, token.contract_address, json.dumps(holders))
            logger.info(f"Stored holder snapshot for {token.token_name}")

        if failed:
            raise BlockVisionError(f"Holder snapshot failed for: {', '.join(failed)}")


def price_rows(prices: List[Dict]) -> List[tuple]:
    """Map oracle results onto ``price_data`` rows, dropping unknown tokens."""
    by_address = {token.address.lower(): token for token in PRICE_TOKENS}
    rows = []
    for price in prices:
        token = by_address.get((price.get("address") or "").lower())
        if not token or price.get("priceUsd") is None:
            continue
        rows.append((
            token.symbol,
            float(price["priceUsd"]),
            datetime.fromtimestamp(int(price["timestamp"]), tz=UTC),
            0,  # Codex does not report block numbers
            price.get("poolAddress"),
        ))
    return rows


class PriceUpdateJob(ScheduledJob):
    name = "prices"

    def __init__(self, oracle: CodexPriceOracle = None, interval: float = None):
        super().__init__(interval=interval or settings.PRICE_INTERVAL_SECONDS, run_on_start=True)
        self.oracle = oracle or price_oracle

    async def run(self):
        pool = require_pool()
        prices = await self.oracle.get_token_prices(PRICE_TOKENS)
        rows = price_rows(prices)
        if rows:
            await pool.executemany("""
                INSERT INTO price_data (token_symbol, price, timestamp, block_number, address)
                VALUES ($1, $2, $3, $4, $5)
            """, rows)
        logger.info(f"💰 Stored {len(rows)} token prices")


class SignalJob(ScheduledJob):
    def __init__(self, action: str, generator: SignalGenerator = None, interval: float = None):
        super().__init__(interval=interval or settings.SIGNAL_INTERVAL_SECONDS, run_on_start=True)
        self.action = SignalAction(action.upper())
        self.name = f"signals_{self.action.value.lower()}"
        self.generator = generator or signal_generator

    async def run(self):
        if self.action is SignalAction.BUY:
            await self.generator.generate_buy()
        else:
            await self.generator.generate_sell()


class ContextIngestJob(ScheduledJob):
    name = "context_ingest"

    def __init__(self, service: ContextIngestService = None, interval: float = None):
        super().__init__(interval=interval or settings.INGEST_INTERVAL_SECONDS, run_on_start=True)
        self.service = service or context_ingest_service

    async def run(self):
        await self.service.ingest()


class WeeklyArchiveJob(ScheduledJob):
    """Freezes the closed week every Monday 00:00 UTC, backfilling any week missed while down."""

    name = "weekly_archive"

    def __init__(self, service: WeeklyArchiveService = None):
        super().__init__(daily_at="00:00", weekday=0, run_on_start=True)
        self.service = service or weekly_archive_service

    async def run(self):
        await self.service.archive_past_weeks()


def register_jobs(target: Scheduler = None) -> Scheduler:
    target = target or scheduler
    target.add(TokenHoldersJob())
    target.add(PriceUpdateJob())
    target.add(WeeklyArchiveJob())
    if settings.ENABLE_SIGNAL_GENERATOR:
        target.add(ContextIngestJob())
        target.add(SignalJob(SignalAction.BUY))
        target.add(SignalJob(SignalAction.SELL))
    return target
