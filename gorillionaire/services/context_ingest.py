"""
Feeds recent market activity into the vector store.

Each run collects the transfers, spikes and prices inserted after the last row
it ingested from each table (a bounded batch per table, the remainder waits for
the next run) and writes one document per token, so retrieval for a token
mostly returns text about that token.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Tuple

from gorillionaire.core.config import settings
from gorillionaire.core.database import require_pool
from gorillionaire.core.logger import Logger
from gorillionaire.core.timezone import utc_now
from gorillionaire.clients.vector_store import Document, VectorStore, vector_store
from gorillionaire.services.events import WEI, format_amount

logger = Logger("ContextIngest")

INITIAL_LOOKBACK = timedelta(hours=1)
MAX_ROWS_PER_KIND = 200


def transfer_line(row) -> str:
    amount = format_amount(Decimal(row["amount"]) / WEI)
    return (
        f"Transfer event: {amount} {row['token_symbol']} moved from {row['from_address']} "
        f"to {row['to_address']} in block {row['block_number']} (timestamp {row['block_timestamp']})."
    )


def spike_line(row) -> str:
    return (
        f"Spike event: {row['token_symbol']} had {row['this_hour_transfers']} transfers this hour "
        f"versus {row['previous_hour_transfers']} the previous hour (block {row['block_number']})."
    )


def price_line(row) -> str:
    return f"Price data: {row['token_symbol']} traded at {row['price']} USD at {row['timestamp'].isoformat()}."


SOURCES = (
    ("transfers", transfer_line),
    ("spikes", spike_line),
    ("price_data", price_line),
)


class ContextIngestService:
    def __init__(self, store: VectorStore = None):
        self.store = store or vector_store
        # Per table (created_at, id) of the last row ingested
        self.cursors: Dict[str, Tuple[datetime, str]] = {}
        self.start: datetime = None

    async def collect(self) -> Tuple[Dict[str, List[str]], Dict[str, Tuple[datetime, str]]]:
        """Lines per token from rows past each table's cursor, plus the cursors they advance to."""
        pool = require_pool()
        lines: Dict[str, List[str]] = defaultdict(list)
        advanced = {}

        for table, render in SOURCES:
            since, last_id = self.cursors.get(table, (self.start, ""))
            rows = await pool.fetch(f"""
                SELECT * FROM {table}
                WHERE (created_at, id::text) > ($1::timestamptz, $2::text)
                ORDER BY created_at ASC, id::text ASC
                LIMIT $3
            """, since, last_id, MAX_ROWS_PER_KIND)
            if not rows:
                continue
            if len(rows) == MAX_ROWS_PER_KIND:
                logger.info(f"{table}: batch full, the rest is picked up next run")
            for row in rows:
                lines[row["token_symbol"]].append(render(row))
            advanced[table] = (rows[-1]["created_at"], str(rows[-1]["id"]))

        return lines, advanced

    async def ingest(self) -> int:
        """Push new context documents. Returns how many were written."""
        now = utc_now()
        if self.start is None:
            self.start = now - INITIAL_LOOKBACK
        lines, advanced = await self.collect()

        documents = [
            Document(
                page_content="\n".join(token_lines),
                metadata={"token": token, "source": "market_context", "generated_at": now.isoformat()},
            )
            for token, token_lines in lines.items()
        ]
        if not documents:
            logger.info("No new market activity to ingest")
            return 0

        written = await self.store.add_documents(documents)
        self.cursors.update(advanced)
        logger.info(f"Ingested {written} context documents")

        total = await self.store.count()
        if total > settings.VECTOR_MAX_DOCUMENTS:
            await self.store.prune(settings.VECTOR_MAX_DOCUMENTS)
        return written


context_ingest_service = ContextIngestService()
