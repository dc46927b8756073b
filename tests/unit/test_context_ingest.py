"""
Unit tests for market-context ingestion into the vector store.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from gorillionaire.clients.vector_store import VectorStoreError
from gorillionaire.core.timezone import UTC, utc_now
from gorillionaire.services.context_ingest import (
    MAX_ROWS_PER_KIND,
    ContextIngestService,
    price_line,
    spike_line,
    transfer_line,
)

TRANSFER = {
    "id": "t-1",
    "token_symbol": "CHOG",
    "amount": Decimal("2000000000000000000000"),
    "from_address": "0x1",
    "to_address": "0x2",
    "block_number": 10,
    "block_timestamp": 1700000000,
}
SPIKE = {
    "id": "s-1",
    "token_symbol": "DAK",
    "this_hour_transfers": 40,
    "previous_hour_transfers": 10,
    "block_number": 11,
}
PRICE = {
    "id": 1,
    "token_symbol": "CHOG",
    "price": 0.0123,
    "timestamp": datetime(2025, 3, 1, 12, 0, tzinfo=UTC),
}


def recent(row, seconds_ago=60, **overrides):
    row = dict(row, created_at=utc_now() - timedelta(seconds=seconds_ago))
    row.update(overrides)
    return row


class Tables:
    """Stand-in for ``pool.fetch`` that applies the keyset cursor and limit."""

    def __init__(self, **tables):
        self.tables = tables

    def __call__(self, query, since, last_id, limit):
        table = query.split("FROM", 1)[1].split()[0]
        rows = sorted(self.tables.get(table, []), key=lambda r: (r["created_at"], str(r["id"])))
        return [r for r in rows if (r["created_at"], str(r["id"])) > (since, last_id)][:limit]


def make_store(count=10):
    store = MagicMock()
    store.add_documents = AsyncMock(side_effect=lambda docs: len(docs))
    store.count = AsyncMock(return_value=count)
    store.prune = AsyncMock(return_value=0)
    return store


def ingested_lines(store):
    return sum(
        len(doc.page_content.split("\n"))
        for call in store.add_documents.await_args_list
        for doc in call.args[0]
    )


class TestLines:

    @pytest.mark.unit
    def test_transfer_line(self):
        line = transfer_line(TRANSFER)
        assert line.startswith("Transfer event: 2,000 CHOG moved from 0x1 to 0x2")

    @pytest.mark.unit
    def test_spike_line(self):
        assert "40 transfers this hour versus 10" in spike_line(SPIKE)

    @pytest.mark.unit
    def test_price_line(self):
        assert price_line(PRICE) == "Price data: CHOG traded at 0.0123 USD at 2025-03-01T12:00:00+00:00."


class TestIngest:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_one_document_per_token(self, mock_pool):
        mock_pool.fetch.side_effect = Tables(
            transfers=[recent(TRANSFER)], spikes=[recent(SPIKE)], price_data=[recent(PRICE)]
        )
        store = make_store()
        service = ContextIngestService(store=store)

        written = await service.ingest()

        assert written == 2
        docs = store.add_documents.await_args.args[0]
        by_token = {doc.metadata["token"]: doc.page_content for doc in docs}
        assert set(by_token) == {"CHOG", "DAK"}
        assert by_token["CHOG"].count("\n") == 1
        store.prune.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_first_run_looks_back_one_hour(self, mock_pool):
        service = ContextIngestService(store=make_store())

        await service.ingest()

        since = mock_pool.fetch.await_args_list[0].args[1]
        assert utc_now() - since >= timedelta(minutes=59)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_backlog_is_drained_across_runs(self, mock_pool):
        total = MAX_ROWS_PER_KIND + 50
        rows = [recent(TRANSFER, seconds_ago=total - i, id=f"t-{i:04d}") for i in range(total)]
        mock_pool.fetch.side_effect = Tables(transfers=rows)
        store = make_store()
        service = ContextIngestService(store=store)

        await service.ingest()
        assert ingested_lines(store) == MAX_ROWS_PER_KIND
        await service.ingest()
        assert ingested_lines(store) == total
        assert await service.ingest() == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rows_sharing_a_timestamp_span_batches(self, mock_pool):
        same_time = utc_now() - timedelta(minutes=5)
        rows = [dict(TRANSFER, id=f"t-{i:04d}", created_at=same_time) for i in range(MAX_ROWS_PER_KIND + 1)]
        mock_pool.fetch.side_effect = Tables(transfers=rows)
        store = make_store()
        service = ContextIngestService(store=store)

        await service.ingest()
        await service.ingest()

        assert ingested_lines(store) == MAX_ROWS_PER_KIND + 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_price_rows_follow_insert_time(self, mock_pool):
        # Quote time well before the lookback window, inserted just now
        stale_quote = recent(PRICE, timestamp=utc_now() - timedelta(days=1))
        mock_pool.fetch.side_effect = Tables(price_data=[stale_quote])
        store = make_store()

        assert await ContextIngestService(store=store).ingest() == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_write_keeps_rows_for_retry(self, mock_pool):
        mock_pool.fetch.side_effect = Tables(transfers=[recent(TRANSFER)])
        store = make_store()
        store.add_documents.side_effect = [VectorStoreError("down"), 1]
        service = ContextIngestService(store=store)

        with pytest.raises(VectorStoreError):
            await service.ingest()
        assert await service.ingest() == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nothing_new(self, mock_pool):
        store = make_store()

        assert await ContextIngestService(store=store).ingest() == 0
        store.add_documents.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_prunes_when_over_limit(self, mock_pool, monkeypatch):
        from gorillionaire.services import context_ingest

        monkeypatch.setattr(context_ingest.settings, "VECTOR_MAX_DOCUMENTS", 100)
        mock_pool.fetch.side_effect = Tables(transfers=[recent(TRANSFER)])
        store = make_store(count=150)

        await ContextIngestService(store=store).ingest()

        store.prune.assert_awaited_once_with(100)
