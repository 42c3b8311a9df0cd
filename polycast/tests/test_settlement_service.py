"""
Settlement Service Acceptance Tests
===================================

A) Scoring written back to the record
B) Atomic pending -> settled move
C) Idempotency (repeat = no-op, new outcome = overwrite, never double-indexed)
D) Unknown market is a non-fatal NOT_FOUND
E) Store failures propagate; nothing half-applied
F) Batch settlement counts failures instead of raising
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from polycast.db.prediction_store import InMemoryPredictionStore
from polycast.db.schemas.analytics_schemas import (
    GameResult,
    PredictionRecord,
    SettlementStatus,
    Winner,
)
from polycast.services.errors import (
    InvalidOutcomeError,
    LedgerUnavailableError,
    SettlementConflictError,
)
from polycast.services.prediction_ledger import (
    PENDING_KEY,
    SETTLED_KEY,
    TIMELINE_KEY,
    PredictionLedger,
    record_key,
)
from polycast.services.settlement_service import SettlementService
from polycast.utils.timezone import now_ms


def make_record(market_id="mkt_1", p=0.8, market_a=0.4, confidence=0.85, timestamp=None) -> PredictionRecord:
    return PredictionRecord(
        market_id=market_id,
        team_a="Lakers",
        team_b="Celtics",
        predicted_probability_a=p,
        market_odds_a=market_a,
        confidence=confidence,
        timestamp=timestamp if timestamp is not None else now_ms(),
        model_version="v3.0",
    )


@pytest.fixture
def store():
    return InMemoryPredictionStore()


@pytest.fixture
def ledger(store):
    return PredictionLedger(store)


@pytest.fixture
def service(ledger):
    return SettlementService(ledger)


async def index_state(store, market_id):
    return (
        await store.get(record_key(market_id)),
        await store.sismember(PENDING_KEY, market_id),
        await store.zscore(SETTLED_KEY, market_id),
    )


class TestSettlementScoring:
    """Requirement A + B"""

    @pytest.mark.asyncio
    async def test_settle_pending_prediction(self, store, ledger, service):
        await ledger.save_prediction(make_record())

        result = await service.settle("mkt_1", "teamA", 110, 102)

        assert result.status == SettlementStatus.SETTLED
        record = result.record
        assert record.actual_winner == Winner.TEAM_A
        assert record.actual_score_a == 110
        assert record.actual_score_b == 102
        assert record.prediction_correct is True
        assert record.brier_score == pytest.approx(0.04)
        assert record.expected_value == pytest.approx(1.5)
        assert record.result_updated_at is not None

        assert not await store.sismember(PENDING_KEY, "mkt_1")
        assert await store.zscore(SETTLED_KEY, "mkt_1") == record.result_updated_at

    @pytest.mark.asyncio
    async def test_stored_record_fully_settled(self, store, ledger, service):
        await ledger.save_prediction(make_record())
        await service.settle("mkt_1", Winner.TEAM_B, 95, 101)

        stored = await ledger.get_prediction("mkt_1")
        assert stored.is_settled
        assert stored.prediction_correct is False
        assert stored.expected_value == -1.0
        assert stored.predicted_probability_a == 0.8

    @pytest.mark.asyncio
    async def test_record_keeps_ttl(self, store, ledger, service):
        await ledger.save_prediction(make_record())
        await service.settle("mkt_1", "teamA", 100, 90)

        ttl = store.ttl(record_key("mkt_1"))
        assert ttl is not None
        assert ttl > 29 * 24 * 60 * 60


class TestIdempotency:
    """Requirement C"""

    @pytest.mark.asyncio
    async def test_repeat_settlement_is_noop(self, store, ledger, service):
        await ledger.save_prediction(make_record())
        first = await service.settle("mkt_1", "teamA", 110, 102)
        state_after_first = await index_state(store, "mkt_1")

        second = await service.settle("mkt_1", "teamA", 110, 102)

        assert first.status == SettlementStatus.SETTLED
        assert second.status == SettlementStatus.ALREADY_SETTLED
        assert await index_state(store, "mkt_1") == state_after_first
        assert await store.zcount(SETTLED_KEY, "-inf", "+inf") == 1

    @pytest.mark.asyncio
    async def test_different_outcome_overwrites(self, store, ledger, service):
        await ledger.save_prediction(make_record())
        await service.settle("mkt_1", "teamA", 110, 102)

        corrected = await service.settle("mkt_1", "teamB", 102, 110)

        assert corrected.status == SettlementStatus.RESETTLED
        assert corrected.record.actual_winner == Winner.TEAM_B
        assert not await store.sismember(PENDING_KEY, "mkt_1")
        assert await store.zcount(SETTLED_KEY, "-inf", "+inf") == 1

    @pytest.mark.asyncio
    async def test_concurrent_settlement_counted_once(self, store, ledger, service):
        await ledger.save_prediction(make_record())

        results = await asyncio.gather(
            service.settle("mkt_1", "teamA", 110, 102),
            service.settle("mkt_1", "teamA", 110, 102),
        )

        statuses = sorted(r.status.value for r in results)
        assert statuses == [SettlementStatus.ALREADY_SETTLED.value, SettlementStatus.SETTLED.value]
        assert await store.scard(PENDING_KEY) == 0
        assert await store.zcount(SETTLED_KEY, "-inf", "+inf") == 1


class TestNotFound:
    """Requirement D"""

    @pytest.mark.asyncio
    async def test_unknown_market(self, store, service):
        result = await service.settle("missing", "teamA", 1, 0)

        assert result.status == SettlementStatus.NOT_FOUND
        assert result.record is None
        assert await store.zcount(SETTLED_KEY, "-inf", "+inf") == 0

    @pytest.mark.asyncio
    async def test_invalid_winner_rejected(self, ledger, service):
        await ledger.save_prediction(make_record())
        with pytest.raises(InvalidOutcomeError):
            await service.settle("mkt_1", "draw", 100, 100)

    @pytest.mark.asyncio
    async def test_negative_score_rejected(self, ledger, service):
        await ledger.save_prediction(make_record())
        with pytest.raises(InvalidOutcomeError):
            await service.settle("mkt_1", "teamA", -1, 100)


class TestStoreFailures:
    """Requirement E"""

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, store, ledger, service):
        await ledger.save_prediction(make_record())
        store.settle_atomically = AsyncMock(side_effect=RedisConnectionError("connection refused"))

        with pytest.raises(LedgerUnavailableError):
            await service.settle("mkt_1", "teamA", 110, 102)

        stored = await ledger.get_prediction("mkt_1")
        assert not stored.is_settled
        assert await store.sismember(PENDING_KEY, "mkt_1")

    @pytest.mark.asyncio
    async def test_read_failure_propagates(self, store, service):
        store.get = AsyncMock(side_effect=RedisConnectionError("timeout"))
        with pytest.raises(LedgerUnavailableError):
            await service.settle("mkt_1", "teamA", 110, 102)

    @pytest.mark.asyncio
    async def test_save_failure_propagates(self, store, ledger):
        store.save_indexed = AsyncMock(side_effect=RedisConnectionError("down"))
        with pytest.raises(LedgerUnavailableError):
            await ledger.save_prediction(make_record())

    @pytest.mark.asyncio
    async def test_conflict_is_retried(self, store, ledger, service):
        await ledger.save_prediction(make_record())
        real_settle = store.settle_atomically
        calls = []

        async def flaky(*args):
            calls.append(args)
            if len(calls) == 1:
                raise SettlementConflictError("record changed")
            return await real_settle(*args)

        store.settle_atomically = flaky
        result = await service.settle("mkt_1", "teamA", 110, 102)

        assert result.status == SettlementStatus.SETTLED
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_persistent_conflict_raises(self, store, ledger, service):
        await ledger.save_prediction(make_record())
        store.settle_atomically = AsyncMock(side_effect=SettlementConflictError("record changed"))

        with pytest.raises(SettlementConflictError):
            await service.settle("mkt_1", "teamA", 110, 102)
        assert store.settle_atomically.await_count == 3


class TestBatchSettlement:
    """Requirement F"""

    @pytest.mark.asyncio
    async def test_settle_pending_summary(self, ledger, service):
        for i in range(7):
            await ledger.save_prediction(make_record(market_id=f"mkt_{i}"))

        def fetch(record):
            n = int(record.market_id.split("_")[1])
            if n < 3:
                return GameResult(winner=Winner.TEAM_A, score_a=100, score_b=90)
            if n == 6:
                raise RuntimeError("scores API down")
            return None

        provider = Mock()
        provider.fetch_result = AsyncMock(side_effect=fetch)

        summary = await service.settle_pending(provider, batch_size=5)

        assert summary.settled == 3
        assert summary.failed == 1
        assert summary.pending == 3
        assert provider.fetch_result.await_count == 7
        assert await ledger.get_pending_count() == 4

    @pytest.mark.asyncio
    async def test_expired_record_leaves_pending_index(self, store, ledger, service):
        await ledger.save_prediction(make_record(market_id="mkt_live"))
        await ledger.save_prediction(make_record(market_id="mkt_gone"))
        await store.delete(record_key("mkt_gone"))

        provider = Mock()
        provider.fetch_result = AsyncMock(return_value=None)

        first = await service.settle_pending(provider)
        assert first.expired == 1
        assert first.pending == 1
        assert await ledger.pending_ids() == ["mkt_live"]
        assert await store.zscore(TIMELINE_KEY, "mkt_gone") is None

        for _ in range(2):
            again = await service.settle_pending(provider)
            assert again.expired == 0
            assert again.pending == 1
        assert await ledger.get_pending_count() == 1
        provider.fetch_result.assert_awaited()
        assert all(c.args[0].market_id == "mkt_live" for c in provider.fetch_result.await_args_list)

    @pytest.mark.asyncio
    async def test_only_expired_records_drain_to_zero(self, store, ledger, service):
        await ledger.save_prediction(make_record(market_id="mkt_gone"))
        await store.delete(record_key("mkt_gone"))
        provider = Mock()
        provider.fetch_result = AsyncMock()

        await service.settle_pending(provider)

        assert await ledger.get_pending_count() == 0
        provider.fetch_result.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_settle_pending_nothing_pending(self, service):
        provider = Mock()
        provider.fetch_result = AsyncMock()

        summary = await service.settle_pending(provider)

        assert summary.settled == 0
        assert summary.pending == 0
        provider.fetch_result.assert_not_awaited()


class TestLedger:

    @pytest.mark.asyncio
    async def test_save_indexes_prediction(self, store, ledger):
        record = make_record(timestamp=1_700_000_000_000)
        await ledger.save_prediction(record)

        assert await store.zscore(TIMELINE_KEY, "mkt_1") == 1_700_000_000_000
        assert await ledger.pending_ids() == ["mkt_1"]
        assert (await ledger.get_prediction("mkt_1")).market_odds_b == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_stats(self, ledger, service):
        for i in range(3):
            await ledger.save_prediction(make_record(market_id=f"mkt_{i}"))
        await service.settle("mkt_0", "teamA", 100, 90)

        stats = await ledger.get_stats()
        assert stats.pending == 2
        assert stats.settled == 1

    @pytest.mark.asyncio
    async def test_counts_degrade_on_failure(self, store, ledger):
        store.scard = AsyncMock(side_effect=RedisConnectionError("down"))
        store.zcount = AsyncMock(side_effect=RedisConnectionError("down"))

        assert await ledger.get_pending_count() == 0
        assert await ledger.get_settled_count() == 0

    @pytest.mark.asyncio
    async def test_recent_predictions_newest_first(self, ledger):
        now = now_ms()
        await ledger.save_prediction(make_record(market_id="old", timestamp=now - 2000))
        await ledger.save_prediction(make_record(market_id="new", timestamp=now - 1000))

        recent = await ledger.get_recent_predictions()
        assert [r.market_id for r in recent] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_malformed_records_skipped(self, store, ledger):
        await ledger.save_prediction(make_record(market_id="good"))
        await store.set(record_key("bad"), '{"marketId": "bad"}')

        records = await ledger.get_predictions(["good", "bad", "expired"])
        assert [r.market_id for r in records] == ["good"]
