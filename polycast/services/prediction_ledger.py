"""
Prediction Ledger
=================
Durable record of every prediction, keyed by marketId, plus the indices
analytics and settlement read from:

- prediction:{marketId}   JSON record, 30-day TTL
- predictions:timeline    zset, score = creation ms
- predictions:pending     set of unsettled marketIds
- predictions:settled     zset, score = settlement ms

Writes propagate failures (LedgerUnavailableError). Reads used by analytics
degrade to empty / zero with a warning.
"""
import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.db.prediction_store import PredictionStore
from polycast.db.schemas.analytics_schemas import LedgerStats, PredictionRecord
from polycast.services.errors import LedgerUnavailableError
from polycast.utils.timezone import MS_PER_DAY, now_ms

logger = logging.getLogger(__name__)

RECORD_KEY = "prediction:{market_id}"
TIMELINE_KEY = "predictions:timeline"
PENDING_KEY = "predictions:pending"
SETTLED_KEY = "predictions:settled"


def record_key(market_id: str) -> str:
    return RECORD_KEY.format(market_id=market_id)


class PredictionLedger:
    def __init__(self, store: PredictionStore, config: EngineConfig = DEFAULT_ENGINE_CONFIG):
        self.store = store
        self.config = config

    @property
    def record_ttl_seconds(self) -> int:
        return self.config.settlement.record_ttl_seconds

    async def save_prediction(self, record: PredictionRecord) -> None:
        """
        Persist a new prediction and index it as pending.

        Raises:
            LedgerUnavailableError: store write failed; nothing was indexed
        """
        try:
            await self.store.save_indexed(
                record_key(record.market_id),
                record.to_json(),
                self.record_ttl_seconds,
                TIMELINE_KEY,
                PENDING_KEY,
                record.market_id,
                record.timestamp,
            )
        except RedisError as e:
            logger.error(f"❌ Failed to save prediction {record.market_id}: {e}")
            raise LedgerUnavailableError(f"Could not save prediction {record.market_id}") from e

        logger.info(
            f"✅ Saved prediction {record.market_id}: {record.team_a} vs {record.team_b} "
            f"({record.predicted_probability_a * 100:.1f}%)"
        )

    async def get_raw(self, market_id: str) -> Optional[str]:
        """Stored JSON exactly as written; the settlement compare-and-swap compares against it."""
        try:
            return await self.store.get(record_key(market_id))
        except RedisError as e:
            raise LedgerUnavailableError(f"Could not read prediction {market_id}") from e

    async def get_prediction(self, market_id: str) -> Optional[PredictionRecord]:
        raw = await self.get_raw(market_id)
        if raw is None:
            return None
        return PredictionRecord.model_validate_json(raw)

    async def get_predictions(self, market_ids: Iterable[str]) -> List[PredictionRecord]:
        """
        Batch fetch; expired and malformed records are skipped.

        Order follows market_ids.
        """
        ids = list(market_ids)
        if not ids:
            return []

        raws = await self.store.mget([record_key(m) for m in ids])
        records = []
        for market_id, raw in zip(ids, raws):
            if raw is None:
                continue
            try:
                records.append(PredictionRecord.model_validate_json(raw))
            except ValidationError as e:
                logger.warning(f"⚠️ Skipping malformed record {market_id}: {e.error_count()} errors")
        return records

    async def pending_ids(self) -> List[str]:
        return sorted(await self.store.smembers(PENDING_KEY))

    async def is_pending(self, market_id: str) -> bool:
        try:
            return await self.store.sismember(PENDING_KEY, market_id)
        except RedisError as e:
            raise LedgerUnavailableError(f"Could not read pending index for {market_id}") from e

    async def drop_pending(self, market_id: str) -> None:
        """Remove an expired record's id from the pending and timeline indices."""
        try:
            await self.store.srem(PENDING_KEY, market_id)
            await self.store.zrem(TIMELINE_KEY, market_id)
        except RedisError as e:
            raise LedgerUnavailableError(f"Could not drop {market_id} from the pending index") from e
        logger.info(f"ℹ️ Dropped expired prediction {market_id} from the pending index")

    async def settled_ids_since(self, cutoff_ms: int) -> List[str]:
        return await self.store.zrangebyscore(SETTLED_KEY, cutoff_ms, "+inf")

    async def fetch_settled_records(self, cutoff_ms: int) -> List[PredictionRecord]:
        """Settled records whose settlement time and creation time both fall on/after cutoff_ms."""
        ids = await self.settled_ids_since(cutoff_ms)
        records = await self.get_predictions(ids)
        return [r for r in records if r.is_settled and r.timestamp >= cutoff_ms]

    async def commit_settlement(self, expected_raw: str, settled: PredictionRecord) -> None:
        """
        Swap in the settled record and move it pending -> settled atomically.

        Raises:
            SettlementConflictError: record changed since expected_raw was read
            LedgerUnavailableError: store write failed
        """
        try:
            await self.store.settle_atomically(
                record_key(settled.market_id),
                expected_raw,
                settled.to_json(),
                self.record_ttl_seconds,
                PENDING_KEY,
                SETTLED_KEY,
                settled.market_id,
                settled.result_updated_at,
            )
        except RedisError as e:
            logger.error(f"❌ Failed to settle {settled.market_id}: {e}")
            raise LedgerUnavailableError(f"Could not settle {settled.market_id}") from e

    async def get_pending_count(self) -> int:
        try:
            return await self.store.scard(PENDING_KEY)
        except RedisError as e:
            logger.warning(f"⚠️ Pending count unavailable: {e}")
            return 0

    async def get_settled_count(self, days: int = 30) -> int:
        try:
            cutoff = now_ms() - days * MS_PER_DAY
            return await self.store.zcount(SETTLED_KEY, cutoff, "+inf")
        except RedisError as e:
            logger.warning(f"⚠️ Settled count unavailable: {e}")
            return 0

    async def get_stats(self, days: int = 30) -> LedgerStats:
        return LedgerStats(
            pending=await self.get_pending_count(),
            settled=await self.get_settled_count(days),
        )

    async def get_recent_predictions(self, days: int = 7, limit: int = 50) -> List[PredictionRecord]:
        """Newest first, from the creation timeline."""
        try:
            cutoff = now_ms() - days * MS_PER_DAY
            ids = await self.store.zrangebyscore(TIMELINE_KEY, cutoff, "+inf")
            records = await self.get_predictions(list(reversed(ids))[:limit])
        except RedisError as e:
            logger.warning(f"⚠️ Recent predictions unavailable: {e}")
            return []
        return records
