"""
Settlement & Scoring Service
============================
Scores a finished game against its stored prediction and moves the record
from the pending index to the settled index.

Scoring:
- predictionCorrect: side with p > 0.5 won
- brierScore:        (p - actual)^2
- logLoss:           -ln(max(p_actual, 1e-4))
- expectedValue:     edge-gated unit-stake ROI (0 when no bet)

Settlement is idempotent. Repeating a call with the same outcome is a no-op
(ALREADY_SETTLED); a different outcome overwrites the settlement fields
(RESETTLED). The record + index move is one store transaction guarded by a
compare-and-swap on the record JSON, so concurrent settlers serialize.
"""
import asyncio
import logging
from enum import Enum
from typing import List, Optional, Protocol, Union

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.core.scoring_metrics import brier_score, edge_gated_roi, is_prediction_correct, log_loss
from polycast.db.schemas.analytics_schemas import (
    GameResult,
    PredictionRecord,
    SettlementBatchSummary,
    SettlementResult,
    SettlementStatus,
    Winner,
)
from polycast.services.errors import InvalidOutcomeError, SettlementConflictError
from polycast.services.prediction_ledger import PredictionLedger
from polycast.utils.timezone import now_ms

logger = logging.getLogger(__name__)


class GameResultProvider(Protocol):
    """Source of final results; returns None while the game is unfinished"""

    async def fetch_result(self, record: PredictionRecord) -> Optional[GameResult]: ...


class BatchOutcome(str, Enum):
    """Per-market result inside settle_pending"""
    SETTLED = "settled"
    WAITING = "waiting"  # game unfinished
    EXPIRED = "expired"  # record gone, id dropped from the pending index
    FAILED = "failed"


def _coerce_winner(winner: Union[Winner, str]) -> Winner:
    try:
        return Winner(winner)
    except ValueError:
        raise InvalidOutcomeError(f"Winner must be one of {[w.value for w in Winner]}, got {winner!r}") from None


def score_record(
    record: PredictionRecord,
    winner: Winner,
    score_a: int,
    score_b: int,
    settled_at_ms: int,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> PredictionRecord:
    """Return a copy of record with every settlement field populated."""
    p = record.predicted_probability_a
    return record.model_copy(update={
        "actual_winner": winner,
        "actual_score_a": score_a,
        "actual_score_b": score_b,
        "result_updated_at": settled_at_ms,
        "prediction_correct": is_prediction_correct(p, winner),
        "brier_score": brier_score(p, winner),
        "log_loss": log_loss(p, winner, config.settlement.log_loss_epsilon),
        "expected_value": edge_gated_roi(p, record.market_odds_a, record.market_odds_b, winner, config),
    })


def _same_outcome(record: PredictionRecord, winner: Winner, score_a: int, score_b: int) -> bool:
    return (
        record.actual_winner == winner
        and record.actual_score_a == score_a
        and record.actual_score_b == score_b
    )


class SettlementService:
    def __init__(self, ledger: PredictionLedger, config: EngineConfig = DEFAULT_ENGINE_CONFIG):
        self.ledger = ledger
        self.config = config

    async def settle(
        self,
        market_id: str,
        winner: Union[Winner, str],
        score_a: int,
        score_b: int,
    ) -> SettlementResult:
        """
        Settle one market.

        Returns:
            SettlementResult with status SETTLED, RESETTLED, ALREADY_SETTLED
            or NOT_FOUND (unknown or expired marketId, nothing mutated)

        Raises:
            InvalidOutcomeError: winner not teamA/teamB or a negative score
            LedgerUnavailableError: store failure, the update was not applied
            SettlementConflictError: record kept changing across all retries
        """
        winner = _coerce_winner(winner)
        if score_a < 0 or score_b < 0:
            raise InvalidOutcomeError(f"Scores must be non-negative, got {score_a}-{score_b}")

        retries = self.config.settlement.max_cas_retries
        for attempt in range(1, retries + 1):
            raw = await self.ledger.get_raw(market_id)
            if raw is None:
                logger.warning(f"⚠️ Prediction not found for settlement: {market_id}")
                return SettlementResult(market_id=market_id, status=SettlementStatus.NOT_FOUND)

            record = PredictionRecord.model_validate_json(raw)

            if record.is_settled and _same_outcome(record, winner, score_a, score_b):
                if not await self.ledger.is_pending(market_id):
                    logger.info(f"Settlement for {market_id} already recorded, skipping")
                    return SettlementResult(
                        market_id=market_id, status=SettlementStatus.ALREADY_SETTLED, record=record
                    )

            status = SettlementStatus.RESETTLED if record.is_settled else SettlementStatus.SETTLED
            settled = score_record(record, winner, score_a, score_b, now_ms(), self.config)

            try:
                await self.ledger.commit_settlement(raw, settled)
            except SettlementConflictError:
                logger.warning(f"⚠️ Settlement conflict on {market_id} (attempt {attempt}/{retries})")
                if attempt == retries:
                    raise
                continue

            logger.info(
                f"✅ {status.value} {market_id}: {winner.value} {score_a}-{score_b} | "
                f"Correct: {settled.prediction_correct} | Brier: {settled.brier_score:.4f} | "
                f"ROI: {settled.expected_value:+.2f}"
            )
            return SettlementResult(market_id=market_id, status=status, record=settled)

        raise SettlementConflictError(f"Could not settle {market_id}")

    async def settle_pending(
        self,
        result_provider: GameResultProvider,
        batch_size: int = 5,
        batch_delay_seconds: float = 0.0,
    ) -> SettlementBatchSummary:
        """
        Settle every pending prediction whose game has finished.

        Markets are processed in batches (concurrently within a batch).
        A failure on one market is logged and counted, never raised.
        Ids whose record has expired are dropped from the pending index.
        """
        pending_ids = await self.ledger.pending_ids()
        logger.info(f"📊 Checking {len(pending_ids)} pending predictions for results")

        outcomes: List[BatchOutcome] = []
        for start in range(0, len(pending_ids), batch_size):
            batch = pending_ids[start:start + batch_size]
            outcomes.extend(await asyncio.gather(*(self._settle_one(m, result_provider) for m in batch)))

            if batch_delay_seconds and start + batch_size < len(pending_ids):
                await asyncio.sleep(batch_delay_seconds)

        summary = SettlementBatchSummary(
            settled=outcomes.count(BatchOutcome.SETTLED),
            pending=outcomes.count(BatchOutcome.WAITING),
            failed=outcomes.count(BatchOutcome.FAILED),
            expired=outcomes.count(BatchOutcome.EXPIRED),
        )
        logger.info(
            f"✅ Batch settlement done: {summary.settled} settled, "
            f"{summary.pending} still pending, {summary.expired} expired, {summary.failed} failed"
        )
        return summary

    async def _settle_one(self, market_id: str, result_provider: GameResultProvider) -> BatchOutcome:
        try:
            record = await self.ledger.get_prediction(market_id)
            if record is None:
                logger.warning(f"⚠️ Pending market {market_id} has no record (expired), dropping it")
                await self.ledger.drop_pending(market_id)
                return BatchOutcome.EXPIRED

            result = await result_provider.fetch_result(record)
            if result is None:
                return BatchOutcome.WAITING

            outcome = await self.settle(market_id, result.winner, result.score_a, result.score_b)
            if outcome.status in (SettlementStatus.SETTLED, SettlementStatus.RESETTLED):
                return BatchOutcome.SETTLED
            return BatchOutcome.WAITING
        except Exception as e:
            logger.error(f"❌ Failed to settle {market_id}: {e}", exc_info=True)
            return BatchOutcome.FAILED
