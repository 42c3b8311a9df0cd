"""
Performance Aggregator
======================
Read-side analytics over settled predictions.

compute_performance(window_days):
- accuracy, mean Brier score, mean log loss
- calibration score: 1 - mean |meanPredicted - winRate| over ten
  equal-width bins holding >= 5 samples (0.5 when no bin qualifies)
- accuracy by confidence bucket, mean ROI (%) by value bucket
- per-UTC-day accuracy for the last 7 and 30 days, zero-filled

generate_calibration_table():
- five fixed bins over the last 90 days; feeds the probability transform

Every read failure degrades to an empty result; analytics are never
allowed to break the caller.
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.core.scoring_metrics import probability_gap
from polycast.db.schemas.analytics_schemas import (
    CalibrationBin,
    ConfidenceBreakdown,
    ConfidenceBucket,
    DailyAccuracy,
    ModelPerformance,
    PredictionRecord,
    ValueBreakdown,
    ValueBucket,
    Winner,
)
from polycast.services.prediction_ledger import PredictionLedger
from polycast.utils.timezone import MS_PER_DAY, now_utc, to_ms, utc_day_windows

logger = logging.getLogger(__name__)


def _accuracy(records: Sequence[PredictionRecord]) -> float:
    if not records:
        return 0.0
    return sum(1 for r in records if r.prediction_correct) / len(records)


def calculate_calibration_score(
    predicted: np.ndarray,
    outcomes: np.ndarray,
    n_bins: int = 10,
    min_samples: int = 5,
) -> float:
    """
    1 - mean absolute calibration error over bins with enough samples.

    Returns 0.5 ("unknown") when no bin reaches min_samples.
    """
    edges = np.array([i / n_bins for i in range(n_bins + 1)])
    bin_indices = np.digitize(predicted, edges) - 1

    errors = []
    for i in range(n_bins):
        mask = bin_indices == i
        if np.sum(mask) < min_samples:
            continue
        errors.append(abs(np.mean(predicted[mask]) - np.mean(outcomes[mask])))

    if not errors:
        return 0.5
    return float(1 - np.mean(errors))


def bucket_by_confidence(
    records: Sequence[PredictionRecord],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> ConfidenceBreakdown:
    high_cut = config.analytics.high_confidence
    low_cut = config.analytics.low_confidence

    high = [r for r in records if r.confidence > high_cut]
    medium = [r for r in records if low_cut <= r.confidence <= high_cut]
    low = [r for r in records if r.confidence < low_cut]

    return ConfidenceBreakdown(
        high=ConfidenceBucket(accuracy=_accuracy(high), count=len(high)),
        medium=ConfidenceBucket(accuracy=_accuracy(medium), count=len(medium)),
        low=ConfidenceBucket(accuracy=_accuracy(low), count=len(low)),
    )


def _roi_bucket(records: Sequence[PredictionRecord]) -> ValueBucket:
    if not records:
        return ValueBucket()
    roi = np.mean([r.expected_value for r in records]) * 100
    return ValueBucket(roi=float(roi), count=len(records))


def bucket_by_value(
    records: Sequence[PredictionRecord],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> ValueBreakdown:
    """Partition by |model - market| gap; ROI reported as a percentage."""
    strong_gap = config.analytics.strong_value_gap
    value_gap = config.analytics.value_gap

    def gap(r: PredictionRecord) -> float:
        return abs(probability_gap(r.predicted_probability_a, r.market_odds_a))

    strong = [r for r in records if gap(r) > strong_gap]
    value = [r for r in records if value_gap <= gap(r) <= strong_gap]
    fair = [r for r in records if gap(r) < value_gap]

    return ValueBreakdown(
        strong_value=_roi_bucket(strong),
        value=_roi_bucket(value),
        fair=_roi_bucket(fair),
    )


def daily_accuracy(
    records: Sequence[PredictionRecord],
    days: int,
    now: Optional[datetime] = None,
) -> List[DailyAccuracy]:
    """One entry per UTC calendar day, oldest first; empty days report zeros."""
    series = []
    for label, start_ms, end_ms in utc_day_windows(days, now):
        day_records = [r for r in records if start_ms <= r.timestamp < end_ms]
        series.append(DailyAccuracy(date=label, accuracy=_accuracy(day_records), count=len(day_records)))
    return series


def build_calibration_table(
    records: Sequence[PredictionRecord],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> List[CalibrationBin]:
    """
    Empirical team-A win rate per fixed probability range.

    Empty bins report a 0.5 win rate with sampleSize 0; the probability
    transform ignores any bin below the minimum sample size anyway.
    """
    edges = config.analytics.calibration_bin_edges
    predicted = np.array([r.predicted_probability_a for r in records], dtype=float)
    team_a_won = np.array([r.actual_winner == Winner.TEAM_A for r in records], dtype=float)
    bin_indices = np.digitize(predicted, np.array(edges)) - 1

    table = []
    for i, (low, high) in enumerate(zip(edges[:-1], edges[1:])):
        mask = bin_indices == i
        count = int(np.sum(mask))
        win_rate = float(np.mean(team_a_won[mask])) if count else 0.5
        table.append(CalibrationBin(predicted_range=(low, high), actual_win_rate=win_rate, sample_size=count))
    return table


def summarize(
    records: Sequence[PredictionRecord],
    now: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> ModelPerformance:
    """Pure aggregation over already-fetched settled records."""
    if not records:
        return ModelPerformance(
            last_7_days=daily_accuracy([], 7, now),
            last_30_days=daily_accuracy([], 30, now),
        )

    predicted = np.array([r.predicted_probability_a for r in records], dtype=float)
    outcomes = np.array([r.actual_winner == Winner.TEAM_A for r in records], dtype=float)

    return ModelPerformance(
        total_predictions=len(records),
        accuracy=_accuracy(records),
        avg_brier_score=float(np.mean([r.brier_score for r in records])),
        avg_log_loss=float(np.mean([r.log_loss for r in records])),
        calibration_score=calculate_calibration_score(
            predicted,
            outcomes,
            config.analytics.calibration_score_bins,
            config.analytics.calibration_score_min_samples,
        ),
        by_confidence=bucket_by_confidence(records, config),
        by_value=bucket_by_value(records, config),
        last_7_days=daily_accuracy(records, 7, now),
        last_30_days=daily_accuracy(records, 30, now),
    )


class PerformanceService:
    def __init__(self, ledger: PredictionLedger, config: EngineConfig = DEFAULT_ENGINE_CONFIG):
        self.ledger = ledger
        self.config = config

    async def _settled_within(self, days: int, now: datetime) -> List[PredictionRecord]:
        cutoff = to_ms(now) - days * MS_PER_DAY
        return await self.ledger.fetch_settled_records(cutoff)

    async def compute_performance(self, window_days: int = 30, now: Optional[datetime] = None) -> ModelPerformance:
        now = now or now_utc()
        try:
            records = await self._settled_within(window_days, now)
            performance = summarize(records, now, self.config)
        except Exception as e:
            logger.error(f"❌ Failed to compute performance: {e}")
            return ModelPerformance.empty()

        logger.info(
            f"📊 Performance ({window_days}d): {performance.total_predictions} settled | "
            f"Accuracy: {performance.accuracy * 100:.1f}% | Brier: {performance.avg_brier_score:.4f} | "
            f"Calibration: {performance.calibration_score:.3f}"
        )
        return performance

    async def generate_calibration_table(self, now: Optional[datetime] = None) -> List[CalibrationBin]:
        """Regenerate the five-bin table from the lookback window; [] on failure."""
        now = now or now_utc()
        try:
            records = await self._settled_within(self.config.analytics.calibration_lookback_days, now)
            table = build_calibration_table(records, self.config)
        except Exception as e:
            logger.error(f"❌ Failed to generate calibration table: {e}")
            return []

        logger.info(
            f"✅ Calibration table generated from {len(records)} records: "
            + ", ".join(f"[{b.predicted_range[0]:.1f},{b.predicted_range[1]:.1f}) n={b.sample_size}" for b in table)
        )
        return table
